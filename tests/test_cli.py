from conftest import make_pptx, seed_event

from certengine.app import get_field_registry, get_storage
from certengine.models import Certificate
from certengine.services import templates
from manage import generate_certificates, purge_orphan_artifacts, verify_certificate


def _ready_template(app):
    template = templates.create_template(
        name="Cli",
        kind="flatDocument",
        registry=get_field_registry(app),
        storage=get_storage(app),
        file_name="cli.pptx",
        file_data=make_pptx(["{{name}}"]),
    )
    templates.set_mapping(template, {"name": "participant_name"}, get_field_registry(app))
    return template


def test_generate_and_verify_commands(app):
    template = _ready_template(app)
    event, _ = seed_event(participants=2)
    runner = app.test_cli_runner()

    result = runner.invoke(
        generate_certificates, ["--event", str(event.id), "--template", str(template.id)]
    )

    assert result.exit_code == 0, result.output
    assert "total=2 successful=2 failed=0" in result.output

    code = Certificate.query.first().verification_code
    result = runner.invoke(verify_certificate, [code])
    assert result.exit_code == 0
    assert "participantName:" in result.output

    result = runner.invoke(verify_certificate, ["VERIFY-NOPE"])
    assert result.exit_code == 1


def test_generate_command_reports_batch_errors(app):
    template = templates.create_template(
        name="Unmapped",
        kind="flatDocument",
        registry=get_field_registry(app),
        storage=get_storage(app),
        file_name="u.pptx",
        file_data=make_pptx(["{{name}}"]),
    )
    event, _ = seed_event(participants=1)

    result = app.test_cli_runner().invoke(
        generate_certificates, ["--event", str(event.id), "--template", str(template.id)]
    )

    assert result.exit_code == 1
    assert "IncompleteMapping" in result.output


def test_purge_orphan_artifacts(app):
    template = _ready_template(app)
    event, _ = seed_event(participants=1)
    runner = app.test_cli_runner()
    runner.invoke(generate_certificates, ["--event", str(event.id), "--template", str(template.id)])
    storage = get_storage(app)
    orphan = storage.put("certificates/9/9/CERT-ORPHAN.pptx", b"x").ref
    kept = Certificate.query.first().file_ref

    result = runner.invoke(purge_orphan_artifacts, ["--dry-run"])
    assert "deleted=0" in result.output
    assert "would delete " + orphan in result.output
    assert storage.exists(orphan)

    result = runner.invoke(purge_orphan_artifacts, [])
    assert "deleted=1" in result.output
    assert not storage.exists(orphan)
    assert storage.exists(kept)
    assert storage.exists(template.raw_content_ref)
