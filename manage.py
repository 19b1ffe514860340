import click
from flask import current_app
from flask.cli import FlaskGroup
from flask_migrate import Migrate

from certengine.app import create_app, db, get_field_registry, get_storage
from certengine.errors import CertificateEngineError, NotFound
from certengine.models import Certificate, CertificateTemplate
from certengine.services import verification
from certengine.services.batch import BatchGenerator


migrate = Migrate()


def create_certengine_app():
    app = create_app()
    migrate.init_app(app, db)
    return app


cli = FlaskGroup(create_app=create_certengine_app)


@cli.command("generate_certificates")
@click.option("--event", "event_id", required=True, type=int)
@click.option("--template", "template_id", required=True, type=int)
@click.option(
    "--participant",
    "participant_ids",
    multiple=True,
    type=int,
    help="Registration id; repeat to select several. Defaults to every eligible participant.",
)
def generate_certificates(event_id: int, template_id: int, participant_ids: tuple[int, ...]):
    """Generate certificates for an event and print the batch summary."""
    generator = BatchGenerator.from_app(
        current_app, get_field_registry(current_app), get_storage(current_app)
    )
    try:
        batch = generator.generate_batch(event_id, template_id, participant_ids or None)
    except CertificateEngineError as exc:
        click.echo(f"{exc.code}: {exc.message}", err=True)
        raise SystemExit(1)
    for result in batch.results:
        data = result.to_dict()
        if result.ok:
            click.echo(
                f"ok   participant={data['participantId']} code={data['certificateCode']}"
                f" ref={data['fileRef']}"
            )
        else:
            click.echo(
                f"fail participant={data['participantId']} reason={data['reason']}"
                f" detail={data['error']}"
            )
    summary = batch.summary
    click.echo(f"total={summary.total} successful={summary.successful} failed={summary.failed}")


@cli.command("verify_certificate")
@click.argument("code")
def verify_certificate(code: str):
    try:
        view = verification.verify(code)
    except NotFound:
        click.echo("Not found", err=True)
        raise SystemExit(1)
    for key, value in view.items():
        click.echo(f"{key}: {value}")


def _template_refs() -> set[str]:
    refs: set[str] = set()
    for template in CertificateTemplate.query.all():
        if template.raw_content_ref:
            refs.add(template.raw_content_ref)
        spec = template.canvas_spec or {}
        if spec.get("background"):
            refs.add(spec["background"])
        refs.update(
            element["src"]
            for element in spec.get("elements", [])
            if element.get("type") == "image" and element.get("src")
        )
    return refs


@cli.command("purge_orphan_artifacts")
@click.option(
    "--dry-run", is_flag=True, help="List orphaned artifacts without deleting"
)
def purge_orphan_artifacts(dry_run: bool):
    storage = get_storage(current_app)
    issued = {ref for (ref,) in db.session.query(Certificate.file_ref).all()}
    in_use = issued | _template_refs()

    total = deleted = kept = errors = 0
    samples: list[str] = []
    for prefix in ("certificates/", "templates/"):
        for ref in storage.iter_refs(prefix):
            total += 1
            if ref in in_use:
                kept += 1
                continue
            if len(samples) < 5:
                samples.append(ref)
            if dry_run:
                continue
            try:
                storage.delete(ref)
                deleted += 1
            except OSError:
                errors += 1
                current_app.logger.exception("[CERT-PURGE] failed to remove %s", ref)
    click.echo(f"scanned={total} deleted={deleted} kept={kept} errors={errors}")
    for sample in samples:
        click.echo(("would delete " if dry_run else "deleted ") + sample)


if __name__ == "__main__":
    cli()
