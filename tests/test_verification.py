import logging

import pytest
from conftest import make_pptx, seed_event

from certengine.app import get_field_registry, get_storage
from certengine.errors import NotFound
from certengine.models import Certificate
from certengine.services import templates, verification
from certengine.services.batch import BatchGenerator


@pytest.fixture
def issued(app):
    template = templates.create_template(
        name="V",
        kind="flatDocument",
        registry=get_field_registry(app),
        storage=get_storage(app),
        file_name="v.pptx",
        file_data=make_pptx(["{{name}}: {{code}}"]),
    )
    templates.set_mapping(
        template,
        {"name": "participant_name", "code": "verification_code"},
        get_field_registry(app),
    )
    event, registrations = seed_event(participants=2)
    BatchGenerator.from_app(app, get_field_registry(app), get_storage(app)).generate_batch(
        event.id, template.id
    )
    return Certificate.query.order_by(Certificate.serial_number).all()


def test_verify_returns_generation_time_values(app, issued):
    certificate = issued[0]

    view = verification.verify(certificate.verification_code)

    assert view["participantName"] == "Participant A"
    assert view["participantEmail"] == "p0@example.com"
    assert view["eventTitle"] == "Data Summit"
    assert view["eventDate"] == "January 15, 2025"
    assert view["eventLocation"] == "Nairobi"
    assert view["downloadName"].endswith(".pptx")


def test_verify_hides_private_identifiers(app, issued):
    view = verification.verify(issued[0].verification_code)

    assert issued[0].certificate_code not in repr(view)
    assert view["downloadName"] == "certificate_Participant_A_001.pptx"
    assert "id" not in view
    assert "certificateCode" not in view
    assert "registrationId" not in view


def test_verify_unknown_code(app, caplog):
    caplog.set_level(logging.INFO)

    with pytest.raises(NotFound):
        verification.verify("not-a-real-code")
    assert not [r for r in caplog.records if r.levelno >= logging.WARNING]


def test_verify_does_not_accept_certificate_code(app, issued):
    with pytest.raises(NotFound):
        verification.verify(issued[0].certificate_code)


def test_download_by_certificate_code(app, issued):
    assert verification.download(issued[1].certificate_code).id == issued[1].id
    with pytest.raises(NotFound):
        verification.download(issued[1].verification_code)


def test_verify_route(client, issued):
    resp = client.get(f"/certificates/verify/{issued[0].verification_code}")

    assert resp.status_code == 200
    assert resp.get_json()["certificate"]["participantName"] == "Participant A"

    resp = client.get("/certificates/verify/not-a-real-code")
    assert resp.status_code == 404
    assert resp.get_json()["error"] == "NotFound"


def test_download_route_streams_artifact(client, app, issued):
    certificate = issued[0]

    resp = client.get(f"/certificates/download/{certificate.certificate_code}")

    assert resp.status_code == 200
    assert resp.mimetype.endswith("presentationml.presentation")
    assert resp.data == get_storage(app).read(certificate.file_ref)
    assert "attachment" in resp.headers["Content-Disposition"]


def test_download_route_missing_file(client, app, issued):
    certificate = issued[0]
    get_storage(app).delete(certificate.file_ref)

    resp = client.get(f"/certificates/download/{certificate.certificate_code}")

    assert resp.status_code == 404
