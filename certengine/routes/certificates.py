from __future__ import annotations

from io import BytesIO

from flask import Blueprint, current_app, jsonify, request, send_file

from ..app import db, get_field_registry, get_storage
from ..errors import EventNotFound, InvalidRequest, NotFound
from ..models import Event
from ..services import notifications, templates, verification
from ..services.attendance import eligible_registrations
from ..services.batch import BatchGenerator
from ..services.rendering import MIMETYPES
from ..services.resolver import DataResolver

bp = Blueprint("certificates", __name__, url_prefix="/certificates")


def _json_body() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise InvalidRequest("Invalid request payload.")
    return payload


def _optional_int(raw, field: str) -> int | None:
    if raw in (None, ""):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise InvalidRequest(f"{field} must be an integer")


def _require_event(event_id: int) -> Event:
    event = db.session.get(Event, event_id)
    if not event:
        raise EventNotFound(f"Event {event_id} not found")
    return event


@bp.get("/data-fields")
def data_fields():
    registry = get_field_registry(current_app)
    return jsonify({"ok": True, "fields": [field.to_dict() for field in registry.list()]})


# Templates


@bp.post("/templates")
def create_template():
    form = request.form
    event_id = _optional_int(form.get("eventId"), "eventId")
    if event_id is not None:
        _require_event(event_id)

    upload = request.files.get("file")
    file_name = upload.filename if upload and upload.filename else None
    file_data = upload.read() if file_name else None
    assets = {
        item.filename: item.read()
        for item in request.files.getlist("assets")
        if item and item.filename
    }

    template = templates.create_template(
        name=form.get("name"),
        kind=(form.get("kind") or "").strip(),
        registry=get_field_registry(current_app),
        storage=get_storage(current_app),
        event_id=event_id,
        file_name=file_name,
        file_data=file_data,
        canvas_spec=form.get("canvasSpec"),
        assets=assets,
    )
    return jsonify({"ok": True, "template": template.to_dict()}), 201


@bp.get("/templates")
def list_templates():
    event_id = _optional_int(request.args.get("eventId"), "eventId")
    items = templates.list_templates(event_id)
    return jsonify({"ok": True, "templates": [item.to_dict() for item in items]})


@bp.get("/templates/<int:template_id>")
def get_template(template_id: int):
    template = templates.get_template(template_id)
    data = template.to_dict()
    data["missingPlaceholders"] = templates.missing_placeholders(template)
    return jsonify({"ok": True, "template": data})


@bp.delete("/templates/<int:template_id>")
def delete_template(template_id: int):
    templates.delete_template(template_id, get_storage(current_app))
    return jsonify({"ok": True})


@bp.put("/templates/<int:template_id>/mapping")
def set_mapping(template_id: int):
    payload = _json_body()
    mapping = payload.get("placeholderMapping")
    if not isinstance(mapping, dict):
        raise InvalidRequest("Valid placeholder mapping is required")
    template = templates.get_template(template_id)
    templates.set_mapping(template, mapping, get_field_registry(current_app))
    data = template.to_dict()
    data["missingPlaceholders"] = templates.missing_placeholders(template)
    return jsonify({"ok": True, "template": data})


# Events


@bp.post("/events/<int:event_id>/generate")
def generate(event_id: int):
    payload = _json_body()
    template_id = _optional_int(payload.get("templateId"), "templateId")
    if template_id is None:
        raise InvalidRequest("templateId is required")
    participant_ids = payload.get("participantIds")
    if participant_ids is not None and not isinstance(participant_ids, list):
        raise InvalidRequest("participantIds must be a list")

    generator = BatchGenerator.from_app(
        current_app, get_field_registry(current_app), get_storage(current_app)
    )
    batch = generator.generate_batch(event_id, template_id, participant_ids)
    return jsonify({"ok": True, **batch.to_dict()})


@bp.get("/events/<int:event_id>/certificates")
def event_certificates(event_id: int):
    _require_event(event_id)
    items = verification.list_event_certificates(event_id)
    return jsonify({"ok": True, "certificates": [item.to_dict() for item in items]})


@bp.get("/events/<int:event_id>/participants")
def event_participants(event_id: int):
    _require_event(event_id)
    participants = [
        {
            "id": registration.id,
            "name": registration.name,
            "email": registration.email,
            "checkedInAt": registration.attendance.checked_in_at.isoformat(),
        }
        for registration in eligible_registrations(event_id)
    ]
    return jsonify({"ok": True, "participants": participants})


@bp.post("/events/<int:event_id>/email")
def email_certificates(event_id: int):
    payload = _json_body()
    certificate_ids = payload.get("certificateIds")
    if certificate_ids is not None and not isinstance(certificate_ids, list):
        raise InvalidRequest("certificateIds must be a list")
    message = payload.get("message")
    if message is not None and not isinstance(message, str):
        raise InvalidRequest("message must be a string")

    resolver = DataResolver(
        get_field_registry(current_app), current_app.config.get("CERT_VERIFY_BASE_URL", "")
    )
    outcome = notifications.email_certificates(
        event_id,
        get_storage(current_app),
        verify_url=resolver.verify_url,
        certificate_ids=certificate_ids,
        message=(message or "").strip() or None,
    )
    return jsonify({"ok": True, **outcome})


# Public lookup


@bp.get("/verify/<code>")
def verify(code: str):
    return jsonify({"ok": True, "certificate": verification.verify(code)})


@bp.get("/download/<code>")
def download(code: str):
    certificate = verification.download(code)
    try:
        data = get_storage(current_app).read(certificate.file_ref)
    except OSError as exc:
        current_app.logger.warning(
            "[CERT-STORAGE] artifact missing certificate=%s ref=%s: %s",
            certificate.id,
            certificate.file_ref,
            exc,
        )
        raise NotFound("Certificate file not found")
    return send_file(
        BytesIO(data),
        mimetype=MIMETYPES.get(certificate.file_format, "application/octet-stream"),
        as_attachment=True,
        download_name=verification.download_name(certificate),
    )
