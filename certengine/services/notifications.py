from __future__ import annotations

from typing import Iterable

from flask import current_app

from .. import emailer
from ..app import db
from ..errors import EventNotFound, InvalidRequest
from ..models import Certificate, Event
from ..shared.mail_utils import certificate_body, certificate_subject
from ..shared.time import now_utc
from .rendering import MIMETYPES
from .verification import download_name


def _attachment(certificate: Certificate, storage) -> emailer.Attachment:
    maintype, _, subtype = MIMETYPES.get(
        certificate.file_format, "application/octet-stream"
    ).partition("/")
    return emailer.Attachment(
        filename=download_name(certificate),
        data=storage.read(certificate.file_ref),
        maintype=maintype,
        subtype=subtype,
    )


def _select(event_id: int, certificate_ids: Iterable[int] | None) -> list[Certificate]:
    query = Certificate.query.filter_by(event_id=event_id)
    if certificate_ids is not None:
        try:
            wanted = {int(value) for value in certificate_ids}
        except (TypeError, ValueError):
            raise InvalidRequest("certificateIds must be a list of integers")
        query = query.filter(Certificate.id.in_(wanted))
    return query.order_by(Certificate.serial_number, Certificate.id).all()


def email_certificates(
    event_id: int,
    storage,
    *,
    verify_url,
    certificate_ids: Iterable[int] | None = None,
    message: str | None = None,
) -> dict:
    """Mail each selected certificate to its holder; failures stay per item."""

    event = db.session.get(Event, event_id)
    if not event:
        raise EventNotFound(f"Event {event_id} not found")

    results = []
    for certificate in _select(event.id, certificate_ids):
        entry = {
            "certificateId": certificate.id,
            "participantName": certificate.participant_name,
            "email": certificate.participant_email,
        }
        try:
            attachment = _attachment(certificate, storage)
        except OSError as exc:
            current_app.logger.warning(
                "[MAIL-FAIL] certificate=%s artifact unreadable: %s", certificate.id, exc
            )
            entry.update(status="error", error="Certificate file unavailable")
            results.append(entry)
            continue

        outcome = emailer.send(
            certificate.participant_email,
            certificate_subject(certificate.event_title or event.title),
            certificate_body(
                certificate.participant_name,
                certificate.event_title or event.title,
                certificate.verification_code,
                verify_url(certificate.verification_code),
                message,
            ),
            attachments=[attachment],
        )
        if outcome.get("ok"):
            certificate.email_sent = True
            certificate.email_sent_at = now_utc()
            db.session.commit()
            entry["status"] = "sent"
        else:
            entry.update(status="error", error=outcome.get("detail"))
        results.append(entry)

    sent = sum(1 for entry in results if entry["status"] == "sent")
    return {
        "results": results,
        "summary": {"total": len(results), "sent": sent, "failed": len(results) - sent},
    }
