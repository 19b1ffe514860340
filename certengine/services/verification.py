from __future__ import annotations

from flask import current_app

from ..errors import NotFound
from ..models import Certificate
from ..shared.time import fmt_long_date


def download_name(certificate: Certificate) -> str:
    safe_name = "_".join((certificate.participant_name or "participant").split())
    return f"certificate_{safe_name}_{certificate.serial_number:03d}.{certificate.file_format}"


def certificate_view(certificate: Certificate) -> dict:
    """Public view of an issued certificate.

    Carries what a third party needs to confirm authenticity; the certificate
    code and row identifiers stay private.
    """

    return {
        "valid": True,
        "participantName": certificate.participant_name,
        "participantEmail": certificate.participant_email,
        "eventTitle": certificate.event_title,
        "eventDate": fmt_long_date(certificate.event_date),
        "eventLocation": certificate.event_location,
        "issuedAt": certificate.issued_at.isoformat() if certificate.issued_at else None,
        "issuedOn": fmt_long_date(certificate.issued_at),
        "fileFormat": certificate.file_format,
        "downloadName": download_name(certificate),
    }


def verify(verification_code: str) -> dict:
    code = (verification_code or "").strip().upper()
    certificate = (
        Certificate.query.filter_by(verification_code=code).one_or_none() if code else None
    )
    if certificate is None:
        current_app.logger.info("[CERT] verify miss code=%s", verification_code)
        raise NotFound("Certificate not found")
    return certificate_view(certificate)


def download(certificate_code: str) -> Certificate:
    code = (certificate_code or "").strip().upper()
    certificate = (
        Certificate.query.filter_by(certificate_code=code).one_or_none() if code else None
    )
    if certificate is None:
        current_app.logger.info("[CERT] download miss code=%s", certificate_code)
        raise NotFound("Certificate not found")
    return certificate


def list_event_certificates(event_id: int) -> list[Certificate]:
    return (
        Certificate.query.filter_by(event_id=event_id)
        .order_by(Certificate.serial_number, Certificate.id)
        .all()
    )
