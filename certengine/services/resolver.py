from __future__ import annotations

from datetime import date
from typing import Callable, Mapping

from ..errors import MissingFieldValue
from ..models import Event, Registration
from ..shared.codes import CodePair
from ..shared.data_fields import DataFieldRegistry
from ..shared.time import fmt_date_range, fmt_long_date

FieldValues = dict[str, str]


def field_lookup(values: Mapping[str, str]) -> Callable[[str], str]:
    def _lookup(key: str) -> str:
        if key not in values:
            raise MissingFieldValue(key)
        return values[key]

    return _lookup


class DataResolver:
    """Builds the per-participant field-value map consumed by the renderers."""

    def __init__(self, registry: DataFieldRegistry, verify_base_url: str = ""):
        self.registry = registry
        self.verify_base_url = verify_base_url.rstrip("/")

    def verify_url(self, verification_code: str) -> str:
        if not self.verify_base_url:
            return verification_code
        return f"{self.verify_base_url}/{verification_code}"

    def _candidates(
        self,
        event: Event,
        registration: Registration,
        serial_number: int,
        codes: CodePair | None,
        issued_on: date,
    ) -> dict[str, str]:
        attendance = registration.attendance
        values = {
            "participant_name": registration.name or "",
            "participant_email": registration.email or "",
            "participant_phone": registration.phone or "",
            "participant_organization": registration.organization or "",
            "event_title": event.title or "",
            "event_description": event.description or "",
            "event_location": event.location or "",
            "event_start_date": fmt_long_date(event.start_date),
            "event_end_date": fmt_long_date(event.end_date),
            "event_date_range": fmt_date_range(event.start_date, event.end_date),
            "event_organizer": event.organizer_name or "Event Organizer",
            "registration_date": fmt_long_date(registration.created_at),
            "attendance_date": fmt_long_date(attendance.checked_in_at) if attendance else "",
            "registration_id": registration.registration_code or f"REG-{registration.id}",
            "certificate_issue_date": fmt_long_date(issued_on),
            "certificate_serial": f"{serial_number:03d}",
        }
        if codes is not None:
            values["certificate_code"] = codes.certificate_code
            values["verification_code"] = codes.verification_code
            values["certificate_url"] = self.verify_url(codes.verification_code)
        return values

    def resolve(
        self,
        event: Event,
        registration: Registration,
        serial_number: int,
        codes: CodePair | None = None,
        issued_on: date | None = None,
    ) -> FieldValues:
        candidates = self._candidates(
            event, registration, serial_number, codes, issued_on or date.today()
        )
        return {key: candidates[key] for key in self.registry.keys() if key in candidates}
