from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator

from ..errors import UnknownField

CATEGORIES = ("participant", "event", "registration", "system")
DATA_TYPES = ("text", "date", "number", "email", "phone")


@dataclass(frozen=True)
class DataField:
    key: str
    label: str
    category: str
    data_type: str
    description: str = ""
    example: str | None = None

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "label": self.label,
            "description": self.description,
            "category": self.category,
            "dataType": self.data_type,
            "example": self.example,
        }


DEFAULT_DATA_FIELDS: tuple[DataField, ...] = (
    DataField("participant_name", "Participant Name", "participant", "text",
              "Full name of the participant", "John Doe"),
    DataField("participant_email", "Participant Email", "participant", "email",
              "Email address of the participant", "john@example.com"),
    DataField("participant_phone", "Participant Phone", "participant", "phone",
              "Phone number from registration", "+1234567890"),
    DataField("participant_organization", "Participant Organization", "participant", "text",
              "Organization name from registration", "Tech Corp"),
    DataField("event_title", "Event Title", "event", "text",
              "Name of the event", "Tech Conference 2025"),
    DataField("event_description", "Event Description", "event", "text",
              "Event description", "Annual technology conference"),
    DataField("event_location", "Event Location", "event", "text",
              "Event venue or location", "New York Convention Center"),
    DataField("event_start_date", "Event Start Date", "event", "date",
              "Event start date", "January 15, 2025"),
    DataField("event_end_date", "Event End Date", "event", "date",
              "Event end date", "January 17, 2025"),
    DataField("event_date_range", "Event Date Range", "event", "text",
              "Complete date range", "January 15, 2025 - January 17, 2025"),
    DataField("event_organizer", "Event Organizer", "event", "text",
              "Name of the event organizer", "Event Management Inc."),
    DataField("registration_date", "Registration Date", "registration", "date",
              "Date when participant registered", "December 1, 2024"),
    DataField("attendance_date", "Attendance Date", "registration", "date",
              "Date when participant attended", "January 15, 2025"),
    DataField("registration_id", "Registration ID", "registration", "text",
              "Unique registration identifier", "REG-12345"),
    DataField("certificate_code", "Certificate Code", "system", "text",
              "Code the recipient holds and shares", "CERT-7K2M9QX4LD3A"),
    DataField("verification_code", "Verification Code", "system", "text",
              "Code used for public verification", "VERIFY-Q8N3ZL0M4T7W2KXA"),
    DataField("certificate_issue_date", "Certificate Issue Date", "system", "date",
              "Date when certificate was issued", "January 20, 2025"),
    DataField("certificate_serial", "Certificate Serial Number", "system", "number",
              "Sequential certificate number", "001"),
    DataField("certificate_url", "Certificate URL", "system", "text",
              "URL for certificate verification",
              "https://verify.example.com/VERIFY-Q8N3ZL0M4T7W2KXA"),
)


class DataFieldRegistry:
    """Immutable, ordered catalog of the fields a template may be mapped to."""

    def __init__(self, fields: Iterable[DataField]):
        ordered: dict[str, DataField] = {}
        for field in fields:
            if field.key in ordered:
                raise ValueError(f"Duplicate data field key: {field.key!r}")
            if field.category not in CATEGORIES:
                raise ValueError(f"Unknown data field category: {field.category!r}")
            if field.data_type not in DATA_TYPES:
                raise ValueError(f"Unknown data field type: {field.data_type!r}")
            ordered[field.key] = field
        self._fields = ordered

    def list(self) -> tuple[DataField, ...]:
        return tuple(self._fields.values())

    def resolve(self, key: str) -> DataField:
        try:
            return self._fields[key]
        except KeyError:
            raise UnknownField([key]) from None

    def keys(self) -> tuple[str, ...]:
        return tuple(self._fields)

    def __contains__(self, key: object) -> bool:
        return key in self._fields

    def __iter__(self) -> Iterator[DataField]:
        return iter(self._fields.values())

    def __len__(self) -> int:
        return len(self._fields)
