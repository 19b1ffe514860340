from __future__ import annotations

from datetime import datetime

from ..app import db
from ..models import Attendance, Registration
from ..shared.time import utc_naive

ELIGIBLE_STATUS = "confirmed"


class AttendanceValidationError(ValueError):
    """Raised when a check-in cannot be recorded for the registration."""


def record_check_in(
    registration: Registration, checked_in_at: datetime | None = None
) -> Attendance:
    """Create or update the check-in for a registration."""

    if registration.status != ELIGIBLE_STATUS:
        raise AttendanceValidationError(
            "Only confirmed registrations can be checked in."
        )
    when = checked_in_at or utc_naive()
    record = Attendance.query.filter_by(registration_id=registration.id).one_or_none()
    if record:
        record.checked_in_at = when
    else:
        record = Attendance(registration_id=registration.id, checked_in_at=when)
        db.session.add(record)
    return record


def is_eligible(registration: Registration) -> bool:
    return (
        registration.status == ELIGIBLE_STATUS
        and registration.attendance is not None
    )


def eligible_registrations(event_id: int) -> list[Registration]:
    """Confirmed registrations with a check-in, earliest check-in first."""

    return (
        db.session.query(Registration)
        .join(Attendance, Attendance.registration_id == Registration.id)
        .filter(
            Registration.event_id == event_id,
            Registration.status == ELIGIBLE_STATUS,
        )
        .order_by(Attendance.checked_in_at, Registration.id)
        .all()
    )
