from datetime import date, datetime, timezone


def now_utc() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def fmt_long_date(value: datetime | date | None) -> str:
    """Format dates as ``January 5, 2025``."""
    if not value:
        return ""
    if isinstance(value, datetime):
        value = value.date()
    return f"{value.strftime('%B')} {value.day}, {value.year}"


def fmt_date_range(start: date | None, end: date | None) -> str:
    if not start and not end:
        return ""
    if not start or not end or start == end:
        return fmt_long_date(start or end)
    return f"{fmt_long_date(start)} - {fmt_long_date(end)}"


def utc_naive() -> datetime:
    """Current UTC time without tzinfo, for naive timestamp columns."""
    return now_utc().replace(tzinfo=None)
