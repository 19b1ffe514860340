from datetime import date, datetime

from certengine.shared.time import fmt_date_range, fmt_long_date, now_utc, utc_naive


def test_long_date_has_no_leading_zero():
    assert fmt_long_date(date(2025, 1, 5)) == "January 5, 2025"
    assert fmt_long_date(datetime(2025, 12, 31, 23, 59)) == "December 31, 2025"
    assert fmt_long_date(None) == ""


def test_date_range_collapses_single_day():
    day = date(2025, 1, 15)

    assert fmt_date_range(day, day) == "January 15, 2025"
    assert fmt_date_range(day, None) == "January 15, 2025"
    assert fmt_date_range(None, None) == ""


def test_date_range_spans_days():
    assert (
        fmt_date_range(date(2025, 1, 15), date(2025, 1, 17))
        == "January 15, 2025 - January 17, 2025"
    )


def test_now_utc_is_aware():
    assert now_utc().tzinfo is not None


def test_utc_naive_drops_tzinfo():
    value = utc_naive()

    assert value.tzinfo is None
    assert abs((now_utc().replace(tzinfo=None) - value).total_seconds()) < 5
