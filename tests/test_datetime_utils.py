from datetime import datetime, timedelta, timezone

from datetime_utils import UTC, ensure_utc, epoch_ms, parse_rfc3339, to_rfc3339_utc


def test_parse_rfc3339_variants():
    assert parse_rfc3339("2024-03-01T10:00:00Z") == datetime(2024, 3, 1, 10, tzinfo=UTC)
    assert parse_rfc3339("2024-03-01T12:00:00.5+02:00") == datetime(2024, 3, 1, 10, 0, 0, 500000, tzinfo=UTC)
    assert parse_rfc3339("") is None
    assert parse_rfc3339("yesterday") is None


def test_to_rfc3339_keeps_milliseconds():
    value = datetime(2024, 3, 1, 10, 0, 0, 123456, tzinfo=UTC)
    assert to_rfc3339_utc(value) == "2024-03-01T10:00:00.123Z"
    assert to_rfc3339_utc(None) is None


def test_ensure_utc_treats_naive_as_utc():
    naive = datetime(2024, 3, 1, 10)
    assert ensure_utc(naive).tzinfo is UTC
    shifted = datetime(2024, 3, 1, 12, tzinfo=timezone(timedelta(hours=2)))
    assert ensure_utc(shifted) == datetime(2024, 3, 1, 10, tzinfo=UTC)


def test_epoch_ms():
    assert epoch_ms(datetime(1970, 1, 1, 0, 0, 1, tzinfo=UTC)) == 1000
