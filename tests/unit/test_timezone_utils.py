from datetime import date, datetime, timezone

from gymapp.core.timezone_utils import (
    class_start_instant,
    convert_gym_time_to_utc,
    convert_utc_to_local,
    format_class_moment,
    gym_today,
    month_bounds,
    to_class_date,
)

BUENOS_AIRES = 'America/Argentina/Buenos_Aires'


def test_convert_gym_time_to_utc_buenos_aires():
    # Buenos Aires es UTC-3 todo el año
    utc_dt = convert_gym_time_to_utc(datetime(2025, 7, 1, 10, 0), BUENOS_AIRES)
    assert utc_dt.tzinfo is not None
    assert utc_dt.hour == 13 and utc_dt.minute == 0


def test_convert_utc_to_local_naive_is_utc():
    local = convert_utc_to_local(datetime(2025, 7, 1, 2, 30), BUENOS_AIRES)
    assert local.day == 30 and local.month == 6
    assert local.hour == 23 and local.minute == 30


def test_to_class_date_normalizes_to_noon():
    assert to_class_date(date(2024, 5, 10)) == datetime(2024, 5, 10, 12, 0)
    assert to_class_date(datetime(2024, 5, 10, 23, 59)) == datetime(2024, 5, 10, 12, 0)
    assert to_class_date("2024-05-10T03:00:00Z") == datetime(2024, 5, 10, 12, 0)


def test_class_start_instant_uses_gym_timezone():
    start = class_start_instant(datetime(2024, 5, 10, 12, 0), "18:30", BUENOS_AIRES)
    assert start == datetime(2024, 5, 10, 21, 30, tzinfo=timezone.utc)


def test_class_start_instant_new_york_dst():
    # Julio: EDT (UTC-4)
    start = class_start_instant(datetime(2025, 7, 1, 12, 0), "10:00", 'America/New_York')
    assert start == datetime(2025, 7, 1, 14, 0, tzinfo=timezone.utc)


def test_gym_today_crosses_midnight():
    # 01:00 UTC del 2 de marzo son las 22:00 del 1 de marzo en Buenos Aires
    now = datetime(2024, 3, 2, 1, 0, tzinfo=timezone.utc)
    assert gym_today(BUENOS_AIRES, now=now) == date(2024, 3, 1)


def test_month_bounds():
    assert month_bounds(2024, 2) == (date(2024, 2, 1), date(2024, 2, 29))
    assert month_bounds(2024, 12) == (date(2024, 12, 1), date(2024, 12, 31))


def test_format_class_moment():
    assert format_class_moment(datetime(2024, 5, 10, 12, 0), "18:00") == "10/05/2024 a las 18:00"
