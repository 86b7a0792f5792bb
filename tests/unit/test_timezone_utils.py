from datetime import datetime, timezone, timedelta

import pytest

from class_service.core.timezone_utils import (
    class_end_time,
    convert_gym_time_to_utc,
    ensure_aware_utc,
    normalize_to_utc,
)


def test_normalize_to_utc_naive_local():
    tz = 'Europe/Madrid'
    # 10 de julio de 2030 a las 10:00 hora local (CEST es UTC+2)
    local_naive = datetime(2030, 7, 10, 10, 0, 0)
    utc_dt = normalize_to_utc(local_naive, tz)
    assert utc_dt.tzinfo == timezone.utc
    assert utc_dt.hour == 8 and utc_dt.minute == 0


def test_normalize_to_utc_naive_winter_time():
    # En invierno Madrid es UTC+1
    utc_dt = normalize_to_utc(datetime(2030, 1, 10, 10, 0, 0), 'Europe/Madrid')
    assert utc_dt == datetime(2030, 1, 10, 9, 0, tzinfo=timezone.utc)


def test_normalize_to_utc_aware_input():
    aware_dt = datetime(2030, 7, 1, 10, 0, 0, tzinfo=timezone(timedelta(hours=2)))
    utc_dt = normalize_to_utc(aware_dt, 'America/New_York')
    assert utc_dt.tzinfo == timezone.utc
    assert utc_dt.hour == 8 and utc_dt.minute == 0


def test_normalize_to_utc_none():
    assert normalize_to_utc(None) is None


def test_convert_gym_time_rejects_aware_datetime():
    with pytest.raises(ValueError):
        convert_gym_time_to_utc(datetime(2030, 1, 1, tzinfo=timezone.utc), 'Europe/Madrid')


def test_ensure_aware_utc_marks_naive_as_utc():
    naive = datetime(2030, 1, 10, 10, 0)
    assert ensure_aware_utc(naive) == datetime(2030, 1, 10, 10, 0, tzinfo=timezone.utc)


def test_class_end_time():
    start = datetime(2030, 1, 10, 10, 0, tzinfo=timezone.utc)
    assert class_end_time(start, 45) == datetime(2030, 1, 10, 10, 45, tzinfo=timezone.utc)
