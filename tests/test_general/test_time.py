"""
Time utility tests
"""

from datetime import datetime, timezone

import pytest

from bullrace.utils.time import (
    datetime_to_epoch_ms,
    epoch_ms_to_datetime,
    format_race_time,
)


def test_epoch_conversion():
    """
    Datetimes convert to epoch milliseconds and back
    """
    moment = datetime(2025, 1, 15, 9, 30, 0, 250000, tzinfo=timezone.utc)
    milliseconds = datetime_to_epoch_ms(moment)

    assert milliseconds == 1736933400250
    assert epoch_ms_to_datetime(milliseconds) == moment


def test_naive_is_utc():
    """
    Naive datetimes are treated as UTC
    """
    naive = datetime(2025, 1, 15, 9, 30)
    aware = naive.replace(tzinfo=timezone.utc)

    assert datetime_to_epoch_ms(naive) == datetime_to_epoch_ms(aware)


@pytest.mark.parametrize(
    ("milliseconds", "expected"),
    [
        (0, "00:00.00"),
        (15000, "00:15.00"),
        (65432, "01:05.43"),
        (300000, "05:00.00"),
    ],
)
def test_format_race_time(milliseconds: int, expected: str):
    """
    Elapsed times are shown as minutes, seconds and hundredths
    """
    assert format_race_time(milliseconds) == expected


def test_format_without_hundredths():
    """
    Hundredths can be left off
    """
    assert format_race_time(65432, show_ms=False) == "01:05"
