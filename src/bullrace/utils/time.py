"""
Custom time utilities
"""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """
    The current timezone aware time in UTC

    :return: A datetime object
    """
    return datetime.now(tz=timezone.utc)


def get_current_epoch_ms() -> float:
    """
    Calcuate the current time in milliseconds relative to 1 January 1970

    :return: The time in milliseconds
    """
    return utc_now().timestamp() * 1000


def datetime_to_epoch_ms(datetime_: datetime) -> float:
    """
    Convert a datetime into milliseconds since epoch. Naive datetimes
    are assumed to be in UTC.

    :param datetime_: The datetime object to convert
    :return: The time in milliseconds
    """
    if datetime_.tzinfo is None:
        datetime_ = datetime_.replace(tzinfo=timezone.utc)

    return datetime_.timestamp() * 1000


def epoch_ms_to_datetime(milliseconds: float) -> datetime:
    """
    Convert milliseconds since epoch into a UTC datetime

    :param milliseconds: Milliseconds since epoch start time
    :return: A timezone aware datetime
    """
    return datetime.fromtimestamp(milliseconds / 1000.0, tz=timezone.utc)


def format_race_time(milliseconds: int, *, show_ms: bool = True) -> str:
    """
    Format an elapsed time the way it is shown on the race clock,
    `MM:SS.cc` with hundredths of a second

    :param milliseconds: The elapsed time
    :param show_ms: Whether to include hundredths of a second
    :return: The formatted time
    """
    total_seconds, remainder = divmod(int(milliseconds), 1000)
    minutes, seconds = divmod(total_seconds, 60)

    if not show_ms:
        return f"{minutes:02d}:{seconds:02d}"

    return f"{minutes:02d}:{seconds:02d}.{remainder // 10:02d}"
