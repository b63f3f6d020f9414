# SPDX-License-Identifier: MIT

import datetime
from typing import Optional, cast

import pendulum

DEFAULT_DATE_FORMAT = "DD-MM-YYYY"
DEFAULT_TIME_FORMAT = "H:mm"
DEFAULT_WEEK_START = 1  # Monday, counting Sunday as 0


def now_utc() -> pendulum.DateTime:
    return pendulum.now("UTC")


def to_local(datetime: pendulum.DateTime) -> pendulum.DateTime:
    return datetime.in_tz("local")


def datetime_to_iso_str(datetime: pendulum.DateTime) -> str:
    return datetime.in_tz("UTC").isoformat()


def datetime_to_iso_str_optional(
    datetime: Optional[pendulum.DateTime],
) -> Optional[str]:
    if datetime is None:
        return None
    return datetime_to_iso_str(datetime)


def datetime_from_str(datetime: str) -> pendulum.DateTime:
    return cast(pendulum.DateTime, pendulum.parse(datetime)).in_tz("UTC")


def datetime_from_str_optional(datetime: Optional[str]) -> Optional[pendulum.DateTime]:
    if datetime is None:
        return None
    return datetime_from_str(datetime)


def to_start_of_week(
    datetime: pendulum.DateTime, week_start: int = DEFAULT_WEEK_START
) -> pendulum.DateTime:
    """
    Return local midnight of the most recent `week_start` day on or before
    `datetime`.

    `week_start` counts days the way the remote service does: 0 is Sunday,
    1 is Monday and so on up to 6 for Saturday.
    """
    if not 0 <= week_start <= 6:
        raise ValueError(f"week_start must be between 0 and 6, got {week_start}")
    local_time = to_local(datetime)
    # isoweekday() is 1 for Monday and 7 for Sunday
    days_back = (local_time.isoweekday() % 7 - week_start) % 7
    return local_time.start_of("day").subtract(days=days_back)


def entry_duration(
    start: pendulum.DateTime,
    stop: Optional[pendulum.DateTime],
    now: Optional[pendulum.DateTime] = None,
) -> pendulum.Duration:
    """Duration of an entry; running entries are measured up to `now`."""
    end = stop if stop is not None else (now or now_utc())
    return pendulum.duration(seconds=int((end - start).total_seconds()))


def duration_to_hms(duration: datetime.timedelta) -> str:
    total_seconds = int(duration.total_seconds())
    seconds = total_seconds % 60
    minutes = (total_seconds // 60) % 60
    hours = total_seconds // 3600
    return f"{hours}:{minutes:02d}:{seconds:02d}"


def duration_to_hm(duration: datetime.timedelta) -> str:
    total_seconds = int(duration.total_seconds())
    minutes = (total_seconds // 60) % 60
    hours = total_seconds // 3600
    return f"{hours}:{minutes:02d}"


def format_datetime(
    datetime: Optional[pendulum.DateTime],
    date_format: str = DEFAULT_DATE_FORMAT,
    time_format: str = DEFAULT_TIME_FORMAT,
) -> str:
    if datetime is None:
        return ""
    return to_local(datetime).format(f"{date_format} {time_format}")


def parse_datetime(
    text: str,
    date_format: str = DEFAULT_DATE_FORMAT,
    time_format: str = DEFAULT_TIME_FORMAT,
) -> Optional[pendulum.DateTime]:
    """Parse local date-time text written in the profile's locale; empty text is None."""
    text = text.strip()
    if text == "":
        return None
    local_value = pendulum.from_format(text, f"{date_format} {time_format}", tz="local")
    return local_value.in_tz("UTC")
