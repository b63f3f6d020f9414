# SPDX-License-Identifier: MIT

import re
from typing import Optional

import pendulum
import typer

from trackmirror import time
from trackmirror.time import DEFAULT_DATE_FORMAT, DEFAULT_TIME_FORMAT


def parse_datetime(
    datetime_param: Optional[str],
    date_format: str = DEFAULT_DATE_FORMAT,
    time_format: str = DEFAULT_TIME_FORMAT,
) -> Optional[pendulum.DateTime]:
    if datetime_param is None:
        return None

    datetime = datetime_param.strip()

    if datetime == "now" or datetime == "n":
        return time.now_utc()

    # Match (H)H:mm format (time only, use today's date)
    time_match = re.match(r"^(\d{1,2}):(\d{2})$", datetime)
    if time_match:
        hour = int(time_match.group(1))
        minute = int(time_match.group(2))

        if hour < 0 or hour > 23:
            raise typer.BadParameter(f"Hour must be between 0 and 23, got {hour}")
        if minute < 0 or minute > 59:
            raise typer.BadParameter(f"Minute must be between 0 and 59, got {minute}")

        pendulum_date_time = pendulum.today("local").set(
            hour=hour, minute=minute, second=0, microsecond=0
        )
        return pendulum_date_time.in_tz("UTC")

    # Match YYYY-MM-DD format (with optional time component)
    if re.match(r"^\d{4}-\d{2}-\d{2}", datetime):
        return pendulum.parse(datetime, tz="local").in_tz("UTC")  # type: ignore[union-attr]

    try:
        return time.parse_datetime(datetime, date_format, time_format)
    except ValueError as e:
        raise typer.BadParameter(
            f"Expected '{date_format} {time_format}', HH:mm or 'now': {e}"
        ) from e


def parse_week_start(week_start: Optional[str]) -> Optional[int]:
    """Accept 0-6 (Sunday = 0) or a weekday name such as 'monday' or 'mon'."""
    if week_start is None:
        return None
    value = week_start.strip().lower()
    if value.isdigit():
        number = int(value)
        if 0 <= number <= 6:
            return number
        raise typer.BadParameter("week start must be between 0 (Sunday) and 6 (Saturday)")
    names = ["sunday", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday"]
    for index, name in enumerate(names):
        if len(value) >= 3 and name.startswith(value):
            return index
    raise typer.BadParameter(f"Unknown weekday: {week_start}")
