# SPDX-License-Identifier: MIT

from trackmirror.model.profile import Profile
from trackmirror.time import (
    DEFAULT_DATE_FORMAT,
    DEFAULT_TIME_FORMAT,
    DEFAULT_WEEK_START,
    now_utc,
)


def get_profile_template() -> Profile:
    now = now_utc()
    return {
        "id": None,
        "name": "",
        "api_token": "",
        "workspace_id": 0,
        "default_project_id": None,
        "date_format": DEFAULT_DATE_FORMAT,
        "time_format": DEFAULT_TIME_FORMAT,
        "week_start": DEFAULT_WEEK_START,
        "active": False,
        "created": now,
        "updated": now,
    }
