# SPDX-License-Identifier: MIT

from typing import Optional

import pendulum

from trackmirror.model.entity_id import generate_entity_id
from trackmirror.model.time_entry import TimeEntry
from trackmirror.time import now_utc


def get_time_entry_template(
    workspace_id: int, start: Optional[pendulum.DateTime] = None
) -> TimeEntry:
    return {
        "key": generate_entity_id(),
        "id": None,
        "workspace_id": workspace_id,
        "description": "",
        "start": start or now_utc(),
        "stop": None,
        "project_id": None,
        "tags": [],
        "billable": False,
        "duration": None,
    }
