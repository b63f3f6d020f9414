# SPDX-License-Identifier: MIT

from typing import Optional, TypedDict

import pendulum

from trackmirror.model.entity_id import EntityId


class Profile(TypedDict):
    id: Optional[EntityId]
    name: str
    api_token: str
    workspace_id: int
    default_project_id: Optional[int]
    date_format: str  # e.g. "DD-MM-YYYY"
    time_format: str  # "H:mm" or "h:mm A"
    week_start: int  # 0 = Sunday ... 6 = Saturday
    active: bool
    created: pendulum.DateTime
    updated: pendulum.DateTime


DATE_FORMATS: tuple[str, ...] = (
    "DD/MM/YYYY",
    "DD-MM-YYYY",
    "DD.MM.YYYY",
    "MM/DD/YYYY",
    "MM-DD-YYYY",
    "YYYY-MM-DD",
)

TIME_FORMATS: tuple[str, ...] = ("H:mm", "h:mm A")
