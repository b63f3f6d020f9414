# SPDX-License-Identifier: MIT

from typing import Optional, TypedDict

import pendulum

from trackmirror.model.entity_id import EntityId, ServerId


class TimeEntry(TypedDict):
    key: EntityId  # Local identity, stable while the entry lives in the store
    id: Optional[ServerId]  # None until the server confirms the create
    workspace_id: int
    description: str
    start: pendulum.DateTime
    stop: Optional[pendulum.DateTime]  # None while running
    project_id: Optional[int]
    tags: list[str]
    billable: bool
    duration: Optional[int]  # Server-computed seconds, negative while running


class EntryDelta(TypedDict, total=False):
    description: str
    start: pendulum.DateTime
    stop: Optional[pendulum.DateTime]
    project_id: Optional[int]
    tags: list[str]
    billable: bool


EDITABLE_FIELDS: tuple[str, ...] = (
    "description",
    "start",
    "stop",
    "project_id",
    "tags",
    "billable",
)

HISTORIED_FIELDS: tuple[str, ...] = (
    "description",
    "start",
    "stop",
    "project_id",
    "tags",
)

# Fields the server owns outright; adopted whenever a response is accepted
SERVER_FIELDS: tuple[str, ...] = ("id", "workspace_id", "duration")
