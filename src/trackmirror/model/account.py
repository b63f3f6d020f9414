# SPDX-License-Identifier: MIT

from typing import Optional, TypedDict


class Workspace(TypedDict):
    id: int
    name: str


class Project(TypedDict):
    id: int
    name: str
    workspace_id: int
    active: bool


class Account(TypedDict):
    """The signed-in user with the workspaces and projects they can see."""

    default_workspace_id: Optional[int]
    week_start: int  # 0 = Sunday ... 6 = Saturday
    workspaces: list[Workspace]
    projects: list[Project]


class Preferences(TypedDict):
    date_format: str  # e.g. "MM/DD/YYYY", not necessarily one we can display
    time_format: str  # "H:mm" or "h:mm A"
