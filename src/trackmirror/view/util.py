# SPDX-License-Identifier: MIT

from typing import Optional

from trackmirror.model.time_entry import TimeEntry


def format_tags(tags: Optional[list[str]]) -> str:
    """Format a list of tags as a comma-separated string without brackets or quotes."""
    if tags is None or len(tags) == 0:
        return ""
    return ", ".join(tags)


def format_server_id(entry: TimeEntry) -> str:
    # Pending creates have no server id yet
    return str(entry["id"]) if entry["id"] is not None else "…"


def format_optional_int(value: Optional[int]) -> str:
    return str(value) if value is not None else ""


def format_project(project_id: Optional[int], project_names: Optional[dict[int, str]]) -> str:
    """Project name when known, otherwise its id."""
    if project_id is None:
        return ""
    if project_names and project_id in project_names:
        return project_names[project_id]
    return str(project_id)
