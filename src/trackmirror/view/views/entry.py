# SPDX-License-Identifier: MIT

from typing import Optional

import pendulum
from rich import box
from rich.console import Console
from rich.table import Table

from trackmirror.model.mutation import EditRejected
from trackmirror.model.time_entry import TimeEntry
from trackmirror.time import (
    DEFAULT_DATE_FORMAT,
    DEFAULT_TIME_FORMAT,
    duration_to_hm,
    duration_to_hms,
    entry_duration,
    format_datetime,
)
from trackmirror.view.util import format_project, format_server_id, format_tags
from trackmirror.view.views.header import header


def entries_view(
    active_profile: str,
    running: Optional[TimeEntry],
    entries: list[TimeEntry],
    week_total: pendulum.Duration,
    date_format: str = DEFAULT_DATE_FORMAT,
    time_format: str = DEFAULT_TIME_FORMAT,
    project_names: Optional[dict[int, str]] = None,
) -> None:
    """Display the running entry followed by the recent stopped entries."""
    header(active_profile, "entries")

    entries_table = Table(box=box.SIMPLE)
    entries_table.add_column("id")
    entries_table.add_column("start")
    entries_table.add_column("stop")
    entries_table.add_column("duration", justify="right")
    entries_table.add_column("description")
    entries_table.add_column("project")
    entries_table.add_column("tags")

    now = pendulum.now("UTC")
    rows = ([running] if running is not None else []) + entries
    for entry in rows:
        is_running = entry["stop"] is None
        stop = "[green]running[/green]" if is_running else format_datetime(
            entry["stop"], date_format, time_format
        )
        entries_table.add_row(
            format_server_id(entry),
            format_datetime(entry["start"], date_format, time_format),
            stop,
            duration_to_hm(entry_duration(entry["start"], entry["stop"], now)),
            entry["description"],
            format_project(entry["project_id"], project_names),
            format_tags(entry["tags"]),
        )

    console = Console()
    console.print(entries_table)
    console.print(f" week total: [bold]{duration_to_hm(week_total)}[/bold]")


def single_entry_view(
    active_profile: str,
    entry: Optional[TimeEntry],
    date_format: str = DEFAULT_DATE_FORMAT,
    time_format: str = DEFAULT_TIME_FORMAT,
    project_names: Optional[dict[int, str]] = None,
) -> None:
    """Display every field of a single entry."""
    header(active_profile, "entry")

    console = Console()
    if entry is None:
        console.print(" [italic]no running entry[/italic]")
        return

    entry_table = Table(box=box.SIMPLE)
    entry_table.add_column("property")
    entry_table.add_column("value")

    entry_table.add_row("id", format_server_id(entry))
    entry_table.add_row("description", entry["description"])
    entry_table.add_row("start", format_datetime(entry["start"], date_format, time_format))
    entry_table.add_row("stop", format_datetime(entry["stop"], date_format, time_format))
    entry_table.add_row(
        "duration", duration_to_hms(entry_duration(entry["start"], entry["stop"]))
    )
    entry_table.add_row("project", format_project(entry["project_id"], project_names))
    entry_table.add_row("tags", format_tags(entry["tags"]))
    entry_table.add_row("billable", "✓" if entry["billable"] else "✗")
    entry_table.add_row("workspace", str(entry["workspace_id"]))

    console.print(entry_table)


def rejected_edits_view(rejections: list[EditRejected]) -> None:
    console = Console(stderr=True)
    for rejection in rejections:
        console.print(
            f"[red]The server rejected {rejection.kind}: {rejection.message}; "
            "the change was undone[/red]"
        )
