# SPDX-License-Identifier: MIT

from typing import Annotated, Optional

import typer

from trackmirror.exceptions import InvalidEditError
from trackmirror.model.entity_id import EntityId
from trackmirror.model.time_entry import EntryDelta
from trackmirror.service.session import SessionManager
from trackmirror.terminal.custom_typer import ProfileAwareTyperGroup
from trackmirror.terminal.parse import parse_datetime
from trackmirror.terminal.session import open_session
from trackmirror.view.views import entry as entry_report

app = typer.Typer(cls=ProfileAwareTyperGroup, no_args_is_help=True)

RUNNING_ALIASES = ("running", "r", "current")


def resolve_entry(session: SessionManager, id: str) -> EntityId:
    """Map a server id, or 'running', onto the store key of a loaded entry."""
    if id in RUNNING_ALIASES:
        key = session.store.running_key
        if key is None:
            raise InvalidEditError("No entry is running")
        return key
    try:
        server_id = int(id)
    except ValueError as e:
        raise typer.BadParameter(f"Expected an entry id or 'running', got {id}") from e
    key = session.store.key_for_server_id(server_id)
    if key is None:
        raise InvalidEditError(
            f"Entry {server_id} is not loaded; try `trackmirror entry more`"
        )
    return key


def show_entries(session: SessionManager) -> None:
    entry_report.entries_view(
        session.profile["name"],
        session.store.running,
        session.store.entries,
        session.store.week_total(week_start=session.week_start),
        session.date_format,
        session.time_format,
        session.project_names(),
    )


def show_entry(session: SessionManager, key: Optional[EntityId]) -> None:
    entry = session.store.get(key) if key is not None and session.store.contains(key) else None
    entry_report.single_entry_view(
        session.profile["name"],
        entry,
        session.date_format,
        session.time_format,
        session.project_names(),
    )


@app.command("start, s")
def start(
    description: Annotated[str, typer.Argument()] = "",
    project: Annotated[
        Optional[int],
        typer.Option("--project", "-p", help="project id, defaults to the profile's"),
    ] = None,
    tags: Annotated[
        Optional[list[str]],
        typer.Option("--tag", "-t", help="accepts multiple tag options"),
    ] = None,
    billable: Annotated[bool, typer.Option("--billable", "-b")] = False,
    start: Annotated[
        Optional[str],
        typer.Option("--start", "-st", help="start time, defaults to now"),
    ] = None,
) -> None:
    """Start a new running entry, stopping the current one."""
    with open_session() as session:
        key = session.store.start_entry(
            description=description,
            project_id=project,
            tags=tags,
            billable=billable,
            start=parse_datetime(start, session.date_format, session.time_format),
        )
    show_entry(session, key)


@app.command("stop, x")
def stop(
    at: Annotated[
        Optional[str],
        typer.Option("--at", "-a", help="stop time, defaults to now"),
    ] = None,
) -> None:
    """Stop the running entry."""
    with open_session() as session:
        key = session.store.running_key
        if key is None:
            raise InvalidEditError("No entry is running")
        session.store.stop_running(
            parse_datetime(at, session.date_format, session.time_format)
        )
    show_entry(session, key)


@app.command("status, st")
def status() -> None:
    """Show the running entry."""
    with open_session() as session:
        show_entry(session, session.store.running_key)


@app.command("list, ls")
def list_entries() -> None:
    """List the running entry and the recent entries."""
    with open_session() as session:
        show_entries(session)


@app.command("edit, ed", no_args_is_help=True)
def edit(
    id: Annotated[str, typer.Argument(help="entry id or 'running'")],
    description: Annotated[
        Optional[str], typer.Option("--description", "-d")
    ] = None,
    start: Annotated[Optional[str], typer.Option("--start", "-st")] = None,
    stop: Annotated[Optional[str], typer.Option("--stop", "-sp")] = None,
    project: Annotated[Optional[int], typer.Option("--project", "-p")] = None,
    remove_project: Annotated[
        bool, typer.Option("--remove-project", "-rp")
    ] = False,
    tags: Annotated[
        Optional[list[str]],
        typer.Option("--tag", "-t", help="replaces the tags; accepts multiple"),
    ] = None,
    remove_tags: Annotated[bool, typer.Option("--remove-tags", "-rt")] = False,
    billable: Annotated[
        Optional[bool], typer.Option("--billable/--not-billable")
    ] = None,
) -> None:
    """Edit an entry; the change shows immediately and is confirmed by the server."""
    with open_session() as session:
        key = resolve_entry(session, id)
        delta: EntryDelta = {}
        if description is not None:
            delta["description"] = description
        if start is not None:
            parsed_start = parse_datetime(start, session.date_format, session.time_format)
            if parsed_start is None:
                raise typer.BadParameter("An entry always needs a start time")
            delta["start"] = parsed_start
        if stop is not None:
            delta["stop"] = parse_datetime(stop, session.date_format, session.time_format)
        if project is not None:
            delta["project_id"] = project
        if remove_project:
            delta["project_id"] = None
        if tags is not None:
            delta["tags"] = tags
        if remove_tags:
            delta["tags"] = []

        if delta:
            session.history.record(key, delta)
        if billable is not None:
            session.store.apply_local_edit(key, {"billable": billable})
    show_entry(session, key)


@app.command("delete, del", no_args_is_help=True)
def delete(
    id: Annotated[str, typer.Argument(help="entry id or 'running'")],
) -> None:
    """Delete an entry."""
    with open_session() as session:
        session.store.delete_entry(resolve_entry(session, id))
    show_entries(session)


@app.command("continue, c", no_args_is_help=True)
def continue_entry(
    id: Annotated[str, typer.Argument(help="entry id to continue")],
) -> None:
    """Start a new running entry with the description, project and tags of another."""
    with open_session() as session:
        key = session.store.continue_entry(resolve_entry(session, id))
    show_entry(session, key)


@app.command("more, m")
def more(
    weeks: Annotated[int, typer.Option("--weeks", "-w", min=1)] = 1,
) -> None:
    """Load entries from the weeks before the current window and list everything."""
    with open_session() as session:
        session.load_more(weeks)
        show_entries(session)


@app.command("undo, u")
def undo() -> None:
    """Undo the last `entry edit`, also one made by an earlier command."""
    with open_session() as session:
        if not session.history.undo():
            raise InvalidEditError("Nothing to undo")
    show_entries(session)


@app.command("redo, r")
def redo() -> None:
    """Redo the last undone edit."""
    with open_session() as session:
        if not session.history.redo():
            raise InvalidEditError("Nothing to redo")
    show_entries(session)
