# SPDX-License-Identifier: MIT

from contextlib import contextmanager
from typing import Iterator

import typer
from rich.console import Console

from trackmirror.exceptions import TrackMirrorError
from trackmirror.gateway.base import Gateway
from trackmirror.gateway.toggl import TogglGateway
from trackmirror.model.account import Account, Preferences
from trackmirror.model.history_frame import HistoryFrame, StoredFrame
from trackmirror.model.mutation import EditRejected
from trackmirror.model.profile import Profile
from trackmirror.repository.configuration import CONFIGURATION_REPO
from trackmirror.repository.history import HISTORY_REPO
from trackmirror.repository.profile import PROFILE_REPO
from trackmirror.service.session import SessionManager
from trackmirror.view.views.entry import rejected_edits_view

DRAIN_TIMEOUT_SECONDS = 60.0

error_console = Console(stderr=True)


@contextmanager
def handle_errors() -> Iterator[None]:
    """Turn application errors into a red message and exit code 1."""
    try:
        yield
    except TrackMirrorError as e:
        error_console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from e


def build_gateway(profile: Profile) -> Gateway:
    config = CONFIGURATION_REPO.get_config()
    return TogglGateway(
        api_token=profile["api_token"],
        workspace_id=profile["workspace_id"],
        base_url=config["base_url"],
        timeout=config["request_timeout_seconds"],
    )


def fetch_account_details(profile: Profile) -> tuple[Account, Preferences]:
    """Ask the server which workspaces, projects and display preferences the profile's token has."""
    gateway = build_gateway(profile)
    return gateway.fetch_account(), gateway.fetch_preferences()


def restore_history(session: SessionManager, profile_name: str) -> None:
    """Bring back the undo/redo frames of earlier invocations for entries still in view."""
    stored = HISTORY_REPO.get_history(profile_name)
    session.history.restore(
        __frames_from_stored(session, stored["past"]),
        __frames_from_stored(session, stored["future"]),
    )


def save_history(session: SessionManager, profile_name: str) -> None:
    past, future = session.history.frames()
    HISTORY_REPO.save_history(
        profile_name,
        {
            "past": __frames_to_stored(session, past),
            "future": __frames_to_stored(session, future),
        },
    )


def __frames_from_stored(
    session: SessionManager, stored_frames: list[StoredFrame]
) -> list[HistoryFrame]:
    frames: list[HistoryFrame] = []
    for stored in stored_frames:
        key = session.store.key_for_server_id(stored["entry_id"])
        if key is None:
            continue
        frames.append(
            HistoryFrame(
                target=key,
                before=stored["before"],
                after=stored["after"],
                created=stored["created"],
                edit_id=stored["edit_id"],
            )
        )
    return frames


def __frames_to_stored(
    session: SessionManager, frames: list[HistoryFrame]
) -> list[StoredFrame]:
    stored_frames: list[StoredFrame] = []
    for frame in frames:
        if not session.store.contains(frame.target):
            continue
        server_id = session.store.get(frame.target)["id"]
        if server_id is None:
            continue
        stored_frames.append(
            {
                "entry_id": server_id,
                "before": frame.before,
                "after": frame.after,
                "created": frame.created,
                "edit_id": frame.edit_id,
            }
        )
    return stored_frames


@contextmanager
def open_session() -> Iterator[SessionManager]:
    """
    Open a session for the active profile and wait for every queued change to
    reach the server before leaving the block.
    """
    rejections: list[EditRejected] = []
    with handle_errors():
        config = CONFIGURATION_REPO.get_config()
        session = SessionManager(
            gateway_factory=build_gateway,
            scheduler_settings=CONFIGURATION_REPO.get_scheduler_settings(),
            history_capacity=config["history_capacity"],
            history_weeks=config["history_weeks"],
        )
        session.store.add_error_listener(rejections.append)
        try:
            profile = PROFILE_REPO.get_active_profile()
            session.switch(profile)
            restore_history(session, profile["name"])
            yield session
            drained = session.drain(timeout=DRAIN_TIMEOUT_SECONDS)
            save_history(session, profile["name"])
            if not drained:
                if session.is_unauthorized:
                    raise TrackMirrorError(
                        "The API token was rejected; update it with `trackmirror profile edit`"
                    )
                raise TrackMirrorError("Some changes could not be sent to the server")
        finally:
            session.close()
            rejected_edits_view(rejections)
