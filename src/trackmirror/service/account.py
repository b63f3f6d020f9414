# SPDX-License-Identifier: MIT

import logging
from copy import deepcopy

from trackmirror.exceptions import ProfileError
from trackmirror.model.account import Account, Preferences
from trackmirror.model.profile import DATE_FORMATS, TIME_FORMATS, Profile

logger = logging.getLogger("trackmirror.account")


def apply_account_defaults(
    profile: Profile, account: Account, preferences: Preferences
) -> Profile:
    """
    Return a copy of `profile` with the workspace, week start and display
    formats the user chose on the server.

    Formats we cannot display are skipped and the profile keeps its own.
    """
    seeded = deepcopy(profile)
    if account["default_workspace_id"] is not None:
        seeded["workspace_id"] = account["default_workspace_id"]
    seeded["week_start"] = account["week_start"]

    if preferences["date_format"] in DATE_FORMATS:
        seeded["date_format"] = preferences["date_format"]
    else:
        logger.warning(
            "Unknown date format %r, keeping %s",
            preferences["date_format"],
            seeded["date_format"],
            extra={"event": "preferences_unknown_format"},
        )
    if preferences["time_format"] in TIME_FORMATS:
        seeded["time_format"] = preferences["time_format"]
    else:
        logger.warning(
            "Unknown time format %r, keeping %s",
            preferences["time_format"],
            seeded["time_format"],
            extra={"event": "preferences_unknown_format"},
        )
    return seeded


def check_workspace(workspace_id: int, account: Account) -> None:
    if not any(workspace["id"] == workspace_id for workspace in account["workspaces"]):
        raise ProfileError(f"Workspace {workspace_id} is not available to this API token")


def check_profile(profile: Profile, account: Account) -> None:
    """Raise ProfileError unless the account can use the profile's workspace and default project."""
    workspace_id = profile["workspace_id"]
    check_workspace(workspace_id, account)

    project_id = profile["default_project_id"]
    if project_id is None:
        return
    project = next(
        (
            project
            for project in account["projects"]
            if project["id"] == project_id and project["workspace_id"] == workspace_id
        ),
        None,
    )
    if project is None:
        raise ProfileError(f"Project {project_id} does not belong to workspace {workspace_id}")
    if not project["active"]:
        raise ProfileError(f"Project {project['name']} is archived")
