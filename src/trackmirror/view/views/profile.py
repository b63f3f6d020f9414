# SPDX-License-Identifier: MIT

from rich import box
from rich.console import Console
from rich.table import Table

from trackmirror.model.profile import Profile
from trackmirror.time import format_datetime
from trackmirror.view.util import format_optional_int
from trackmirror.view.views.header import header

WEEKDAY_NAMES = (
    "Sunday",
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
)


def mask_token(token: str) -> str:
    if len(token) <= 4:
        return "*" * len(token)
    return "*" * (len(token) - 4) + token[-4:]


def profiles_view(active_profile: str, profiles: list[Profile]) -> None:
    header(active_profile, "profiles")

    profiles_table = Table(box=box.SIMPLE)
    profiles_table.add_column("active")
    profiles_table.add_column("name")
    profiles_table.add_column("workspace")
    profiles_table.add_column("default_project")
    profiles_table.add_column("week_start")

    for profile in profiles:
        profiles_table.add_row(
            "✓" if profile["active"] else " ",
            profile["name"],
            str(profile["workspace_id"]),
            format_optional_int(profile["default_project_id"]),
            WEEKDAY_NAMES[profile["week_start"]],
        )

    console = Console()
    console.print(profiles_table)


def single_profile_view(active_profile: str, profile: Profile) -> None:
    header(active_profile, "profile")

    profile_table = Table(box=box.SIMPLE)
    profile_table.add_column("property")
    profile_table.add_column("value")

    profile_table.add_row("name", profile["name"])
    profile_table.add_row("active", "✓" if profile["active"] else "✗")
    profile_table.add_row("api_token", mask_token(profile["api_token"]))
    profile_table.add_row("workspace", str(profile["workspace_id"]))
    profile_table.add_row(
        "default_project", format_optional_int(profile["default_project_id"])
    )
    profile_table.add_row("date_format", profile["date_format"])
    profile_table.add_row("time_format", profile["time_format"])
    profile_table.add_row("week_start", WEEKDAY_NAMES[profile["week_start"]])
    profile_table.add_row("created", format_datetime(profile["created"]))
    profile_table.add_row("updated", format_datetime(profile["updated"]))

    console = Console()
    console.print(profile_table)
