# SPDX-License-Identifier: MIT

from typing import Annotated, Optional

import typer

from trackmirror.model.account import Account
from trackmirror.model.profile import DATE_FORMATS, TIME_FORMATS
from trackmirror.repository.history import HISTORY_REPO
from trackmirror.repository.profile import PROFILE_REPO
from trackmirror.service.account import apply_account_defaults, check_profile
from trackmirror.template.profile import get_profile_template
from trackmirror.terminal.custom_typer import ProfileAwareTyperGroup
from trackmirror.terminal.parse import parse_week_start
from trackmirror.terminal.session import fetch_account_details, handle_errors
from trackmirror.view.views import profile as profile_report

app = typer.Typer(cls=ProfileAwareTyperGroup, no_args_is_help=True)


def validate_formats(date_format: Optional[str], time_format: Optional[str]) -> None:
    if date_format is not None and date_format not in DATE_FORMATS:
        raise typer.BadParameter(
            f"date format must be one of: {', '.join(DATE_FORMATS)}"
        )
    if time_format is not None and time_format not in TIME_FORMATS:
        raise typer.BadParameter(
            f"time format must be one of: {', '.join(TIME_FORMATS)}"
        )


def active_profile_name() -> str:
    active_profile = PROFILE_REPO.get_active_profile_optional()
    return active_profile["name"] if active_profile is not None else "none"


@app.command("add, a", no_args_is_help=True)
def add(
    name: str,
    api_token: Annotated[str, typer.Option("--token", "-t", prompt=True, hide_input=True)],
    workspace_id: Annotated[
        Optional[int],
        typer.Option(
            "--workspace",
            "-w",
            help="leave out to use the account's default workspace, week start and formats",
        ),
    ] = None,
    default_project_id: Annotated[
        Optional[int], typer.Option("--default-project", "-p")
    ] = None,
    date_format: Annotated[
        Optional[str], typer.Option("--date-format", "-df")
    ] = None,
    time_format: Annotated[
        Optional[str], typer.Option("--time-format", "-tf")
    ] = None,
    week_start: Annotated[
        Optional[str],
        typer.Option("--week-start", "-ws", help="0-6 with Sunday as 0, or a weekday name"),
    ] = None,
    activate: Annotated[bool, typer.Option("--activate", "-a")] = False,
) -> None:
    validate_formats(date_format, time_format)

    profile = get_profile_template()
    profile["name"] = name
    profile["api_token"] = api_token

    account: Optional[Account] = None
    if workspace_id is None:
        with handle_errors():
            account, preferences = fetch_account_details(profile)
        profile = apply_account_defaults(profile, account, preferences)
    else:
        profile["workspace_id"] = workspace_id
    profile["default_project_id"] = default_project_id
    if date_format is not None:
        profile["date_format"] = date_format
    if time_format is not None:
        profile["time_format"] = time_format
    parsed_week_start = parse_week_start(week_start)
    if parsed_week_start is not None:
        profile["week_start"] = parsed_week_start
    profile["active"] = activate

    with handle_errors():
        if account is not None:
            check_profile(profile, account)
        PROFILE_REPO.save_new_profile(profile)
        new_profile = PROFILE_REPO.get_profile_by_name(name)

    profile_report.single_profile_view(active_profile_name(), new_profile)


@app.command("edit, ed", no_args_is_help=True)
def edit(
    name: str,
    api_token: Annotated[Optional[str], typer.Option("--token", "-t")] = None,
    workspace_id: Annotated[Optional[int], typer.Option("--workspace", "-w")] = None,
    default_project_id: Annotated[
        Optional[int], typer.Option("--default-project", "-p")
    ] = None,
    remove_default_project: Annotated[
        bool, typer.Option("--remove-default-project", "-rp")
    ] = False,
    date_format: Annotated[
        Optional[str], typer.Option("--date-format", "-df")
    ] = None,
    time_format: Annotated[
        Optional[str], typer.Option("--time-format", "-tf")
    ] = None,
    week_start: Annotated[Optional[str], typer.Option("--week-start", "-ws")] = None,
) -> None:
    validate_formats(date_format, time_format)
    with handle_errors():
        profile = PROFILE_REPO.modify_profile(
            name,
            api_token=api_token,
            workspace_id=workspace_id,
            default_project_id=default_project_id,
            remove_default_project=remove_default_project,
            date_format=date_format,
            time_format=time_format,
            week_start=parse_week_start(week_start),
        )
    profile_report.single_profile_view(active_profile_name(), profile)


@app.command("use, u", no_args_is_help=True)
def use(name: str) -> None:
    with handle_errors():
        profile = PROFILE_REPO.activate_profile(name)
    profile_report.single_profile_view(profile["name"], profile)


@app.command("list, ls")
def list_profiles() -> None:
    profile_report.profiles_view(active_profile_name(), PROFILE_REPO.get_all_profiles())


@app.command("remove, rm", no_args_is_help=True)
def remove(name: str) -> None:
    with handle_errors():
        PROFILE_REPO.remove_profile(name)
        HISTORY_REPO.remove_history(name)
    profile_report.profiles_view(active_profile_name(), PROFILE_REPO.get_all_profiles())
