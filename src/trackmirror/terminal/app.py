# SPDX-License-Identifier: MIT

from typing import Annotated

import typer

from trackmirror.logging_config import configure_logging
from trackmirror.terminal import configuration, entry, profile
from trackmirror.terminal.custom_typer import ProfileAwareTyperGroup
from trackmirror.view import state as view_state

app = typer.Typer(
    cls=ProfileAwareTyperGroup,
    help="trackmirror - Toggl Track time entries in the CLI",
    no_args_is_help=True,
)
app.add_typer(entry.app, name="entry, e")
app.add_typer(profile.app, name="profile, p")
app.add_typer(configuration.app, name="config, c")


@app.callback()
def main_callback(
    no_header: Annotated[
        bool,
        typer.Option(
            "--no-header",
            "-nh",
            help="Suppress header output in reports",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log at debug level"),
    ] = False,
) -> None:
    """
    trackmirror - Toggl Track time entries in the CLI

    Global options that apply to all commands.
    """
    if no_header:
        view_state.set_show_header(False)
    if verbose:
        configure_logging("DEBUG")


def run() -> None:
    app()
