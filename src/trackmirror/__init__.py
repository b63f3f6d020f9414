# SPDX-License-Identifier: MIT

"""Mirror and edit Toggl Track time entries from the terminal."""

from trackmirror.cleanup import register_cleanup
from trackmirror.initialize import initialize
from trackmirror.terminal.app import run


def main() -> None:
    """Console entry point: prepare the config files, flush them at exit, run the CLI."""
    initialize()
    register_cleanup()
    run()
