# SPDX-License-Identifier: MIT

from typing import Optional

from rich import print
from rich.padding import Padding

from trackmirror.view.state import get_show_header


def header(active_profile: str, sub_header: Optional[str] = None) -> None:
    """Print the application header with profile information.

    Args:
        active_profile: The name of the active profile
        sub_header: Optional sub-header text to display
    """
    if not get_show_header():
        return

    additional = ""
    if sub_header is not None:
        additional = f"[sandy_brown]{sub_header}[/sandy_brown]"
    active_profile = f"[plum1]{active_profile}[/plum1]"

    print(Padding("[dark_orange]trackmirror[/dark_orange]", (1, 0, 0, 1)))
    print(Padding(additional, (0, 1)))
    print(Padding(active_profile, (0, 1)))
