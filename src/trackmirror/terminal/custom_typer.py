# SPDX-License-Identifier: MIT

import re
from typing import Any, Optional

import click
import typer
import typer.core
from rich.console import Console
from rich.padding import Padding

from trackmirror import configuration
from trackmirror.repository.profile import PROFILE_REPO

console = Console()

ALIAS_SEPARATOR = re.compile(r" ?, ?")

# Top-level groups in help output; anything else follows in registration order
GROUP_ORDER = ("entry, e", "profile, p", "config, c")


def aliases_of(name: str) -> list[str]:
    """'entry, e' -> ['entry', 'e']"""
    return ALIAS_SEPARATOR.split(name)


def _show_active_profile(ctx: click.Context) -> None:
    """Print the active profile once per invocation, above the first help text."""
    root = ctx.find_root()
    if getattr(root, "_profile_shown", False):
        return
    root._profile_shown = True  # type: ignore[attr-defined]

    if not configuration.PROFILES_PATH.is_file():
        return
    active_profile = PROFILE_REPO.get_active_profile_optional()
    profile_name = active_profile["name"] if active_profile is not None else "none"

    console.print()
    console.print(
        Padding(
            f"[bold plum1]Active Profile: {profile_name}[/bold plum1]",
            (0, 0, 0, 1),
        )
    )


class ProfileAwareCommand(typer.core.TyperCommand):
    def format_help(
        self, ctx: click.Context, formatter: click.formatting.HelpFormatter
    ) -> None:
        _show_active_profile(ctx)
        super().format_help(ctx, formatter)


class AliasedTyperGroup(typer.core.TyperGroup):
    """Group whose commands are registered as 'name, alias' and answer to either."""

    def resolve_name(self, name: str) -> str:
        for registered in self.commands:
            if name in aliases_of(registered):
                return registered
        return name

    def get_command(self, ctx: click.Context, cmd_name: str) -> Optional[click.Command]:
        return super().get_command(ctx, self.resolve_name(cmd_name))

    def add_command(self, cmd: click.Command, name: Optional[str] = None) -> None:
        name = name or cmd.name or ""
        registered = self.resolve_name(name)
        if registered != name and registered in self.commands:
            # Already reachable through an alias of another registration
            return
        super().add_command(cmd, name)


class ProfileAwareTyperGroup(AliasedTyperGroup):
    """Aliased group that shows the active profile above every help page."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.command_class = ProfileAwareCommand

    def list_commands(self, ctx: click.Context) -> list[str]:
        ordered = [name for name in GROUP_ORDER if name in self.commands]
        return ordered + [name for name in self.commands if name not in ordered]

    def get_command(self, ctx: click.Context, cmd_name: str) -> Optional[click.Command]:
        command = super().get_command(ctx, cmd_name)
        if command is None or isinstance(command, ProfileAwareCommand):
            return command

        format_help = command.format_help

        def format_help_with_profile(
            help_ctx: click.Context, formatter: click.formatting.HelpFormatter
        ) -> None:
            _show_active_profile(help_ctx)
            format_help(help_ctx, formatter)

        command.format_help = format_help_with_profile  # type: ignore[method-assign]
        return command

    def format_help(
        self, ctx: click.Context, formatter: click.formatting.HelpFormatter
    ) -> None:
        _show_active_profile(ctx)
        super().format_help(ctx, formatter)
