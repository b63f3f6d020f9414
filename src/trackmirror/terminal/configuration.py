# SPDX-License-Identifier: MIT

from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.table import Table

from trackmirror import configuration
from trackmirror.repository.configuration import CONFIGURATION_REPO
from trackmirror.terminal.custom_typer import ProfileAwareTyperGroup

app = typer.Typer(cls=ProfileAwareTyperGroup, no_args_is_help=True)


@app.command("view, v")
def view() -> None:
    """Display current configuration settings."""
    config = CONFIGURATION_REPO.get_config()

    console = Console()
    table = Table()
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="magenta")

    table.add_row(
        "show_header",
        "✓ Enabled" if config["show_header"] else "✗ Disabled",
    )
    table.add_row("log_level", config["log_level"])
    table.add_row("base_url", config["base_url"])
    table.add_row("request_timeout_seconds", str(config["request_timeout_seconds"]))
    table.add_row("debounce_seconds", str(config["debounce_seconds"]))
    table.add_row("max_attempts", str(config["max_attempts"]))
    table.add_row("backoff_base_seconds", str(config["backoff_base_seconds"]))
    table.add_row("backoff_max_seconds", str(config["backoff_max_seconds"]))
    table.add_row("rate_limit_count", str(config["rate_limit_count"]))
    table.add_row("rate_window_seconds", str(config["rate_window_seconds"]))
    table.add_row("history_capacity", str(config["history_capacity"]))
    table.add_row("history_weeks", str(config.get("history_weeks", 2)))
    table.add_row("config_path", str(configuration.APP_CONFIG_PATH))
    table.add_row("log_path", str(configuration.LOG_PATH))

    console.print(table)

    yaml_library_type = "untested"
    try:
        from yaml import CDumper as Dumper  # noqa: F401
        from yaml import CLoader as Loader  # noqa: F401

        yaml_library_type = "C"
    except ImportError:
        yaml_library_type = "Python"

    console.print()
    console.print(f"YAML Library Type: {yaml_library_type}")


@app.command("set, s")
def set(
    show_header: Annotated[
        Optional[bool],
        typer.Option("--show-header/--no-show-header", help="Show the report header"),
    ] = None,
    log_level: Annotated[
        Optional[str],
        typer.Option("--log-level", help="DEBUG, INFO, WARNING or ERROR"),
    ] = None,
    base_url: Annotated[
        Optional[str], typer.Option("--base-url", help="Time-tracking API root")
    ] = None,
    request_timeout_seconds: Annotated[
        Optional[float], typer.Option("--request-timeout", min=0.1)
    ] = None,
    debounce_seconds: Annotated[
        Optional[float],
        typer.Option("--debounce", min=0.0, help="Seconds an edit settles before sending"),
    ] = None,
    max_attempts: Annotated[Optional[int], typer.Option("--max-attempts", min=1)] = None,
    backoff_base_seconds: Annotated[
        Optional[float], typer.Option("--backoff-base", min=0.0)
    ] = None,
    backoff_max_seconds: Annotated[
        Optional[float], typer.Option("--backoff-max", min=0.0)
    ] = None,
    rate_limit_count: Annotated[
        Optional[int],
        typer.Option("--rate-limit", min=1, help="Requests allowed per window"),
    ] = None,
    rate_window_seconds: Annotated[
        Optional[float], typer.Option("--rate-window", min=0.0)
    ] = None,
    history_capacity: Annotated[
        Optional[int], typer.Option("--history-capacity", min=1)
    ] = None,
    history_weeks: Annotated[
        Optional[int],
        typer.Option("--history-weeks", min=1, help="Weeks of entries loaded at start"),
    ] = None,
) -> None:
    """Change configuration settings."""
    if log_level is not None and log_level.upper() not in (
        "DEBUG",
        "INFO",
        "WARNING",
        "ERROR",
    ):
        raise typer.BadParameter("log level must be DEBUG, INFO, WARNING or ERROR")

    CONFIGURATION_REPO.update_config(
        show_header=show_header,
        log_level=log_level,
        base_url=base_url,
        request_timeout_seconds=request_timeout_seconds,
        debounce_seconds=debounce_seconds,
        max_attempts=max_attempts,
        backoff_base_seconds=backoff_base_seconds,
        backoff_max_seconds=backoff_max_seconds,
        rate_limit_count=rate_limit_count,
        rate_window_seconds=rate_window_seconds,
        history_capacity=history_capacity,
        history_weeks=history_weeks,
    )
    view()
