# SPDX-License-Identifier: MIT

"""Per-invocation view settings, kept in context variables."""

from contextvars import ContextVar

# Set from config.yaml at start-up and overridden by --no-header
_show_header: ContextVar[bool] = ContextVar("trackmirror_show_header", default=True)


def set_show_header(value: bool) -> None:
    _show_header.set(value)


def get_show_header() -> bool:
    """Whether views print the application header before their tables."""
    return _show_header.get()
