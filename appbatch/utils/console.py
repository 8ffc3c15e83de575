"""
Rich console helpers for the appbatch CLI.

Batch progress goes through :mod:`appbatch.utils.logger`. The helpers here
only render end-of-command output on stdout: status lines, the plan and
outcome tables, and the JSON plan.

Colors come from :data:`APPBATCH_THEME`; batch states and change kinds are
looked up there as ``state.<value>`` and ``change.<value>`` styles, so an
unknown value is simply printed without markup.
"""

from __future__ import annotations

import os
import sys
import json
from functools import lru_cache
from typing import Any, Dict, List, Mapping, Optional

from rich.table import Table
from rich.theme import Theme
from rich.console import Console

APPBATCH_THEME = Theme(
    {
        "ok": "bold green",
        "error": "bold red",
        "warning": "bold yellow",
        "muted": "dim",
        "state.completed": "green",
        "state.dry_run": "cyan",
        "state.timed_out": "yellow",
        "state.cancelled": "yellow",
        "state.submit_failed": "red",
        "state.unexpected_state": "red",
        "change.major": "red",
        "change.minor": "yellow",
        "change.patch": "green",
        "change.update": "yellow",
        "change.downgrade": "red",
        "change.new": "cyan",
    }
)


def _should_use_color() -> bool:
    """Colors only on an interactive terminal outside CI, unless NO_COLOR is set."""
    if os.environ.get("NO_COLOR") or os.environ.get("CI"):
        return False
    try:
        return sys.stdout.isatty()
    except (AttributeError, OSError):
        return False


@lru_cache(maxsize=None)
def _get_console() -> Console:
    use_color = _should_use_color()
    return Console(theme=APPBATCH_THEME, no_color=not use_color, highlight=use_color)


def reconfigure_console() -> None:
    """Drop the cached console so the next call re-reads NO_COLOR."""
    _get_console.cache_clear()


# ---------------------------------------------------------------------------
# Status lines
# ---------------------------------------------------------------------------


def _status(message: str, prefix: str, style: str) -> None:
    _get_console().print(f"{prefix} {message}", style=style)


def print_success(message: str, *, prefix: str = "[OK]") -> None:
    _status(message, prefix, "ok")


def print_error(message: str, *, prefix: str = "[ERROR]") -> None:
    _status(message, prefix, "error")


def print_warning(message: str, *, prefix: str = "[WARNING]") -> None:
    _status(message, prefix, "warning")


# ---------------------------------------------------------------------------
# Tables and JSON
# ---------------------------------------------------------------------------


def print_table(
    rows: List[Dict[str, Any]],
    *,
    headers: Optional[List[str]] = None,
    title: Optional[str] = None,
    caption: Optional[str] = None,
    column_styles: Optional[Mapping[str, Mapping[str, Any]]] = None,
) -> None:
    """Render ``rows`` as a table; nothing is printed for an empty list.

    Args:
        rows: One mapping per row; values may contain Rich markup.
        headers: Column order. Defaults to the keys of the first row.
        title: Table title.
        caption: Table caption.
        column_styles: Extra ``Table.add_column`` arguments per header.
    """
    if not rows:
        return

    columns = headers or list(rows[0])
    styles = column_styles or {}

    table = Table(title=title, caption=caption, header_style="bold")
    for header in columns:
        table.add_column(header, **{"overflow": "fold", **styles.get(header, {})})
    for row in rows:
        table.add_row(*(str(row.get(header, "")) for header in columns))

    _get_console().print(table)


def print_json(data: Any) -> None:
    """Print ``data`` as indented JSON with plain ``print`` so pipes get no markup."""
    print(json.dumps(data, indent=2))


# ---------------------------------------------------------------------------
# Markup
# ---------------------------------------------------------------------------


def _themed(group: str, value: str) -> str:
    style = f"{group}.{value.lower()}"
    if style not in APPBATCH_THEME.styles:
        return value
    return f"[{style}]{value}[/{style}]"


def colorize_update_type(update_type: str) -> str:
    """Wrap a change kind (major, minor, ...) in its theme style."""
    return _themed("change", update_type)


def colorize_state(state: str) -> str:
    """Wrap a terminal batch state in its theme style."""
    return _themed("state", state)
