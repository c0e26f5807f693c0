"""
Console output for the jobwarden commands, built on rich.

Respects NO_COLOR and FORCE_COLOR. Machine-readable output (JSON, rendered
manifests) goes through plain print so it is never styled.
"""

from __future__ import annotations

import os

from rich.console import Console
from rich.panel import Panel
from rich.theme import Theme

JOBWARDEN_THEME = Theme(
    {
        "success": "#A3BE8C",
        "error": "#BF616A bold",
        "muted": "#D8DEE9",
    }
)

console = Console(
    theme=JOBWARDEN_THEME,
    force_terminal=os.environ.get("FORCE_COLOR") is not None,
    no_color=os.environ.get("NO_COLOR") is not None,
)


def success(message: str) -> None:
    console.print(f"[success]✓ {message}[/success]")


def error(message: str) -> None:
    # Markup in job names or API messages must print literally
    console.print(f"✗ {message}", style="error", markup=False)


def header(title: str) -> None:
    console.print()
    console.print(Panel(f"[bold]{title}[/bold]", border_style="cyan"))


def print_key_value(items: dict[str, str], title: str | None = None) -> None:
    """Print an aligned block of labelled values."""
    if title:
        console.print(f"\n[bold]{title}[/bold]")

    width = max((len(key) for key in items), default=0)
    for key, value in items.items():
        console.print(f"  [muted]{key + ':':<{width + 1}}[/muted] {value}", highlight=False)
