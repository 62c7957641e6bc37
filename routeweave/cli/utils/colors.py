"""
Routeweave CLI - output helpers.

Styled output primitives built on Click:

    success(), error(), warning(), info(), dim(), bold()
    banner()        - bordered header for the top-level help
    section()       - section divider with title
    kv()            - key-value pair, aligned
    bullet()        - bulleted list item
    file_written()  - one line per emitted file

click.style handles NO_COLOR / TERM=dumb, so output degrades on plain
terminals.
"""

from __future__ import annotations

import shutil
from typing import Optional

import click

_TERM_WIDTH: Optional[int] = None


def _tw() -> int:
    """Terminal width, cached and clamped to a sane range."""
    global _TERM_WIDTH
    if _TERM_WIDTH is None:
        _TERM_WIDTH = max(40, min(shutil.get_terminal_size((80, 24)).columns, 120))
    return _TERM_WIDTH


# ═══════════════════════════════════════════════════════════════════════════
# Basic styled output
# ═══════════════════════════════════════════════════════════════════════════


def success(message: str) -> None:
    """Print success message in green."""
    click.echo(click.style(message, fg="green"))


def error(message: str) -> None:
    """Print error message in red, on stderr."""
    click.echo(click.style(message, fg="red"), err=True)


def warning(message: str) -> None:
    """Print warning message in yellow."""
    click.echo(click.style(message, fg="yellow"))


def info(message: str) -> None:
    """Print info message in cyan."""
    click.echo(click.style(message, fg="cyan"))


def dim(message: str) -> None:
    """Print dimmed message."""
    click.echo(click.style(message, dim=True))


def bold(message: str) -> str:
    """Return bold-styled text (does not echo)."""
    return click.style(message, bold=True)


# ═══════════════════════════════════════════════════════════════════════════
# Symbols
# ═══════════════════════════════════════════════════════════════════════════

_H_TL = "\u250f"   # ┏
_H_TR = "\u2513"   # ┓
_H_BL = "\u2517"   # ┗
_H_BR = "\u251b"   # ┛
_H_H  = "\u2501"   # ━
_H_V  = "\u2503"   # ┃
_L_H  = "\u2500"   # ─

_BULLET = "\u2022"     # •
_ARROW  = "\u2192"     # →
_CHECK  = "\u2713"     # ✓
_CROSS  = "\u2717"     # ✗


# ═══════════════════════════════════════════════════════════════════════════
# Structure
# ═══════════════════════════════════════════════════════════════════════════


def banner(title: str, subtitle: str = "", *, width: Optional[int] = None, fg: str = "cyan") -> None:
    """
    Print a bordered banner with centred title.

        ┏━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━┓
        ┃                       Routeweave                        ┃
        ┗━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━┛
    """
    w = width or min(_tw(), 60)
    inner = w - 2
    click.echo(click.style(f"{_H_TL}{_H_H * inner}{_H_TR}", fg=fg))
    click.echo(click.style(f"{_H_V}{title.center(inner)}{_H_V}", fg=fg, bold=True))
    if subtitle:
        click.echo(click.style(f"{_H_V}{subtitle.center(inner)}{_H_V}", fg=fg))
    click.echo(click.style(f"{_H_BL}{_H_H * inner}{_H_BR}", fg=fg))


def section(title: str, *, width: Optional[int] = None, fg: str = "cyan") -> None:
    """
    Print a section header with a ruled line.

        ── controllers/*.py ───────────────────────
    """
    w = width or _tw()
    dashes = max(4, w - len(title) - 6)
    click.echo(click.style(f"{_L_H}{_L_H} {title} {_L_H * dashes}", fg=fg, bold=True))


def kv(key: str, value: str, *, key_width: int = 20, indent: int = 2) -> None:
    """
    Print an aligned key-value pair.

        Patterns:         2
        Rewritten:        3
    """
    prefix = " " * indent
    padding = " " * max(1, key_width - len(key) - 1)
    click.echo(f"{prefix}{click.style(f'{key}:', fg='white')}{padding}{click.style(str(value), fg='cyan')}")


def bullet(text: str, *, indent: int = 2, fg: str = "white") -> None:
    """Print a bulleted list item."""
    prefix = " " * indent
    click.echo(f"{prefix}{click.style(_BULLET, fg='cyan')} {click.style(text, fg=fg)}")


def file_written(label: str, *, verbose: bool = False, path: str = "") -> None:
    """Announce a written file."""
    mark = click.style(f"  {_CHECK}", fg="green")
    click.echo(f"{mark} {click.style(label, fg='white')}")
    if verbose and path:
        dim(f"    {_ARROW} {path}")
