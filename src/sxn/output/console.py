"""Rich Console factory and theme for sxn output.

Consoles render into a StringIO buffer so renderers keep a
``-> str`` contract; Rich drops colour codes when not on a terminal.
"""

from __future__ import annotations

from io import StringIO

from rich.console import Console
from rich.theme import Theme

SXN_THEME = Theme(
    {
        "sxn.ok": "bold green",
        "sxn.error": "bold red",
        "sxn.warning": "bold yellow",
        "sxn.op": "bold cyan",
        "sxn.key": "dim",
        "sxn.rule": "bold",
        "sxn.path": "dim",
        "sxn.state.applied": "green",
        "sxn.state.failed": "red",
        "sxn.state.skipped": "yellow",
        "sxn.state.pending": "dim",
    }
)

_STATE_STYLES: dict[str, str] = {
    "applied": "sxn.state.applied",
    "failed": "sxn.state.failed",
    "skipped": "sxn.state.skipped",
}


def create_console(*, no_color: bool = False, width: int | None = None) -> Console:
    """Create a Console that renders to a StringIO buffer.

    Args:
        no_color: Disable ANSI escape codes.
        width: Override terminal width (stable output in tests).
    """
    return Console(
        file=StringIO(),
        theme=SXN_THEME,
        no_color=no_color,
        highlight=False,
        width=width or 120,
    )


def get_output(console: Console) -> str:
    """Extract rendered text from a StringIO-backed Console."""
    assert isinstance(console.file, StringIO)
    return console.file.getvalue()


def style_for_state(state: str) -> str:
    """Return the Rich style name for a rule state."""
    return _STATE_STYLES.get(state, "sxn.state.pending")
