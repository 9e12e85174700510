"""Subcommand modules for sxn.

Provides register_commands(), which uses deferred imports so that
``sxn --help`` stays fast.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register all command groups on the root CLI group."""
    from sxn.commands.rules import rules

    cli.add_command(rules)
