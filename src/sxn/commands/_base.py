"""Click base classes and shared options for sxn commands.

SxnCommand and SxnGroup accept an ``examples`` parameter. Passing
``--examples`` prints them and exits, which keeps ``--help`` short.

``rules_file_argument``, ``project_option`` and ``session_option`` declare
the inputs every rules command takes, with paths converted to ``Path``.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import click

_DIR = click.Path(exists=False, file_okay=False, path_type=Path)
_RULES_FILE = click.Path(exists=True, dir_okay=False, path_type=Path)

FC = Callable[..., Any]


def rules_file_argument(fn: FC) -> FC:
    """``RULES_FILE``: an existing YAML, TOML or JSON rules file."""
    return click.argument("rules_file", type=_RULES_FILE)(fn)


def project_option(fn: FC) -> FC:
    """``--project``: the directory rule sources are read from."""
    return click.option(
        "--project", "project", type=_DIR, required=True, help="Project directory."
    )(fn)


def session_option(
    *, required: bool = True, help_text: str = "Session directory."
) -> Callable[[FC], FC]:
    """``--session``: the directory rule destinations are written to."""
    return click.option(
        "--session", "session", type=_DIR, required=required, default=None, help=help_text
    )


def _add_examples_option(cmd: click.Command | click.Group, examples: str) -> None:
    """Attach an eager ``--examples`` flag to a Click command or group."""

    def show_examples(ctx: click.Context, _param: click.Parameter, value: bool) -> None:
        if not value:
            return
        click.echo(f"Examples for '{ctx.command_path}':\n")
        click.echo(examples)
        ctx.exit(0)

    cmd.params.append(
        click.Option(
            ["--examples"],
            is_flag=True,
            expose_value=False,
            is_eager=True,
            callback=show_examples,
            help="Show usage examples.",
        )
    )


class SxnCommand(click.Command):
    """Click Command that supports an ``--examples`` flag."""

    def __init__(self, *args: Any, examples: str | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.examples = examples
        if examples:
            _add_examples_option(self, examples)


class SxnGroup(click.Group):
    """Click Group that supports ``--examples``; subcommands default to SxnCommand."""

    command_class = SxnCommand

    def __init__(self, *args: Any, examples: str | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.examples = examples
        if examples:
            _add_examples_option(self, examples)
