"""Command group: validate, apply and inspect provisioning rules."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import click

from sxn.commands._base import SxnGroup, project_option, rules_file_argument, session_option
from sxn.services.rules import RulesService

if TYPE_CHECKING:
    from sxn.commands._context import AppContext

_RULES_EXAMPLES = """\
  sxn rules validate rules.yml --project ~/src/atlas
  sxn rules apply rules.yml --project ~/src/atlas --session ~/sessions/ATL-1234
  sxn rules apply rules.yml --project . --session ../wt --sequential
  sxn rules types
  sxn rules suggest --project ~/src/atlas > rules.yml"""


@click.group(cls=SxnGroup, examples=_RULES_EXAMPLES)
def rules() -> None:
    """Validate and apply session provisioning rules."""


@rules.command(
    examples="""\
  sxn rules validate rules.yml --project .
  sxn rules validate rules.toml --project . --session ../ATL-1234
  sxn --json rules validate rules.json --project ."""
)
@rules_file_argument
@project_option
@session_option(
    required=False,
    help_text="Session directory (destinations are checked against a scratch dir if omitted).",
)
@click.pass_obj
def validate(app: AppContext, rules_file: Path, project: Path, session: Path | None) -> None:
    """Check a rules file without changing anything."""
    app.emit(RulesService(app.settings).validate(rules_file, project, session))


@rules.command(
    examples="""\
  sxn rules apply rules.yml --project . --session ../ATL-1234
  sxn rules apply rules.yml --project . --session ../ATL-1234 --max-parallelism 8
  sxn rules apply rules.yml --project . --session ../ATL-1234 --continue-on-failure
  sxn rules apply rules.yml --project . --session ../ATL-1234 --rollback-on-failure"""
)
@rules_file_argument
@project_option
@session_option()
@click.option("--sequential", is_flag=True, help="Run rules one at a time.")
@click.option(
    "--max-parallelism",
    type=click.IntRange(min=1),
    default=None,
    help="Worker threads per wave (default from [rules] settings).",
)
@click.option("--continue-on-failure", is_flag=True, help="Keep going after a rule fails.")
@click.option(
    "--rollback-on-failure", is_flag=True, help="Revert applied rules if the apply fails."
)
@click.pass_obj
def apply(
    app: AppContext,
    rules_file: Path,
    project: Path,
    session: Path,
    sequential: bool,
    max_parallelism: int | None,
    continue_on_failure: bool,
    rollback_on_failure: bool,
) -> None:
    """Apply a rules file to a session."""
    app.emit(
        RulesService(app.settings).apply(
            rules_file,
            project,
            session,
            parallel=False if sequential else None,
            max_parallelism=max_parallelism,
            continue_on_failure=True if continue_on_failure else None,
            rollback_on_failure=rollback_on_failure,
        )
    )


@rules.command(
    examples="""\
  sxn rules types
  sxn -v rules types
  sxn --json rules types"""
)
@click.pass_obj
def types(app: AppContext) -> None:
    """List the available rule types."""
    app.emit(RulesService(app.settings).types())


@rules.command(
    examples="""\
  sxn rules suggest --project .
  sxn -q rules suggest --project . > rules.yml"""
)
@project_option
@click.pass_obj
def suggest(app: AppContext, project: Path) -> None:
    """Suggest a rules config for a project."""
    app.emit(RulesService(app.settings).suggest(project))
