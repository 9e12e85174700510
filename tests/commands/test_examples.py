"""Tests for --examples flag on CLI commands.

Parametrized to cover all commands that define examples text.
"""

from __future__ import annotations

import pytest
from click.testing import CliRunner

from sxn.cli import cli

# (CLI args, expected keywords in output)
EXAMPLES_COMMANDS: list[tuple[list[str], list[str]]] = [
    (["rules", "--examples"], ["sxn rules validate", "sxn rules suggest"]),
    (["rules", "validate", "--examples"], ["--session ../ATL-1234"]),
    (["rules", "apply", "--examples"], ["--max-parallelism 8", "--rollback-on-failure"]),
    (["rules", "types", "--examples"], ["sxn rules types"]),
    (["rules", "suggest", "--examples"], ["> rules.yml"]),
]


def _examples_id(item: tuple[list[str], list[str]]) -> str:
    """Generate a readable test ID from args."""
    args, _ = item
    return "_".join(a for a in args if a != "--examples")


@pytest.mark.parametrize(
    ("args", "keywords"),
    EXAMPLES_COMMANDS,
    ids=[_examples_id(item) for item in EXAMPLES_COMMANDS],
)
def test_examples_flag(cli_runner: CliRunner, args: list[str], keywords: list[str]) -> None:
    result = cli_runner.invoke(cli, args)
    assert result.exit_code == 0, result.output
    assert "Examples for" in result.output
    for keyword in keywords:
        assert keyword in result.output


def test_examples_not_in_help(cli_runner: CliRunner) -> None:
    result = cli_runner.invoke(cli, ["rules", "apply", "--help"])
    assert result.exit_code == 0
    assert "--examples" in result.output
    assert "--max-parallelism 8" not in result.output
