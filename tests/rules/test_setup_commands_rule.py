"""Tests for the setup_commands rule."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from sxn.domain.specs import Condition, parse_condition
from sxn.domain.types import Operation, RuleState
from sxn.engine.engine import RulesEngine
from sxn.rules.setup_commands import SetupCommandsRule

FakeBin = Callable[[str, str], Path]


@pytest.fixture
def rule(engine: RulesEngine) -> SetupCommandsRule:
    rule = engine.rule("setup_commands")
    assert isinstance(rule, SetupCommandsRule)
    return rule


class TestProblems:
    def test_valid(self, rule: SetupCommandsRule) -> None:
        config = {
            "commands": [
                {"command": ["npm", "install"], "timeout": 300},
                {
                    "command": ["bin/rails", "db:create"],
                    "condition": "db_not_exists",
                    "env": {"RAILS_ENV": "development"},
                },
            ]
        }
        assert rule.problems(config) == []

    def test_commands_key_required(self, rule: SetupCommandsRule) -> None:
        assert rule.problems({}) == ["SetupCommandsRule requires 'commands' configuration"]

    def test_missing_command_field(self, rule: SetupCommandsRule) -> None:
        problems = rule.problems({"commands": [{"description": "x"}]})
        assert problems == ["Command config 0 must have a 'command' field"]

    def test_string_command_rejected(self, rule: SetupCommandsRule) -> None:
        problems = rule.problems({"commands": [{"command": "npm install"}]})
        assert problems == ["Command config 0 'command' must be a non-empty list of arguments"]

    def test_not_whitelisted(self, rule: SetupCommandsRule) -> None:
        problems = rule.problems({"commands": [{"command": ["rm", "-rf", "/"]}]})
        assert problems == ["Command config 0: command not whitelisted: rm"]

    def test_shell_metacharacters(self, rule: SetupCommandsRule) -> None:
        problems = rule.problems({"commands": [{"command": ["npm", "install;", "rm"]}]})
        assert len(problems) == 1
        assert "shell metacharacters" in problems[0]

    @pytest.mark.parametrize("timeout", [0, -5, 1801, "60", True])
    def test_invalid_timeout(self, rule: SetupCommandsRule, timeout: object) -> None:
        problems = rule.problems({"commands": [{"command": ["tool"], "timeout": timeout}]})
        assert problems == ["Command config 0: timeout must be a positive number <= 1800"]

    def test_invalid_env_name(self, rule: SetupCommandsRule) -> None:
        problems = rule.problems({"commands": [{"command": ["tool"], "env": {"lower": "x"}}]})
        assert problems == ["Command config 0: invalid environment variable name: lower"]

    @pytest.mark.parametrize("name", ["PATH", "LD_PRELOAD", "DYLD_LIBRARY_PATH"])
    def test_protected_env_name(self, rule: SetupCommandsRule, name: str) -> None:
        problems = rule.problems({"commands": [{"command": ["tool"], "env": {name: "/tmp"}}]})
        assert problems == [f"Command config 0: environment variable cannot be overridden: {name}"]

    def test_env_must_be_mapping(self, rule: SetupCommandsRule) -> None:
        problems = rule.problems({"commands": [{"command": ["tool"], "environment": ["A=1"]}]})
        assert problems == ["Command config 0: environment must be a mapping"]

    def test_invalid_condition(self, rule: SetupCommandsRule) -> None:
        problems = rule.problems({"commands": [{"command": ["tool"], "condition": "sometimes"}]})
        assert problems == ["Command config 0: invalid condition format: sometimes"]

    def test_condition_path_outside_session(self, rule: SetupCommandsRule) -> None:
        config = {"commands": [{"command": ["tool"], "condition": "file_exists:../../x"}]}
        assert rule.problems(config) == [
            "Command config 0: condition path must be within session path"
        ]

    def test_working_directory_outside_session(self, rule: SetupCommandsRule) -> None:
        config = {"commands": [{"command": ["tool"], "working_directory": "../.."}]}
        assert rule.problems(config) == [
            "Command config 0: working_directory must be within session path"
        ]

    def test_rule_level_continue_on_failure(self, rule: SetupCommandsRule) -> None:
        config = {"commands": [{"command": ["tool"]}], "continue_on_failure": "yes"}
        assert rule.problems(config) == ["continue_on_failure must be true or false"]


class TestConditions:
    def test_always(self, rule: SetupCommandsRule) -> None:
        assert rule.condition_holds(Condition())

    def test_file_not_exists(self, rule: SetupCommandsRule, session: Path) -> None:
        condition = parse_condition("file_not_exists:tmp/done")
        assert rule.condition_holds(condition)
        (session / "tmp").mkdir()
        (session / "tmp" / "done").touch()
        assert not rule.condition_holds(condition)

    def test_directory_conditions(self, rule: SetupCommandsRule, session: Path) -> None:
        assert rule.condition_holds(parse_condition("directory_missing:node_modules"))
        (session / "node_modules").mkdir()
        assert rule.condition_holds(parse_condition("directory_exists:node_modules"))
        assert not rule.condition_holds(parse_condition("directory_missing:node_modules"))

    def test_db_not_exists_default_locations(
        self, rule: SetupCommandsRule, session: Path
    ) -> None:
        condition = parse_condition("db_not_exists")
        assert rule.condition_holds(condition)
        (session / "db").mkdir()
        (session / "db" / "development.sqlite3").touch()
        assert not rule.condition_holds(condition)

    def test_env_var_set(self, rule: SetupCommandsRule, monkeypatch: pytest.MonkeyPatch) -> None:
        condition = parse_condition("env_var_set:SXN_TEST_FLAG")
        assert not rule.condition_holds(condition)
        monkeypatch.setenv("SXN_TEST_FLAG", "1")
        assert rule.condition_holds(condition)


class TestApply:
    def test_runs_in_session(self, rule: SetupCommandsRule, session: Path) -> None:
        result = rule.apply("setup", {"commands": [{"command": ["touch", "created.txt"]}]})

        assert result.state is RuleState.APPLIED
        assert (session / "created.txt").exists()
        (artifact,) = result.artifacts
        assert artifact.operation is Operation.COMMAND
        assert artifact.source_path == "touch created.txt"
        assert artifact.detail["exit_status"] == 0

    def test_environment_and_working_directory(
        self, rule: SetupCommandsRule, session: Path, fake_bin: FakeBin
    ) -> None:
        fake_bin("tool", 'echo "$GREETING" > greeting.txt')
        (session / "sub").mkdir()
        config = {
            "commands": [
                {"command": ["tool"], "env": {"GREETING": "hello"}, "working_directory": "sub"}
            ]
        }
        result = rule.apply("setup", config)

        assert result.state is RuleState.APPLIED
        assert (session / "sub" / "greeting.txt").read_text() == "hello\n"

    def test_condition_skips_command(self, rule: SetupCommandsRule, session: Path) -> None:
        (session / "done").touch()
        entry = {"command": ["touch", "other"], "condition": "file_not_exists:done"}
        config = {"commands": [entry]}
        result = rule.apply("setup", config)

        assert result.state is RuleState.APPLIED
        assert result.artifacts == []
        assert not (session / "other").exists()

    def test_failure_stops_remaining_commands(
        self, rule: SetupCommandsRule, session: Path, fake_bin: FakeBin
    ) -> None:
        fake_bin("fail", 'echo "bad thing" >&2\nexit 3')
        config = {"commands": [{"command": ["fail"]}, {"command": ["touch", "after"]}]}
        result = rule.apply("setup", config)

        assert result.state is RuleState.FAILED
        assert result.error == "Command failed with exit status 3: fail (bad thing)"
        assert len(result.artifacts) == 1
        assert result.artifacts[0].detail["exit_status"] == 3
        assert not (session / "after").exists()

    def test_ignore_failure_continues(
        self, rule: SetupCommandsRule, session: Path, fake_bin: FakeBin
    ) -> None:
        fake_bin("fail", "exit 1")
        config = {
            "commands": [
                {"command": ["fail"], "ignore_failure": True},
                {"command": ["touch", "after"]},
            ]
        }
        result = rule.apply("setup", config)

        assert result.state is RuleState.APPLIED
        assert (session / "after").exists()

    def test_rule_level_continue_on_failure(
        self, rule: SetupCommandsRule, session: Path, fake_bin: FakeBin
    ) -> None:
        fake_bin("fail", "exit 1")
        config = {
            "continue_on_failure": True,
            "commands": [{"command": ["fail"]}, {"command": ["touch", "after"]}],
        }
        result = rule.apply("setup", config)

        assert result.state is RuleState.APPLIED
        assert (session / "after").exists()

    def test_missing_executable(self, rule: SetupCommandsRule) -> None:
        result = rule.apply("setup", {"commands": [{"command": ["tool"]}]})
        assert result.state is RuleState.FAILED
        assert result.error is not None
        assert result.error.startswith("Command failed with exit status 127: tool")

    def test_timeout(self, rule: SetupCommandsRule, fake_bin: FakeBin) -> None:
        fake_bin("slow", "sleep 5")
        result = rule.apply("setup", {"commands": [{"command": ["slow"], "timeout": 0.5}]})

        assert result.state is RuleState.FAILED
        assert result.error == "Command timed out after 0.5s: slow"
        assert result.artifacts[0].detail["timed_out"] is True

    def test_description_used_in_messages(
        self, rule: SetupCommandsRule, fake_bin: FakeBin
    ) -> None:
        fake_bin("fail", "exit 2")
        config = {"commands": [{"command": ["fail"], "description": "Seed database"}]}
        result = rule.apply("setup", config)
        assert result.error == "Command failed with exit status 2: Seed database"

    def test_rollback_leaves_command_effects(
        self, rule: SetupCommandsRule, session: Path
    ) -> None:
        result = rule.apply("setup", {"commands": [{"command": ["touch", "created.txt"]}]})
        rule.rollback(result.artifacts)
        assert (session / "created.txt").exists()
