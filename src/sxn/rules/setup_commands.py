"""``setup_commands`` rule: run whitelisted commands inside the session."""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import structlog

from sxn.domain.results import Artifact
from sxn.domain.specs import MAX_TIMEOUT, CommandSpec, Condition, parse_condition
from sxn.domain.types import ConditionKind, Operation, RuleType
from sxn.errors import PathValidationError, RuleExecutionError
from sxn.rules.base import Rule
from sxn.security.executor import ENV_NAME_PATTERN, CommandResult, is_protected_env_name

log = structlog.get_logger(__name__)

# Where a db_not_exists condition without a path looks for a database.
DEFAULT_DB_GLOBS = ("db/*.sqlite3", "storage/*.sqlite3", "*.db")

# Characters of stdout/stderr kept on the command artifact.
OUTPUT_TAIL = 2000

_PATH_CONDITIONS = frozenset(
    {
        ConditionKind.DB_NOT_EXISTS,
        ConditionKind.FILE_NOT_EXISTS,
        ConditionKind.FILE_EXISTS,
        ConditionKind.DIRECTORY_EXISTS,
        ConditionKind.DIRECTORY_MISSING,
    }
)


class SetupCommandsRule(Rule):
    """Run commands in order; stop at the first failure that is not ignorable.

    A command is ignorable when it sets ``ignore_failure: true`` (or
    ``required: false``), or when the rule config sets
    ``continue_on_failure: true``.
    """

    rule_type = RuleType.SETUP_COMMANDS
    entries_key = "commands"
    entry_label = "Command config"
    description = "Run whitelisted setup commands in the session"
    example = {
        "commands": [
            {"command": ["bundle", "install"], "timeout": 300},
            {
                "command": ["bin/rails", "db:create"],
                "condition": "db_not_exists",
                "env": {"RAILS_ENV": "development"},
            },
        ]
    }

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _rule_problems(self, config: Mapping[str, Any]) -> list[str]:
        value = config.get("continue_on_failure", False)
        if not isinstance(value, bool):
            return ["continue_on_failure must be true or false"]
        return []

    def _entry_problems(self, index: int, entry: Mapping[str, Any]) -> list[str]:
        label = f"{self.entry_label} {index}"
        if "command" not in entry:
            return [f"{label} must have a 'command' field"]
        command = entry["command"]
        if not isinstance(command, list) or not command:
            return [f"{label} 'command' must be a non-empty list of arguments"]

        found: list[str] = []
        reason = self.gate.whitelist.check(command)
        if reason is not None:
            found.append(f"{label}: {reason}")

        if "timeout" in entry:
            timeout = entry["timeout"]
            if (
                isinstance(timeout, bool)
                or not isinstance(timeout, int | float)
                or not 0 < timeout <= MAX_TIMEOUT
            ):
                found.append(f"{label}: timeout must be a positive number <= {MAX_TIMEOUT}")

        for key in ("env", "environment"):
            if key in entry:
                found.extend(self._environment_problems(label, key, entry[key]))

        if "condition" in entry:
            try:
                condition = parse_condition(entry["condition"])
            except ValueError:
                found.append(f"{label}: invalid condition format: {entry['condition']}")
            else:
                if condition.kind in _PATH_CONDITIONS and condition.argument:
                    try:
                        self.gate.validator.validate(
                            condition.argument, self.context.session_path, follow_final=False
                        )
                    except PathValidationError:
                        found.append(f"{label}: condition path must be within session path")

        if "working_directory" in entry:
            workdir = entry["working_directory"]
            if not isinstance(workdir, str) or not workdir:
                found.append(f"{label}: working_directory must be a string")
            elif not self.gate.validator.is_within(
                self.context.session_path / workdir, self.context.session_path
            ):
                found.append(f"{label}: working_directory must be within session path")

        if "description" in entry and not isinstance(entry["description"], str):
            found.append(f"{label}: description must be a string")
        for flag in ("ignore_failure", "required"):
            if flag in entry and not isinstance(entry[flag], bool):
                found.append(f"{label}: {flag} must be true or false")
        return found

    @staticmethod
    def _environment_problems(label: str, key: str, env: Any) -> list[str]:
        if not isinstance(env, Mapping):
            return [f"{label}: {key} must be a mapping"]
        found: list[str] = []
        for name, value in env.items():
            if not isinstance(name, str) or not isinstance(value, str):
                found.append(f"{label}: {key} keys and values must be strings")
            elif not ENV_NAME_PATTERN.match(name):
                found.append(f"{label}: invalid environment variable name: {name}")
            elif is_protected_env_name(name):
                found.append(f"{label}: environment variable cannot be overridden: {name}")
        return found

    # ------------------------------------------------------------------
    # Apply
    # ------------------------------------------------------------------

    def _apply(self, config: Mapping[str, Any], artifacts: list[Artifact]) -> None:
        rule_tolerant = config.get("continue_on_failure", False) is True
        executor = self.gate.executor

        for entry in config["commands"]:
            spec = CommandSpec.model_validate(entry)
            if not self.condition_holds(spec.condition):
                log.info(
                    "command.skipped", command=list(spec.command), condition=str(spec.condition)
                )
                continue

            result = executor.execute(
                spec.command,
                spec.environment,
                timeout=spec.timeout,
                cwd=spec.working_directory,
            )
            artifacts.append(self._artifact(spec, result))
            if result.success:
                continue

            msg = self._failure_message(spec, result)
            if spec.ignore_failure or rule_tolerant:
                log.warning("command.failure_ignored", command=list(spec.command), error=msg)
                continue
            raise RuleExecutionError(msg)

    def condition_holds(self, condition: Condition) -> bool:
        """Whether a command guarded by *condition* should run now."""
        kind = condition.kind
        if kind is ConditionKind.ALWAYS:
            return True
        if kind is ConditionKind.ENV_VAR_SET:
            return bool(os.environ.get(condition.argument or ""))

        session = self.context.session_path
        if kind is ConditionKind.DB_NOT_EXISTS and condition.argument is None:
            return not any(
                match.is_file() for pattern in DEFAULT_DB_GLOBS for match in session.glob(pattern)
            )

        target = self.gate.validator.validate(condition.argument or "", session, follow_final=False)
        checks = {
            ConditionKind.DB_NOT_EXISTS: lambda p: not p.exists(),
            ConditionKind.FILE_NOT_EXISTS: lambda p: not p.exists(),
            ConditionKind.FILE_EXISTS: Path.exists,
            ConditionKind.DIRECTORY_EXISTS: Path.is_dir,
            ConditionKind.DIRECTORY_MISSING: lambda p: not p.is_dir(),
        }
        return bool(checks[kind](target))

    @staticmethod
    def _artifact(spec: CommandSpec, result: CommandResult) -> Artifact:
        return Artifact(
            operation=Operation.COMMAND,
            source_path=" ".join(spec.command),
            duration=result.duration,
            detail={
                "exit_status": result.exit_status,
                "timed_out": result.timed_out,
                "stdout": result.stdout[-OUTPUT_TAIL:],
                "stderr": result.stderr[-OUTPUT_TAIL:],
                "working_directory": spec.working_directory,
            },
        )

    @staticmethod
    def _failure_message(spec: CommandSpec, result: CommandResult) -> str:
        if result.timed_out:
            return f"Command timed out after {spec.timeout:g}s: {spec.display}"
        msg = f"Command failed with exit status {result.exit_status}: {spec.display}"
        stderr = result.stderr.strip()
        if stderr:
            msg += f" ({stderr.splitlines()[-1]})"
        return msg
