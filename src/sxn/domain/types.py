"""Rule, strategy, and state enums.

These enums define the closed set of rule variants, file strategies,
artifact operations, and the per-rule execution states.
"""

from __future__ import annotations

from enum import StrEnum


class RuleType(StrEnum):
    """Built-in rule variants. The value is the ``type`` key in a rules config."""

    COPY_FILES = "copy_files"
    SETUP_COMMANDS = "setup_commands"
    TEMPLATE = "template"


class Strategy(StrEnum):
    """How a file reaches the session."""

    COPY = "copy"
    SYMLINK = "symlink"


class Operation(StrEnum):
    """Kind of side effect recorded in an artifact."""

    COPY = "copy"
    SYMLINK = "symlink"
    TEMPLATE = "template"
    COMMAND = "command"


class RuleState(StrEnum):
    """Per-rule state within one ``apply_rules`` call.

    ``PENDING -> VALIDATING -> APPLYING -> {APPLIED | FAILED | SKIPPED}``.
    """

    PENDING = "pending"
    VALIDATING = "validating"
    APPLYING = "applying"
    APPLIED = "applied"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({RuleState.APPLIED, RuleState.FAILED, RuleState.SKIPPED})

# Transitions allowed by the executor; anything else is a programming error.
STATE_TRANSITIONS: dict[RuleState, frozenset[RuleState]] = {
    RuleState.PENDING: frozenset({RuleState.VALIDATING, RuleState.SKIPPED}),
    RuleState.VALIDATING: frozenset({RuleState.APPLYING, RuleState.FAILED}),
    RuleState.APPLYING: frozenset({RuleState.APPLIED, RuleState.FAILED}),
    RuleState.APPLIED: frozenset(),
    RuleState.FAILED: frozenset(),
    RuleState.SKIPPED: frozenset(),
}


class ConditionKind(StrEnum):
    """Pre-condition checks for setup commands.

    A command runs only while its condition holds; e.g. ``file_not_exists``
    stops holding once the target file has been created.
    """

    ALWAYS = "always"
    DB_NOT_EXISTS = "db_not_exists"
    FILE_NOT_EXISTS = "file_not_exists"
    FILE_EXISTS = "file_exists"
    DIRECTORY_EXISTS = "directory_exists"
    DIRECTORY_MISSING = "directory_missing"
    ENV_VAR_SET = "env_var_set"


# Accepted spellings that map onto a canonical kind.
CONDITION_ALIASES: dict[str, ConditionKind] = {
    "file_missing": ConditionKind.FILE_NOT_EXISTS,
}
