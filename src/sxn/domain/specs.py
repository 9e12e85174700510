"""Rule and entry specs parsed from a rules config.

The rules config is a plain mapping supplied by the caller. Rule variants
collect human-readable problems from the raw mapping first (so messages can
name the offending entry); once a config is known to be valid, entries are
parsed into these frozen models for execution.
"""

from __future__ import annotations

import re
from typing import Any

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator

from sxn.domain.types import CONDITION_ALIASES, ConditionKind, RuleType, Strategy

# Default and maximum command timeout, in seconds.
DEFAULT_TIMEOUT = 60
MAX_TIMEOUT = 1800

_OCTAL_MODE = re.compile(r"\A0?[0-7]{3}\Z")

# Condition kinds that need a ``kind:argument`` form.
_CONDITIONS_WITH_ARGUMENT = frozenset(
    {
        ConditionKind.FILE_NOT_EXISTS,
        ConditionKind.FILE_EXISTS,
        ConditionKind.DIRECTORY_EXISTS,
        ConditionKind.DIRECTORY_MISSING,
        ConditionKind.ENV_VAR_SET,
    }
)


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------


def parse_permissions(value: Any) -> int:
    """Parse a permission mode given as ``"0600"``, ``"600"`` or an int.

    Raises:
        ValueError: If the value is not a mode between 0 and 0o777.
    """
    if isinstance(value, bool):
        msg = f"invalid permissions {value!r}"
        raise ValueError(msg)
    if isinstance(value, int):
        if 0 <= value <= 0o777:
            return value
    elif isinstance(value, str) and _OCTAL_MODE.match(value):
        return int(value, 8)
    msg = f"invalid permissions {value!r}"
    raise ValueError(msg)


class Condition(BaseModel):
    """A parsed setup-command condition."""

    model_config = {"frozen": True}

    kind: ConditionKind = ConditionKind.ALWAYS
    argument: str | None = None

    def __str__(self) -> str:
        if self.argument is None:
            return str(self.kind)
        return f"{self.kind}:{self.argument}"


def parse_condition(value: Any) -> Condition:
    """Parse ``"always"``, ``"db_not_exists"`` or ``"<kind>:<argument>"``.

    Raises:
        ValueError: On an unknown kind or a missing required argument.
    """
    if value is None:
        return Condition()
    if isinstance(value, Condition):
        return value
    if not isinstance(value, str) or not value.strip():
        msg = f"invalid condition {value!r}"
        raise ValueError(msg)

    raw_kind, _, argument = value.partition(":")
    raw_kind = raw_kind.strip()
    kind = CONDITION_ALIASES.get(raw_kind)
    if kind is None:
        try:
            kind = ConditionKind(raw_kind)
        except ValueError:
            msg = f"invalid condition {value!r}"
            raise ValueError(msg) from None

    arg = argument.strip() or None
    if kind in _CONDITIONS_WITH_ARGUMENT and arg is None:
        msg = f"condition {kind!s} requires an argument (e.g. '{kind}:path')"
        raise ValueError(msg)
    if kind is ConditionKind.ALWAYS:
        arg = None
    return Condition(kind=kind, argument=arg)


# ---------------------------------------------------------------------------
# Rule spec
# ---------------------------------------------------------------------------


class RuleSpec(BaseModel):
    """One named rule from the rules config. Immutable once validated.

    Attributes:
        name: Unique key of the rule in the config.
        type: Rule variant.
        config: Variant-specific payload.
        dependencies: Names of rules that must apply first, in declared order.
        continue_on_failure: A failure of this rule does not block dependents
            or later waves.
        position: Index of the rule in config insertion order (tie-breaks).
    """

    model_config = {"frozen": True}

    name: str
    type: RuleType
    config: dict[str, Any] = Field(default_factory=dict)
    dependencies: tuple[str, ...] = ()
    continue_on_failure: bool = False
    position: int = 0


# ---------------------------------------------------------------------------
# Entry specs
# ---------------------------------------------------------------------------


class CopyFileSpec(BaseModel):
    """One entry of a ``copy_files`` rule."""

    model_config = {"frozen": True}

    source: str
    destination: str | None = None
    strategy: Strategy = Strategy.COPY
    permissions: int | None = None
    encrypt: bool = False
    required: bool = True

    @field_validator("permissions", mode="before")
    @classmethod
    def _parse_permissions(cls, value: Any) -> int | None:
        if value is None:
            return None
        return parse_permissions(value)

    @property
    def target(self) -> str:
        """Destination relative to the session (defaults to the source)."""
        return self.destination or self.source


class CommandSpec(BaseModel):
    """One entry of a ``setup_commands`` rule."""

    model_config = {"frozen": True}

    command: tuple[str, ...]
    description: str | None = None
    timeout: float = DEFAULT_TIMEOUT
    environment: dict[str, str] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("environment", "env"),
    )
    condition: Condition = Field(default_factory=Condition)
    working_directory: str | None = None
    ignore_failure: bool = False

    @model_validator(mode="before")
    @classmethod
    def _required_alias(cls, data: Any) -> Any:
        """``required: false`` is the older spelling of ``ignore_failure: true``."""
        if isinstance(data, dict) and data.get("required") is False:
            data = {**data, "ignore_failure": True}
        return data

    @field_validator("condition", mode="before")
    @classmethod
    def _parse_condition(cls, value: Any) -> Condition:
        return parse_condition(value)

    @property
    def display(self) -> str:
        return self.description or " ".join(self.command)


class TemplateSpec(BaseModel):
    """One entry of a ``template`` rule."""

    model_config = {"frozen": True}

    source: str
    destination: str
    process: bool = True
    variables: dict[str, Any] = Field(default_factory=dict)
    required: bool = True
    overwrite: bool = False
