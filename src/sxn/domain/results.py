"""Artifacts, per-rule results, and the aggregate apply result.

All three are transient: they are returned to the caller and never
persisted. Results are frozen; the executor builds new instances instead
of mutating them.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from sxn.domain.types import Operation, RuleState, RuleType


class Artifact(BaseModel):
    """A single side effect produced by a rule.

    Attributes:
        operation: What was done.
        source_path: Absolute source path (the argv string for commands).
        destination_path: Absolute path written in the session, if any.
        checksum: sha256 hex digest of the final artifact content.
        encrypted: Whether the written payload is encrypted.
        duration: Seconds spent producing the artifact.
        detail: Operation-specific extras (created directories, backup
            path, exit status, ...).
    """

    model_config = {"frozen": True}

    operation: Operation
    source_path: str
    destination_path: str | None = None
    checksum: str | None = None
    encrypted: bool = False
    duration: float = 0.0
    detail: dict[str, Any] = Field(default_factory=dict)


class RuleResult(BaseModel):
    """Outcome of one rule within an ``apply_rules`` call."""

    model_config = {"frozen": True}

    name: str
    rule_type: RuleType
    state: RuleState
    artifacts: list[Artifact] = Field(default_factory=list)
    error: str | None = None
    duration: float = 0.0

    @property
    def success(self) -> bool:
        return self.state is RuleState.APPLIED


class RuleErrorEntry(BaseModel):
    """One ``{rule, message}`` pair in :attr:`ApplyResult.errors`."""

    model_config = {"frozen": True}

    rule: str
    message: str


class ApplyResult(BaseModel):
    """Aggregate outcome of an ``apply_rules`` call.

    Rule name lists follow wave order, then config insertion order within a
    wave, so sequential and parallel runs report identically.

    Attributes:
        tolerated_failures: Failed rules that were marked
            ``continue_on_failure`` and so do not make the apply unsuccessful.
    """

    model_config = {"frozen": True}

    applied_rules: list[str] = Field(default_factory=list)
    failed_rules: list[str] = Field(default_factory=list)
    skipped_rules: list[str] = Field(default_factory=list)
    tolerated_failures: list[str] = Field(default_factory=list)
    errors: list[RuleErrorEntry] = Field(default_factory=list)
    results: dict[str, RuleResult] = Field(default_factory=dict)
    waves: list[list[str]] = Field(default_factory=list)
    total_duration: float = 0.0

    @property
    def success(self) -> bool:
        return all(name in self.tolerated_failures for name in self.failed_rules)

    @property
    def total_rules(self) -> int:
        return len(self.applied_rules) + len(self.failed_rules) + len(self.skipped_rules)

    def summary(self) -> dict[str, Any]:
        """Plain-dict view used by the service layer and JSON output."""
        return {
            "success": self.success,
            "total_rules": self.total_rules,
            "applied_rules": list(self.applied_rules),
            "failed_rules": list(self.failed_rules),
            "skipped_rules": list(self.skipped_rules),
            "tolerated_failures": list(self.tolerated_failures),
            "waves": [list(w) for w in self.waves],
            "total_duration": round(self.total_duration, 4),
            "errors": [e.model_dump() for e in self.errors],
        }
