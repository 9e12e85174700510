"""Rule contract shared by all variants.

A rule is stateless between calls: it receives the raw config mapping in
every method and keeps no per-apply state on the instance, so one instance
can serve concurrent applies.

Subclasses implement :meth:`Rule.problems` (pure, reports every violation)
and :meth:`Rule._apply` (appends artifacts as it goes, so a failure part
way through still reports what was done and can be rolled back).
"""

from __future__ import annotations

import os
import time
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, ClassVar

import structlog

from sxn.domain.results import Artifact, RuleResult
from sxn.domain.types import Operation, RuleState, RuleType
from sxn.errors import PathValidationError, RollbackError, SxnError, ValidationError
from sxn.security.gate import SecurityGate
from sxn.templates.processor import TemplateProcessor
from sxn.templates.variables import TemplateVariables

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RuleContext:
    """Everything a rule may touch for one project/session pair."""

    project_path: Path
    session_path: Path
    gate: SecurityGate
    templates: TemplateProcessor
    variables: TemplateVariables


class Rule(ABC):
    """Base class for rule variants.

    Class attributes:
        rule_type: The ``type`` value this class handles.
        entries_key: Config key holding the list of entries.
        description: One-line summary shown by ``sxn rules types``.
        example: Sample ``config`` payload shown by ``sxn rules types``.
    """

    rule_type: ClassVar[RuleType]
    entries_key: ClassVar[str]
    entry_label: ClassVar[str]
    description: ClassVar[str] = ""
    example: ClassVar[dict[str, Any]] = {}

    def __init__(self, context: RuleContext) -> None:
        self.context = context

    @property
    def gate(self) -> SecurityGate:
        return self.context.gate

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def problems(self, config: Any) -> list[str]:
        """Return every problem with *config*; empty when it is valid.

        Never mutates the filesystem.
        """
        if not isinstance(config, Mapping):
            return ["Config must be a mapping"]
        entries = config.get(self.entries_key)
        name = type(self).__name__
        if entries is None:
            return [f"{name} requires '{self.entries_key}' configuration"]
        if not isinstance(entries, list):
            return [f"{name} '{self.entries_key}' must be a list"]
        if not entries:
            return [f"{name} '{self.entries_key}' cannot be empty"]

        found = self._rule_problems(config)
        for index, entry in enumerate(entries):
            if not isinstance(entry, Mapping):
                found.append(f"{self.entry_label} {index} must be a mapping")
                continue
            found.extend(self._entry_problems(index, entry))
        return found

    def validate(self, config: Any) -> None:
        """Raise :class:`ValidationError` carrying every problem with *config*."""
        found = self.problems(config)
        if found:
            raise ValidationError(found)

    def _rule_problems(self, config: Mapping[str, Any]) -> list[str]:
        """Problems with rule-level keys other than the entry list."""
        return []

    @abstractmethod
    def _entry_problems(self, index: int, entry: Mapping[str, Any]) -> list[str]:
        """Problems with one entry of the entry list."""

    def _path_problem(
        self, index: int, field: str, value: Any, base: Path, *, follow_final: bool = True
    ) -> str | None:
        if not isinstance(value, str) or not value:
            return f"{self.entry_label} {index} must have a '{field}' string"
        try:
            self.gate.validator.validate(value, base, follow_final=follow_final)
        except PathValidationError as exc:
            return f"{self.entry_label} {index} {field} path is not safe: {exc}"
        return None

    # ------------------------------------------------------------------
    # Apply
    # ------------------------------------------------------------------

    def apply(self, name: str, config: Mapping[str, Any]) -> RuleResult:
        """Apply a validated *config* and report the outcome.

        Errors raised while applying become a FAILED result that still
        carries the artifacts produced before the failure.
        """
        start = time.perf_counter()
        artifacts: list[Artifact] = []
        try:
            self._apply(config, artifacts)
        except (SxnError, OSError) as exc:
            log.warning("rule.apply_failed", rule=name, error=str(exc))
            return RuleResult(
                name=name,
                rule_type=self.rule_type,
                state=RuleState.FAILED,
                artifacts=artifacts,
                error=str(exc),
                duration=time.perf_counter() - start,
            )
        return RuleResult(
            name=name,
            rule_type=self.rule_type,
            state=RuleState.APPLIED,
            artifacts=artifacts,
            duration=time.perf_counter() - start,
        )

    @abstractmethod
    def _apply(self, config: Mapping[str, Any], artifacts: list[Artifact]) -> None:
        """Perform the rule, appending each artifact as soon as it exists."""

    # ------------------------------------------------------------------
    # Rollback
    # ------------------------------------------------------------------

    def rollback(self, artifacts: Iterable[Artifact]) -> None:
        """Revert *artifacts* in reverse order.

        Artifacts that are already gone are ignored. Every artifact is
        attempted; failures are collected and raised together.

        Raises:
            RollbackError: If any artifact could not be reverted.
        """
        failures: list[str] = []
        for artifact in reversed(list(artifacts)):
            try:
                self._revert(artifact)
            except (OSError, PathValidationError) as exc:
                failures.append(f"{artifact.destination_path or artifact.source_path}: {exc}")
        if failures:
            msg = "Rollback incomplete: " + "; ".join(failures)
            raise RollbackError(msg)

    def _revert(self, artifact: Artifact) -> None:
        if artifact.operation is Operation.COMMAND:
            log.info("rollback.command_skipped", command=artifact.source_path)
            return
        if artifact.destination_path is None:
            return

        session = self.context.session_path
        dst = self.gate.validator.validate(
            artifact.destination_path, session, allow_absolute=True, follow_final=False
        )
        backup = artifact.detail.get("backup_path")
        if backup and (Path(backup).is_symlink() or Path(backup).is_file()):
            os.replace(backup, dst)
            log.info("rollback.restored", destination=str(dst), backup=backup)
        elif dst.is_symlink() or dst.is_file():
            dst.unlink()
            log.info("rollback.removed", destination=str(dst))

        for created in artifact.detail.get("created_dirs", []):
            directory = Path(created)
            if directory.is_dir() and not any(directory.iterdir()):
                directory.rmdir()
