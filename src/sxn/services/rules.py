"""RulesService: validate, apply and inspect rules configs.

Each call loads the rules file, builds a fresh :class:`RulesEngine` for
the given project and session, and reports the outcome as a
:class:`ServiceResult`.
"""

from __future__ import annotations

import tempfile
import time
from pathlib import Path
from typing import Any

import structlog

from sxn.config.rules_file import RulesFileError, load_rules_file
from sxn.domain.results import ApplyResult
from sxn.engine.engine import RulesEngine
from sxn.engine.graph import RuleGraph
from sxn.errors import ValidationError
from sxn.rules.detector import ProjectDetector
from sxn.rules.registry import RULE_TYPES
from sxn.services.base import BaseService
from sxn.services.result import ServiceResult

log = structlog.get_logger(__name__)


class RulesService(BaseService):
    """Rules operations for the CLI."""

    def validate(
        self,
        rules_file: Path,
        project: Path,
        session: Path | None = None,
    ) -> ServiceResult:
        """Validate *rules_file* against *project* (and *session*, if given).

        Without a session, destinations are checked against a scratch
        directory that is removed afterwards.
        """
        op = "validate_rules"
        try:
            config = load_rules_file(rules_file)
        except RulesFileError as exc:
            return self._failure(op, "RULES_FILE_ERROR", str(exc), detail={"path": str(rules_file)})

        if session is not None:
            return self._validate_config(op, config, project, session)
        with tempfile.TemporaryDirectory(prefix="sxn-validate-") as scratch:
            return self._validate_config(op, config, project, Path(scratch))

    def apply(
        self,
        rules_file: Path,
        project: Path,
        session: Path,
        *,
        parallel: bool | None = None,
        max_parallelism: int | None = None,
        continue_on_failure: bool | None = None,
        rollback_on_failure: bool = False,
    ) -> ServiceResult:
        """Apply *rules_file* to *session*.

        Args:
            rollback_on_failure: Revert every applied rule when the apply
                is not successful.
        """
        op = "apply_rules"
        try:
            config = load_rules_file(rules_file)
        except RulesFileError as exc:
            return self._failure(op, "RULES_FILE_ERROR", str(exc), detail={"path": str(rules_file)})
        try:
            engine = RulesEngine(project, session, settings=self.settings)
            result = engine.apply_rules(
                config,
                parallel=parallel,
                max_parallelism=max_parallelism,
                continue_on_failure=continue_on_failure,
            )
        except ValidationError as exc:
            return self._failure(
                op, "VALIDATION_FAILED", "Rules config is invalid", detail={"errors": exc.errors}
            )
        except ValueError as exc:
            return self._failure(op, "INVALID_PATH", str(exc))

        data = self._apply_data(result)
        meta = {"total_duration": round(result.total_duration, 4)}
        if result.success:
            warnings = [f"Rule '{e.rule}' failed (tolerated): {e.message}" for e in result.errors]
            return ServiceResult(ok=True, op=op, data=data, warnings=warnings, meta=meta)

        blocking = [name for name in result.failed_rules if name not in result.tolerated_failures]
        detail: dict[str, Any] = {"errors": [e.model_dump() for e in result.errors]}
        if rollback_on_failure:
            detail["rolled_back"] = engine.rollback_rules()
            log.info("apply.rolled_back", complete=detail["rolled_back"])
        return self._failure(
            op,
            "APPLY_FAILED",
            f"{len(blocking)} rule(s) failed: {', '.join(blocking)}",
            detail=detail,
            data=data,
        )

    def types(self) -> ServiceResult:
        """Describe the built-in rule types."""
        items = [
            {
                "type": rule_type.value,
                "class": cls.__name__,
                "description": cls.description,
                "example": cls.example,
            }
            for rule_type, cls in RULE_TYPES.items()
        ]
        return ServiceResult(ok=True, op="rule_types", data={"items": items})

    def suggest(self, project: Path) -> ServiceResult:
        """Suggest a rules config for *project*."""
        op = "suggest_rules"
        try:
            detector = ProjectDetector(project)
        except ValueError as exc:
            return self._failure(op, "INVALID_PATH", str(exc))
        return ServiceResult(
            ok=True,
            op=op,
            data={"project": detector.detect(), "rules": detector.suggest_rules()},
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _validate_config(
        self, op: str, config: dict[str, Any], project: Path, session: Path
    ) -> ServiceResult:
        start = time.perf_counter()
        try:
            engine = RulesEngine(project, session, settings=self.settings)
            specs = engine.validate_rules_config(config)
        except ValidationError as exc:
            return self._failure(
                op, "VALIDATION_FAILED", "Rules config is invalid", detail={"errors": exc.errors}
            )
        except ValueError as exc:
            return self._failure(op, "INVALID_PATH", str(exc))

        return ServiceResult(
            ok=True,
            op=op,
            data={
                "valid": True,
                "rules": [spec.name for spec in specs],
                "waves": RuleGraph(specs).compute_waves(),
            },
            meta={"duration": round(time.perf_counter() - start, 4)},
        )

    @staticmethod
    def _apply_data(result: ApplyResult) -> dict[str, Any]:
        data = result.summary()
        rules: list[dict[str, Any]] = []
        for name in (n for wave in result.waves for n in wave):
            rule = result.results[name]
            rules.append(
                {
                    "name": name,
                    "type": str(rule.rule_type),
                    "state": str(rule.state),
                    "artifacts": len(rule.artifacts),
                    "duration": round(rule.duration, 4),
                    "error": rule.error,
                }
            )
        data["rules"] = rules
        return data
