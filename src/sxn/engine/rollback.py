"""RollbackManager: replay recorded rule results in reverse."""

from __future__ import annotations

import threading
from collections.abc import Callable

import structlog

from sxn.domain.results import RuleResult
from sxn.errors import RollbackError
from sxn.rules.base import Rule

log = structlog.get_logger(__name__)


class RollbackManager:
    """Holds applied results, in application order, until rolled back.

    Args:
        rule_for: Returns the rule instance that knows how to revert a
            result's artifacts.
    """

    def __init__(self, rule_for: Callable[[RuleResult], Rule]) -> None:
        self._rule_for = rule_for
        self._applied: list[RuleResult] = []
        self._lock = threading.Lock()

    def record(self, result: RuleResult) -> None:
        with self._lock:
            self._applied.append(result)

    @property
    def recorded(self) -> list[str]:
        with self._lock:
            return [r.name for r in self._applied]

    def revert(self, result: RuleResult) -> bool:
        """Revert one result's artifacts; False if anything was left behind."""
        try:
            self._rule_for(result).rollback(result.artifacts)
        except RollbackError as exc:
            log.error("rollback.rule_failed", rule=result.name, error=str(exc))
            return False
        log.info("rollback.rule", rule=result.name, artifacts=len(result.artifacts))
        return True

    def rollback(self) -> bool:
        """Revert every recorded result, most recent first.

        The record is cleared even when some artifacts could not be
        reverted.

        Returns:
            True if every artifact was reverted (or was already absent).
        """
        with self._lock:
            pending, self._applied = self._applied, []
        ok = True
        for result in reversed(pending):
            ok = self.revert(result) and ok
        return ok
