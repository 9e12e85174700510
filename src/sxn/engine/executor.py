"""RuleExecutor: run the waves of one ``apply_rules`` call.

Waves run strictly in order. Inside a wave, rules run on a bounded
thread pool when parallel execution is enabled and the wave holds more
than one rule; otherwise they run one by one in config order. Results
are always folded in config order, so parallel and sequential runs
report the same lists.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor

import structlog

from sxn.config.logging import RULE_WORKER_PREFIX
from sxn.domain.results import ApplyResult, RuleErrorEntry, RuleResult
from sxn.domain.specs import RuleSpec
from sxn.domain.types import STATE_TRANSITIONS, RuleState
from sxn.engine.graph import RuleGraph
from sxn.engine.rollback import RollbackManager
from sxn.errors import RuleExecutionError
from sxn.rules.base import Rule

log = structlog.get_logger(__name__)

HALTED_REASON = "execution halted after failure"


class RuleExecutor:
    """Execute a validated :class:`RuleGraph`.

    Args:
        graph: Acyclic graph with no unknown dependencies.
        rule_for: Returns the rule instance for a spec.
        rollback: Receives every applied result; also reverts the partial
            artifacts of failed rules.
        parallel: Run multi-rule waves on a thread pool.
        max_parallelism: Worker threads per wave.
        continue_on_failure: Tolerate every failure: dependents still run
            and later waves are still scheduled.
    """

    def __init__(
        self,
        graph: RuleGraph,
        rule_for: Callable[[RuleSpec], Rule],
        rollback: RollbackManager,
        *,
        parallel: bool = True,
        max_parallelism: int = 4,
        continue_on_failure: bool = False,
    ) -> None:
        if max_parallelism < 1:
            msg = f"max_parallelism must be at least 1, got {max_parallelism}"
            raise ValueError(msg)
        self._graph = graph
        self._rule_for = rule_for
        self._rollback = rollback
        self._parallel = parallel
        self._max_parallelism = max_parallelism
        self._continue_on_failure = continue_on_failure
        self._lock = threading.Lock()
        self._states = {spec.name: RuleState.PENDING for spec in graph.specs}

    @property
    def states(self) -> dict[str, RuleState]:
        """Snapshot of the per-rule state table."""
        with self._lock:
            return dict(self._states)

    def run(self) -> ApplyResult:
        start = time.perf_counter()
        waves = self._graph.compute_waves()
        results: dict[str, RuleResult] = {}
        halted = False

        for number, wave in enumerate(waves):
            if halted:
                for name in wave:
                    results[name] = self._skip(name, HALTED_REASON)
                continue

            runnable: list[str] = []
            for name in wave:
                reason = self._blocking_dependency(name, results)
                if reason is None:
                    runnable.append(name)
                else:
                    results[name] = self._skip(name, reason)

            log.debug("wave.start", wave=number, rules=runnable)
            wave_results = self._run_wave(runnable)
            for name in runnable:
                result = wave_results[name]
                results[name] = result
                if result.state is RuleState.FAILED:
                    if result.artifacts:
                        self._rollback.revert(result)
                    if not self._tolerated(name):
                        halted = True
                else:
                    self._rollback.record(result)
            if halted:
                log.warning("execution.halted", wave=number)

        return self._aggregate(waves, results, time.perf_counter() - start)

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def _tolerated(self, name: str) -> bool:
        return self._continue_on_failure or self._graph.spec(name).continue_on_failure

    def _blocking_dependency(self, name: str, results: dict[str, RuleResult]) -> str | None:
        for dep in self._graph.dependencies(name):
            state = results[dep].state
            if state in (RuleState.FAILED, RuleState.SKIPPED) and not self._tolerated(dep):
                return f"dependency failed: {dep}"
        return None

    def _run_wave(self, names: list[str]) -> dict[str, RuleResult]:
        wave_results: dict[str, RuleResult] = {}
        if self._parallel and len(names) > 1:
            workers = min(self._max_parallelism, len(names))
            pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix=RULE_WORKER_PREFIX)
            with pool:
                futures = [pool.submit(self._execute_into, name, wave_results) for name in names]
                for future in futures:
                    future.result()
        else:
            for name in names:
                self._execute_into(name, wave_results)
        return wave_results

    def _execute_into(self, name: str, sink: dict[str, RuleResult]) -> None:
        result = self._execute(name)
        with self._lock:
            sink[name] = result

    # ------------------------------------------------------------------
    # Per-rule state machine
    # ------------------------------------------------------------------

    def _transition(self, name: str, new: RuleState) -> None:
        with self._lock:
            old = self._states[name]
            if new not in STATE_TRANSITIONS[old]:
                msg = f"Invalid state transition for {name}: {old} -> {new}"
                raise RuntimeError(msg)
            self._states[name] = new
        log.debug("rule.transition", rule=name, from_state=str(old), to_state=str(new))

    def _skip(self, name: str, reason: str) -> RuleResult:
        self._transition(name, RuleState.SKIPPED)
        log.info("rule.skipped", rule=name, reason=reason)
        return RuleResult(
            name=name,
            rule_type=self._graph.spec(name).type,
            state=RuleState.SKIPPED,
            error=reason,
        )

    def _execute(self, name: str) -> RuleResult:
        spec = self._graph.spec(name)
        start = time.perf_counter()
        self._transition(name, RuleState.VALIDATING)
        try:
            rule = self._rule_for(spec)
            problems = rule.problems(spec.config)
            if problems:
                raise RuleExecutionError("; ".join(problems))
            self._transition(name, RuleState.APPLYING)
            result = rule.apply(name, spec.config)
        except Exception as exc:
            log.error("rule.failed", rule=name, error=str(exc), exc_type=type(exc).__name__)
            result = RuleResult(
                name=name,
                rule_type=spec.type,
                state=RuleState.FAILED,
                error=str(exc) or type(exc).__name__,
                duration=time.perf_counter() - start,
            )
        self._transition(name, result.state)
        log.info("rule.finished", rule=name, state=str(result.state), duration=round(result.duration, 3))
        return result

    # ------------------------------------------------------------------
    # Aggregation
    # ------------------------------------------------------------------

    def _aggregate(
        self, waves: list[list[str]], results: dict[str, RuleResult], duration: float
    ) -> ApplyResult:
        applied: list[str] = []
        failed: list[str] = []
        skipped: list[str] = []
        tolerated: list[str] = []
        errors: list[RuleErrorEntry] = []
        for name in (n for wave in waves for n in wave):
            result = results[name]
            if result.state is RuleState.APPLIED:
                applied.append(name)
            elif result.state is RuleState.FAILED:
                failed.append(name)
                errors.append(RuleErrorEntry(rule=name, message=result.error or "unknown error"))
                if self._tolerated(name):
                    tolerated.append(name)
            else:
                skipped.append(name)
        return ApplyResult(
            applied_rules=applied,
            failed_rules=failed,
            skipped_rules=skipped,
            tolerated_failures=tolerated,
            errors=errors,
            results=results,
            waves=waves,
            total_duration=duration,
        )
