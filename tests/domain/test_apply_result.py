"""Tests for RuleResult and ApplyResult."""

from __future__ import annotations

from sxn.domain.results import ApplyResult, RuleErrorEntry, RuleResult
from sxn.domain.types import RuleState, RuleType


class TestRuleResult:
    def test_success_only_when_applied(self) -> None:
        applied = RuleResult(name="a", rule_type=RuleType.COPY_FILES, state=RuleState.APPLIED)
        skipped = RuleResult(name="b", rule_type=RuleType.COPY_FILES, state=RuleState.SKIPPED)
        assert applied.success
        assert not skipped.success


class TestApplyResult:
    def test_empty_is_success(self) -> None:
        assert ApplyResult().success

    def test_untolerated_failure(self) -> None:
        result = ApplyResult(applied_rules=["a"], failed_rules=["b"])
        assert not result.success
        assert result.total_rules == 2

    def test_tolerated_failure(self) -> None:
        result = ApplyResult(failed_rules=["b"], tolerated_failures=["b"])
        assert result.success

    def test_summary(self) -> None:
        result = ApplyResult(
            applied_rules=["a"],
            failed_rules=["b"],
            skipped_rules=["c"],
            errors=[RuleErrorEntry(rule="b", message="boom")],
            waves=[["a", "b"], ["c"]],
            total_duration=0.123456,
        )
        summary = result.summary()
        assert summary["success"] is False
        assert summary["total_rules"] == 3
        assert summary["errors"] == [{"rule": "b", "message": "boom"}]
        assert summary["waves"] == [["a", "b"], ["c"]]
        assert summary["total_duration"] == 0.1235
