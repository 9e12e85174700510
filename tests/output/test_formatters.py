"""Tests for output mode selection."""

import json

from sxn.output.formatters import OutputSettings, format_result
from sxn.services.result import ServiceError, ServiceResult


def _validated() -> ServiceResult:
    return ServiceResult(
        ok=True,
        op="validate_rules",
        data={"valid": True, "rules": ["files", "setup"], "waves": [["files"], ["setup"]]},
    )


class TestFormatResult:
    def test_json_mode(self) -> None:
        output = format_result(_validated(), settings=OutputSettings(json_output=True))
        parsed = json.loads(output)
        assert parsed["ok"] is True
        assert parsed["data"]["rules"] == ["files", "setup"]

    def test_json_wins_over_quiet(self) -> None:
        settings = OutputSettings(json_output=True, quiet=True)
        assert json.loads(format_result(_validated(), settings=settings))["op"] == "validate_rules"

    def test_quiet_mode(self) -> None:
        output = format_result(_validated(), settings=OutputSettings(quiet=True))
        assert output == "files\nsetup"

    def test_default_is_rich(self) -> None:
        output = format_result(_validated())
        assert output.startswith("OK  validate_rules")
        assert "wave 2: setup" in output

    def test_quiet_error(self) -> None:
        result = ServiceResult(
            ok=False,
            op="apply_rules",
            error=ServiceError(code="APPLY_FAILED", message="1 rule(s) failed: b"),
        )
        output = format_result(result, settings=OutputSettings(quiet=True))
        assert output == "ERROR: apply_rules: 1 rule(s) failed: b"
