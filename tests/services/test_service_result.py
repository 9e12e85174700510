"""Tests for ServiceResult, ServiceError and BaseService."""

import json

import pytest

from sxn.config.models import SxnConfig
from sxn.services.base import BaseService
from sxn.services.result import ServiceError, ServiceResult


class TestServiceResult:
    def test_success_construction(self) -> None:
        result = ServiceResult(ok=True, op="apply_rules", data={"applied_rules": ["a"]})
        assert result.ok is True
        assert result.op == "apply_rules"
        assert result.data == {"applied_rules": ["a"]}
        assert result.warnings == []
        assert result.error is None
        assert result.meta is None

    def test_error_construction(self) -> None:
        error = ServiceError(code="INVALID_PATH", message="Project path is not a directory")
        result = ServiceResult(ok=False, op="validate_rules", error=error)
        assert result.error is not None
        assert result.error.code == "INVALID_PATH"
        assert result.error.detail == {}

    def test_json_serialization(self) -> None:
        result = ServiceResult(
            ok=True,
            op="validate_rules",
            data={"rules": ["a"]},
            meta={"duration": 0.01},
        )
        parsed = json.loads(result.model_dump_json())
        assert parsed["ok"] is True
        assert parsed["data"]["rules"] == ["a"]
        assert parsed["meta"]["duration"] == 0.01
        assert parsed["error"] is None

    def test_frozen(self) -> None:
        result = ServiceResult(ok=True, op="test")
        with pytest.raises(Exception):
            result.ok = False  # type: ignore[misc]


class TestBaseService:
    def test_default_settings(self) -> None:
        assert BaseService().settings == SxnConfig()

    def test_failure_helper(self) -> None:
        result = BaseService._failure(
            "apply_rules", "APPLY_FAILED", "1 rule(s) failed: a", detail={"errors": []}
        )
        assert result.ok is False
        assert result.data == {}
        assert result.error == ServiceError(
            code="APPLY_FAILED", message="1 rule(s) failed: a", detail={"errors": []}
        )
