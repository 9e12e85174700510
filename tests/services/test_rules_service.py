"""Tests for RulesService."""

from __future__ import annotations

import json
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from sxn.config.models import SecurityConfig, SxnConfig
from sxn.services.rules import RulesService

FakeBin = Callable[[str, str], Path]


@pytest.fixture
def service() -> RulesService:
    return RulesService(SxnConfig(security=SecurityConfig(extra_commands={"touch": None})))


def _write_rules(tmp_path: Path, rules: dict[str, Any]) -> Path:
    path = tmp_path / "rules.json"
    path.write_text(json.dumps(rules))
    return path


class TestValidate:
    def test_valid(self, service: RulesService, tmp_path: Path, project: Path) -> None:
        (project / "Gemfile").write_text("x")
        rules = _write_rules(
            tmp_path,
            {
                "files": {"type": "copy_files", "config": {"files": [{"source": "Gemfile"}]}},
                "setup": {
                    "type": "setup_commands",
                    "dependencies": ["files"],
                    "config": {"commands": [{"command": ["bundle", "install"]}]},
                },
            },
        )
        result = service.validate(rules, project)

        assert result.ok
        assert result.op == "validate_rules"
        assert result.data == {
            "valid": True,
            "rules": ["files", "setup"],
            "waves": [["files"], ["setup"]],
        }

    def test_invalid(self, service: RulesService, tmp_path: Path, project: Path) -> None:
        commands = [{"command": ["rm", "-rf", "/"]}]
        rules = _write_rules(
            tmp_path, {"danger": {"type": "setup_commands", "config": {"commands": commands}}}
        )
        result = service.validate(rules, project)

        assert not result.ok
        assert result.error is not None
        assert result.error.code == "VALIDATION_FAILED"
        assert result.error.detail["errors"] == [
            "Rule 'danger': Command config 0: command not whitelisted: rm"
        ]

    def test_scratch_session_removed(
        self,
        service: RulesService,
        tmp_path: Path,
        project: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        scratch_root = tmp_path / "tmp"
        scratch_root.mkdir()
        monkeypatch.setattr(tempfile, "tempdir", str(scratch_root))
        rules = _write_rules(tmp_path, {})

        assert service.validate(rules, project).ok
        assert list(scratch_root.iterdir()) == []

    def test_rules_file_error(self, service: RulesService, tmp_path: Path, project: Path) -> None:
        path = tmp_path / "rules.yml"
        path.write_text("- not\n- a mapping\n")
        result = service.validate(path, project)
        assert result.error is not None
        assert result.error.code == "RULES_FILE_ERROR"
        assert result.error.detail == {"path": str(path)}

    def test_invalid_project(self, service: RulesService, tmp_path: Path) -> None:
        rules = _write_rules(tmp_path, {})
        result = service.validate(rules, tmp_path / "missing")
        assert result.error is not None
        assert result.error.code == "INVALID_PATH"


class TestApply:
    def test_success(
        self, service: RulesService, tmp_path: Path, project: Path, session: Path
    ) -> None:
        rules = _write_rules(
            tmp_path,
            {
                "setup": {
                    "type": "setup_commands",
                    "config": {"commands": [{"command": ["touch", "ready"]}]},
                }
            },
        )
        result = service.apply(rules, project, session)

        assert result.ok
        assert result.op == "apply_rules"
        assert result.data["applied_rules"] == ["setup"]
        assert result.data["rules"][0]["state"] == "applied"
        assert result.data["rules"][0]["artifacts"] == 1
        assert "total_duration" in result.meta
        assert (session / "ready").exists()

    def test_tolerated_failure_is_a_warning(
        self,
        service: RulesService,
        tmp_path: Path,
        project: Path,
        session: Path,
        fake_bin: FakeBin,
    ) -> None:
        fake_bin("make", "exit 2")
        rules = _write_rules(
            tmp_path,
            {
                "build": {
                    "type": "setup_commands",
                    "continue_on_failure": True,
                    "config": {"commands": [{"command": ["make"]}]},
                }
            },
        )
        result = service.apply(rules, project, session)

        assert result.ok
        assert result.warnings == [
            "Rule 'build' failed (tolerated): Command failed with exit status 2: make"
        ]

    def test_failure_with_rollback(
        self,
        service: RulesService,
        tmp_path: Path,
        project: Path,
        session: Path,
        fake_bin: FakeBin,
    ) -> None:
        fake_bin("make", "exit 1")
        (project / "a.txt").write_text("a")
        rules = _write_rules(
            tmp_path,
            {
                "files": {"type": "copy_files", "config": {"files": [{"source": "a.txt"}]}},
                "build": {
                    "type": "setup_commands",
                    "dependencies": ["files"],
                    "config": {"commands": [{"command": ["make"]}]},
                },
            },
        )
        result = service.apply(rules, project, session, rollback_on_failure=True)

        assert not result.ok
        assert result.error is not None
        assert result.error.code == "APPLY_FAILED"
        assert result.error.message == "1 rule(s) failed: build"
        assert result.error.detail["rolled_back"] is True
        assert result.error.detail["errors"][0]["rule"] == "build"
        assert result.data["failed_rules"] == ["build"]
        assert not (session / "a.txt").exists()

    def test_failure_without_rollback_keeps_files(
        self,
        service: RulesService,
        tmp_path: Path,
        project: Path,
        session: Path,
        fake_bin: FakeBin,
    ) -> None:
        fake_bin("make", "exit 1")
        (project / "a.txt").write_text("a")
        rules = _write_rules(
            tmp_path,
            {
                "files": {"type": "copy_files", "config": {"files": [{"source": "a.txt"}]}},
                "build": {
                    "type": "setup_commands",
                    "dependencies": ["files"],
                    "config": {"commands": [{"command": ["make"]}]},
                },
            },
        )
        result = service.apply(rules, project, session)

        assert result.error is not None
        assert "rolled_back" not in result.error.detail
        assert (session / "a.txt").exists()

    def test_validation_failure(
        self, service: RulesService, tmp_path: Path, project: Path, session: Path
    ) -> None:
        rules = _write_rules(tmp_path, {"a": {"type": "teleport"}})
        result = service.apply(rules, project, session)
        assert result.error is not None
        assert result.error.code == "VALIDATION_FAILED"

    def test_options_override_settings(
        self,
        service: RulesService,
        tmp_path: Path,
        project: Path,
        session: Path,
        fake_bin: FakeBin,
    ) -> None:
        fake_bin("make", "exit 1")
        rules = _write_rules(
            tmp_path,
            {"build": {"type": "setup_commands", "config": {"commands": [{"command": ["make"]}]}}},
        )
        result = service.apply(rules, project, session, continue_on_failure=True)
        assert result.ok


class TestTypesAndSuggest:
    def test_types(self, service: RulesService) -> None:
        result = service.types()
        assert result.op == "rule_types"
        assert [item["type"] for item in result.data["items"]] == [
            "copy_files",
            "setup_commands",
            "template",
        ]
        assert result.data["items"][0]["class"] == "CopyFilesRule"

    def test_suggest(self, service: RulesService, project: Path) -> None:
        (project / "package.json").write_text("{}")
        result = service.suggest(project)
        assert result.ok
        assert result.data["project"]["type"] == "nodejs"
        assert result.data["project"]["package_manager"] == "npm"
        assert "setup_commands" in result.data["rules"]

    def test_suggest_invalid_project(self, service: RulesService, tmp_path: Path) -> None:
        result = service.suggest(tmp_path / "missing")
        assert result.error is not None
        assert result.error.code == "INVALID_PATH"
