"""Shared pytest fixtures for sxn tests."""

from __future__ import annotations

import logging
import os
import stat
from collections.abc import Callable, Generator
from pathlib import Path

import pytest
import structlog
from click.testing import CliRunner

from sxn.engine.engine import RulesEngine
from sxn.security.whitelist import CommandWhitelist

FakeCommand = Callable[[str, str], Path]


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture(autouse=True)
def _restore_logging() -> Generator[None]:
    """Undo any configure_logging() call made by a test."""
    root = logging.getLogger()
    original_handlers = root.handlers[:]
    original_level = root.level
    sxn_logger = logging.getLogger("sxn")
    sxn_level = sxn_logger.level
    yield
    root.handlers = original_handlers
    root.setLevel(original_level)
    sxn_logger.setLevel(sxn_level)
    structlog.reset_defaults()


@pytest.fixture(autouse=True)
def _clean_sxn_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's SXN_* variables out of tests."""
    for name in list(os.environ):
        if name.startswith("SXN_"):
            monkeypatch.delenv(name)


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """Empty project directory."""
    path = tmp_path / "project"
    path.mkdir()
    return path


@pytest.fixture
def session(tmp_path: Path) -> Path:
    """Empty session directory."""
    path = tmp_path / "session"
    path.mkdir()
    return path


@pytest.fixture
def fake_bin(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> FakeCommand:
    """Factory for shell-script executables placed first on PATH.

    ``fake_bin("npm", 'echo "$@" >> calls.log')`` creates ``npm`` running
    that body with ``/bin/sh``.
    """
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    monkeypatch.setenv("PATH", f"{bin_dir}{os.pathsep}{os.environ.get('PATH', '')}")

    def make(name: str, body: str) -> Path:
        script = bin_dir / name
        script.write_text(f"#!/bin/sh\n{body}\n")
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return script

    return make


@pytest.fixture
def test_whitelist() -> CommandWhitelist:
    """Whitelist for fake test tools on top of the defaults."""
    return CommandWhitelist(extra={"tool": None, "slow": None, "fail": None, "touch": None})


@pytest.fixture
def engine(project: Path, session: Path, test_whitelist: CommandWhitelist) -> RulesEngine:
    """Engine over the empty project/session pair."""
    return RulesEngine(project, session, whitelist=test_whitelist)
