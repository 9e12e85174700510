"""Tests for SecurityGate wiring."""

from __future__ import annotations

import base64
import os
from pathlib import Path

import pytest

from sxn.config.models import SecurityConfig
from sxn.errors import SecurityError
from sxn.security.gate import SecurityGate
from sxn.security.whitelist import CommandWhitelist


class TestBuild:
    def test_defaults(self, project: Path, session: Path) -> None:
        gate = SecurityGate.build(project, session)
        assert gate.whitelist.allowed(["npm", "install"])
        assert gate.executor.whitelist is gate.whitelist

    def test_extra_commands_from_settings(self, project: Path, session: Path) -> None:
        settings = SecurityConfig(extra_commands={"just": ["setup"]})
        gate = SecurityGate.build(project, session, settings=settings)
        assert gate.whitelist.allowed(["just", "setup"])

    def test_explicit_whitelist_wins(self, project: Path, session: Path) -> None:
        whitelist = CommandWhitelist({"tool": None})
        gate = SecurityGate.build(
            project,
            session,
            settings=SecurityConfig(extra_commands={"just": None}),
            whitelist=whitelist,
        )
        assert gate.whitelist is whitelist
        assert not gate.whitelist.allowed(["just"])

    def test_encryption_key_from_settings(self, project: Path, session: Path) -> None:
        key = os.urandom(32)
        settings = SecurityConfig(encryption_key=base64.b64encode(key).decode())
        gate = SecurityGate.build(project, session, settings=settings)
        assert gate.copier.encryption_key == key

    def test_bad_encryption_key(self, project: Path, session: Path) -> None:
        settings = SecurityConfig(encryption_key=base64.b64encode(b"short").decode())
        with pytest.raises(SecurityError):
            SecurityGate.build(project, session, settings=settings)
