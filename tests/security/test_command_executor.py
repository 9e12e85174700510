"""Tests for SecureCommandExecutor."""

from __future__ import annotations

import time
from collections.abc import Callable
from pathlib import Path

import pytest

from sxn.errors import CommandExecutionError, CommandNotAllowedError, PathValidationError
from sxn.security.executor import EXIT_NOT_FOUND, CommandResult, SecureCommandExecutor
from sxn.security.whitelist import CommandWhitelist

FakeBin = Callable[[str, str], Path]


@pytest.fixture
def executor(session: Path, test_whitelist: CommandWhitelist) -> SecureCommandExecutor:
    return SecureCommandExecutor(session, test_whitelist, kill_grace=0.5)


class TestExecute:
    def test_captures_output_and_exit_status(
        self, executor: SecureCommandExecutor, fake_bin: FakeBin
    ) -> None:
        fake_bin("tool", 'echo "out:$1"; echo "err" >&2; exit 3')
        result = executor.execute(["tool", "hello"])
        assert isinstance(result, CommandResult)
        assert result.exit_status == 3
        assert result.stdout == "out:hello\n"
        assert result.stderr == "err\n"
        assert not result.success
        assert not result.timed_out

    def test_runs_in_session_directory(
        self, executor: SecureCommandExecutor, fake_bin: FakeBin, session: Path
    ) -> None:
        fake_bin("tool", "pwd")
        result = executor.execute(["tool"])
        assert Path(result.stdout.strip()).resolve() == session.resolve()

    def test_working_directory_inside_session(
        self, executor: SecureCommandExecutor, fake_bin: FakeBin, session: Path
    ) -> None:
        (session / "sub").mkdir()
        fake_bin("tool", "pwd")
        result = executor.execute(["tool"], cwd="sub")
        assert Path(result.stdout.strip()).resolve() == (session / "sub").resolve()

    def test_working_directory_escape_rejected(
        self, executor: SecureCommandExecutor, fake_bin: FakeBin
    ) -> None:
        fake_bin("tool", "true")
        with pytest.raises(PathValidationError):
            executor.execute(["tool"], cwd="..")

    def test_not_whitelisted_raises(self, executor: SecureCommandExecutor) -> None:
        with pytest.raises(CommandNotAllowedError, match="command not whitelisted: rm"):
            executor.execute(["rm", "-rf", "."])

    def test_missing_executable_is_exit_127(self, executor: SecureCommandExecutor) -> None:
        result = executor.execute(["tool"])
        assert result.exit_status == EXIT_NOT_FOUND
        assert "not found" in result.stderr

    def test_timeout_bounds(self, executor: SecureCommandExecutor, fake_bin: FakeBin) -> None:
        fake_bin("tool", "true")
        with pytest.raises(CommandExecutionError, match="Timeout"):
            executor.execute(["tool"], timeout=0)
        with pytest.raises(CommandExecutionError, match="Timeout"):
            executor.execute(["tool"], timeout=1801)


class TestEnvironment:
    def test_only_safe_variables_are_inherited(
        self, executor: SecureCommandExecutor, fake_bin: FakeBin, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("SECRET_TOKEN", "leak")
        monkeypatch.setenv("LANG", "C.UTF-8")
        fake_bin("tool", 'echo "${SECRET_TOKEN:-unset} $LANG $EXTRA"')
        result = executor.execute(["tool"], {"EXTRA": "given"})
        assert result.stdout.strip() == "unset C.UTF-8 given"

    @pytest.mark.parametrize("name", ["lower", "1ABC", "A-B", ""])
    def test_invalid_names_rejected(
        self, executor: SecureCommandExecutor, fake_bin: FakeBin, name: str
    ) -> None:
        fake_bin("tool", "true")
        with pytest.raises(CommandExecutionError, match="environment variable name"):
            executor.execute(["tool"], {name: "x"})

    def test_null_byte_value_rejected(
        self, executor: SecureCommandExecutor, fake_bin: FakeBin
    ) -> None:
        fake_bin("tool", "true")
        with pytest.raises(CommandExecutionError, match="Invalid value"):
            executor.execute(["tool"], {"OK": "a\x00b"})

    @pytest.mark.parametrize(
        "name", ["PATH", "LD_PRELOAD", "LD_LIBRARY_PATH", "DYLD_INSERT_LIBRARIES"]
    )
    def test_protected_names_rejected(
        self, executor: SecureCommandExecutor, fake_bin: FakeBin, name: str
    ) -> None:
        fake_bin("tool", "true")
        with pytest.raises(CommandExecutionError, match="cannot be overridden"):
            executor.execute(["tool"], {name: "/tmp"})

    def test_path_override_cannot_swap_executable(
        self, executor: SecureCommandExecutor, fake_bin: FakeBin, tmp_path: Path, session: Path
    ) -> None:
        fake_bin("tool", "true")
        other = tmp_path / "other"
        other.mkdir()
        impostor = other / "tool"
        impostor.write_text("#!/bin/sh
touch impostor-ran
")
        impostor.chmod(0o755)
        with pytest.raises(CommandExecutionError):
            executor.execute(["tool"], {"PATH": str(other)})
        assert not (session / "impostor-ran").exists()

    def test_executable_resolved_on_inherited_path(
        self, executor: SecureCommandExecutor, fake_bin: FakeBin
    ) -> None:
        script = fake_bin("tool", 'echo "/tmp/t.pl"')
        result = executor.execute(["tool"])
        assert result.stdout.strip() == str(script)


class TestTimeouts:
    def test_timeout_kills_process_group(
        self, executor: SecureCommandExecutor, fake_bin: FakeBin, tmp_path: Path
    ) -> None:
        marker = tmp_path / "child-survived"
        # The child outlives the parent shell unless the whole group is killed.
        fake_bin("slow", f"(sleep 2; touch {marker}) & sleep 30")
        start = time.monotonic()
        result = executor.execute(["slow"], timeout=0.5)
        elapsed = time.monotonic() - start

        assert result.timed_out
        assert not result.success
        assert elapsed < 5
        time.sleep(2.5)
        assert not marker.exists()

    def test_to_dict(self) -> None:
        result = CommandResult(command=("tool", "a"), exit_status=0, stdout="x")
        data = result.to_dict()
        assert data["command"] == ["tool", "a"]
        assert data["success"] is True
