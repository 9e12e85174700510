"""Secure command executor.

Commands run directly from an argv list (never through a shell) in a new
process group, with a minimal environment and a hard deadline. A deadline
miss terminates the whole process group: SIGTERM first, SIGKILL after a
short grace period.
"""

from __future__ import annotations

import os
import re
import shutil
import signal
import subprocess
import time
from collections.abc import Mapping, Sequence
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

import structlog

from sxn.domain.specs import DEFAULT_TIMEOUT, MAX_TIMEOUT
from sxn.errors import CommandExecutionError, CommandNotAllowedError
from sxn.security.paths import PathValidator
from sxn.security.whitelist import CommandWhitelist

log = structlog.get_logger(__name__)

ENV_NAME_PATTERN = re.compile(r"\A[A-Z_][A-Z0-9_]*\Z")
EXIT_NOT_FOUND = 127

# Names a command's environment may not set.
PROTECTED_ENV_VARS = frozenset({"PATH"})
PROTECTED_ENV_PREFIXES = ("LD_", "DYLD_")

# Inherited from the parent process when set; everything else is dropped.
SAFE_ENV_VARS = (
    "PATH",
    "HOME",
    "USER",
    "LOGNAME",
    "SHELL",
    "LANG",
    "LC_ALL",
    "LC_CTYPE",
    "TZ",
    "TMPDIR",
    "TERM",
    "RAILS_ENV",
    "RACK_ENV",
    "NODE_ENV",
    "BUNDLE_GEMFILE",
    "BUNDLE_PATH",
    "GEM_HOME",
    "GEM_PATH",
    "VIRTUAL_ENV",
    "GOPATH",
    "CARGO_HOME",
)


def is_protected_env_name(name: str) -> bool:
    return name in PROTECTED_ENV_VARS or name.startswith(PROTECTED_ENV_PREFIXES)


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one command. A non-zero exit is data, not an error."""

    command: tuple[str, ...]
    exit_status: int
    stdout: str = ""
    stderr: str = ""
    duration: float = 0.0
    timed_out: bool = False

    @property
    def success(self) -> bool:
        return self.exit_status == 0 and not self.timed_out

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["command"] = list(self.command)
        data["success"] = self.success
        return data


class SecureCommandExecutor:
    """Run whitelisted commands inside a session directory."""

    def __init__(
        self,
        session_root: Path,
        whitelist: CommandWhitelist,
        *,
        validator: PathValidator | None = None,
        max_timeout: float = MAX_TIMEOUT,
        kill_grace: float = 2.0,
    ) -> None:
        self._session_root = Path(session_root).resolve()
        self._whitelist = whitelist
        self._validator = validator or PathValidator()
        self._max_timeout = max_timeout
        self._kill_grace = kill_grace

    @property
    def whitelist(self) -> CommandWhitelist:
        return self._whitelist

    def execute(
        self,
        argv: Sequence[str],
        environment: Mapping[str, str] | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        cwd: str | None = None,
    ) -> CommandResult:
        """Run *argv* and return its result.

        Raises:
            CommandNotAllowedError: If *argv* fails the whitelist.
            CommandExecutionError: On an invalid timeout or environment, a
                missing working directory, or if the process cannot be spawned.
            PathValidationError: If *cwd* or a path-like executable escapes
                the session.
        """
        reason = self._whitelist.check(argv)
        if reason is not None:
            log.warning("command.denied", command=argv, reason=reason)
            raise CommandNotAllowedError(reason)
        command = tuple(argv)

        if not 0 < timeout <= self._max_timeout:
            msg = f"Timeout must be between 0 and {self._max_timeout} seconds, got {timeout}"
            raise CommandExecutionError(msg)

        env = self._build_environment(environment or {})
        workdir = (
            self._validator.validate(cwd, self._session_root) if cwd else self._session_root
        )
        if not workdir.is_dir():
            msg = f"Working directory does not exist: {workdir}"
            raise CommandExecutionError(msg)

        executable = self._resolve_executable(command[0])
        if executable is None:
            log.warning("command.not_found", command=list(command))
            return CommandResult(
                command=command,
                exit_status=EXIT_NOT_FOUND,
                stderr=f"Command executable not found: {command[0]}",
            )

        start = time.perf_counter()
        try:
            proc = subprocess.Popen(
                [executable, *command[1:]],
                cwd=workdir,
                env=env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                start_new_session=True,
            )
        except OSError as exc:
            msg = f"Failed to start {command[0]}: {exc}"
            raise CommandExecutionError(msg) from exc

        timed_out = False
        try:
            stdout, stderr = proc.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            timed_out = True
            stdout, stderr = self._terminate(proc)

        result = CommandResult(
            command=command,
            exit_status=proc.returncode,
            stdout=stdout or "",
            stderr=stderr or "",
            duration=time.perf_counter() - start,
            timed_out=timed_out,
        )
        log.info(
            "command.exec",
            command=list(command),
            cwd=str(workdir),
            exit_status=result.exit_status,
            timed_out=timed_out,
            duration=round(result.duration, 3),
        )
        return result

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _build_environment(extra: Mapping[str, str]) -> dict[str, str]:
        env = {name: os.environ[name] for name in SAFE_ENV_VARS if name in os.environ}
        for name, value in extra.items():
            if not isinstance(name, str) or not ENV_NAME_PATTERN.match(name):
                msg = f"Invalid environment variable name: {name!r}"
                raise CommandExecutionError(msg)
            if is_protected_env_name(name):
                msg = f"Environment variable cannot be overridden: {name}"
                raise CommandExecutionError(msg)
            if not isinstance(value, str) or "\x00" in value:
                msg = f"Invalid value for environment variable {name}"
                raise CommandExecutionError(msg)
            env[name] = value
        return env

    def _resolve_executable(self, name: str) -> str | None:
        """Locate *name* on the inherited PATH, never on a caller-supplied one."""
        if "/" in name:
            candidate = self._validator.validate(name, self._session_root)
            if candidate.is_file() and os.access(candidate, os.X_OK):
                return str(candidate)
            return None
        return shutil.which(name, path=os.environ.get("PATH", os.defpath))

    def _terminate(self, proc: subprocess.Popen[str]) -> tuple[str, str]:
        """Stop the process group of a command that missed its deadline."""
        self._signal_group(proc, signal.SIGTERM)
        try:
            return proc.communicate(timeout=self._kill_grace)
        except subprocess.TimeoutExpired:
            self._signal_group(proc, signal.SIGKILL)
            return proc.communicate()

    @staticmethod
    def _signal_group(proc: subprocess.Popen[str], sig: signal.Signals) -> None:
        try:
            os.killpg(proc.pid, sig)
        except ProcessLookupError:
            pass
