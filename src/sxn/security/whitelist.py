"""Command whitelist: a pure predicate over argv lists.

An argv is allowed when its executable is on the allow-list, its
subcommand (the first non-option argument) matches one of the configured
patterns when patterns are configured, no argument carries shell
metacharacters, and no interpreter is asked to run inline code.
Nothing here executes or touches the filesystem.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from fnmatch import fnmatchcase
from pathlib import PurePosixPath
from typing import Any

# Executable -> permitted subcommand patterns (None: any arguments).
DEFAULT_ALLOWED_COMMANDS: dict[str, tuple[str, ...] | None] = {
    # Ruby / Rails
    "bundle": ("install", "check", "config"),
    "gem": ("install",),
    "rails": ("db:*", "assets:precompile", "tmp:*", "log:clear"),
    "bin/rails": ("db:*", "assets:precompile", "tmp:*", "log:clear"),
    "rake": ("db:*", "assets:*"),
    "bin/setup": None,
    # JavaScript
    "npm": ("install", "ci", "run"),
    "yarn": ("install", "run", "build"),
    "pnpm": ("install", "run"),
    "node": None,
    # Python
    "pip": ("install",),
    "uv": ("sync", "pip"),
    "poetry": ("install",),
    "pipenv": ("install", "sync"),
    # Other toolchains
    "cargo": ("build", "fetch"),
    "go": ("mod", "build"),
    "make": None,
    # Version control
    "git": ("submodule", "lfs", "config", "fetch", "checkout"),
    # Databases
    "psql": None,
    "mysql": None,
    "sqlite3": None,
    # Network fetch
    "curl": None,
    "wget": None,
}

SHELL_METACHARACTERS = frozenset(";&|`$<>\n\r")

# Interpreter -> flags that evaluate code given on the command line.
INLINE_CODE_FLAGS: dict[str, frozenset[str]] = {
    "ruby": frozenset({"-e"}),
    "node": frozenset({"-e", "--eval", "-p", "--print"}),
    "python": frozenset({"-c"}),
    "python3": frozenset({"-c"}),
    "perl": frozenset({"-e", "-E"}),
    "php": frozenset({"-r"}),
    "sh": frozenset({"-c"}),
    "bash": frozenset({"-c"}),
    "zsh": frozenset({"-c"}),
}


def _normalize(executable: str) -> str:
    return executable[2:] if executable.startswith("./") else executable


class CommandWhitelist:
    """Explicit allow-list of executables and subcommand patterns.

    Args:
        commands: Replaces the default allow-list when given.
        extra: Entries merged over the base allow-list (settings
            ``[security] extra_commands``).
    """

    def __init__(
        self,
        commands: Mapping[str, Sequence[str] | None] | None = None,
        *,
        extra: Mapping[str, Sequence[str] | None] | None = None,
    ) -> None:
        base = DEFAULT_ALLOWED_COMMANDS if commands is None else commands
        merged: dict[str, tuple[str, ...] | None] = {}
        for source in (base, extra or {}):
            for name, patterns in source.items():
                merged[_normalize(name)] = None if patterns is None else tuple(patterns)
        self._commands = merged

    @property
    def commands(self) -> list[str]:
        """Sorted executable names on the allow-list."""
        return sorted(self._commands)

    def patterns_for(self, executable: str) -> tuple[str, ...] | None:
        return self._commands.get(_normalize(executable))

    def allowed(self, argv: Any) -> bool:
        """Whether *argv* passes every whitelist check."""
        return self.check(argv) is None

    def check(self, argv: Any) -> str | None:
        """Return the reason *argv* is denied, or None if it is allowed."""
        if isinstance(argv, str) or not isinstance(argv, Sequence) or not argv:
            return "command must be a non-empty argv list"
        if not all(isinstance(arg, str) for arg in argv):
            return "command arguments must be strings"

        executable = argv[0]
        key = _normalize(executable)
        if key not in self._commands:
            return f"command not whitelisted: {executable}"

        for arg in argv:
            if "\x00" in arg or any(ch in SHELL_METACHARACTERS for ch in arg):
                return f"argument contains shell metacharacters: {arg!r}"

        inline = self._inline_code_flag(key, argv[1:])
        if inline is not None:
            return f"inline code execution is not permitted: {executable} {inline}"

        patterns = self._commands[key]
        if patterns is not None:
            subcommand = next((arg for arg in argv[1:] if not arg.startswith("-")), None)
            if subcommand is None or not any(fnmatchcase(subcommand, p) for p in patterns):
                return f"subcommand not permitted for {executable}: {subcommand or '(none)'}"
        return None

    @staticmethod
    def _inline_code_flag(key: str, args: Sequence[str]) -> str | None:
        flags = INLINE_CODE_FLAGS.get(PurePosixPath(key).name)
        if not flags:
            return None
        for arg in args:
            if arg in flags:
                return arg
            for flag in flags:
                # Attached forms: -e'code', --eval=code
                if flag.startswith("--") and arg.startswith(flag + "="):
                    return arg
                if not flag.startswith("--") and arg.startswith(flag) and not arg.startswith("--"):
                    return arg
        return None
