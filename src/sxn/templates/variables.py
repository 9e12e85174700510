"""System variables available to every template.

Categories: ``session``, ``project``, ``git``, ``environment``,
``timestamp``. Git details are read from the session (a worktree) with a
short timeout; when git is missing or the session is not a repository,
``git.available`` is false and the other git keys are absent.
"""

from __future__ import annotations

import os
import platform
import subprocess
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import structlog

log = structlog.get_logger(__name__)

GIT_TIMEOUT = 5


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return *base* with *override* merged in; nested dicts merge recursively."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class TemplateVariables:
    """Collect system variables for one project/session pair."""

    def __init__(
        self,
        project_path: Path,
        session_path: Path,
        *,
        session_name: str | None = None,
        project_type: str = "unknown",
    ) -> None:
        self.project_path = Path(project_path)
        self.session_path = Path(session_path)
        self.session_name = session_name or self.session_path.name
        self.project_type = project_type
        self._cache: dict[str, Any] | None = None

    def build(self) -> dict[str, Any]:
        """Return the variables, collecting them on first call."""
        if self._cache is None:
            self._cache = {
                "session": self._session(),
                "project": self._project(),
                "git": self._git(),
                "environment": self._environment(),
                "timestamp": self._timestamp(),
            }
        return self._cache

    def _session(self) -> dict[str, Any]:
        return {"name": self.session_name, "path": str(self.session_path)}

    def _project(self) -> dict[str, Any]:
        return {
            "name": self.project_path.name,
            "path": str(self.project_path),
            "type": self.project_type,
        }

    def _git(self) -> dict[str, Any]:
        branch = self._run_git("rev-parse", "--abbrev-ref", "HEAD")
        if branch is None:
            return {"available": False}
        info: dict[str, Any] = {"available": True, "branch": branch}
        commit = self._run_git("log", "-1", "--format=%H%x00%h%x00%s%x00%an%x00%ae")
        if commit:
            sha, short_sha, subject, author, email = (commit.split("\x00") + [""] * 5)[:5]
            info["commit"] = {"sha": sha, "short_sha": short_sha, "message": subject}
            info["author"] = {"name": author, "email": email}
        return info

    def _run_git(self, *args: str) -> str | None:
        try:
            completed = subprocess.run(
                ["git", *args],
                cwd=self.session_path,
                capture_output=True,
                text=True,
                timeout=GIT_TIMEOUT,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            log.debug("template.git_unavailable", error=str(exc))
            return None
        if completed.returncode != 0:
            return None
        return completed.stdout.strip()

    @staticmethod
    def _environment() -> dict[str, Any]:
        return {
            "python": {"version": platform.python_version(), "executable": sys.executable},
            "os": {"name": platform.system().lower(), "arch": platform.machine()},
            "user": os.environ.get("USER", ""),
            "home": os.environ.get("HOME", ""),
        }

    @staticmethod
    def _timestamp() -> dict[str, Any]:
        now = datetime.now(UTC)
        return {
            "now": now.isoformat(),
            "today": now.strftime("%Y-%m-%d"),
            "year": now.year,
            "month": now.month,
            "day": now.day,
            "epoch": int(now.timestamp()),
        }
