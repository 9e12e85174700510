"""Project detection and default rule suggestions.

Looks only at well-known marker files at the project root (and a few
fixed subpaths); it never recurses into dependency directories.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

import structlog

log = structlog.get_logger(__name__)

# Candidate files that usually hold secrets or machine-local settings.
SENSITIVE_PATTERNS = (
    "config/master.key",
    "config/credentials/*.key",
    ".env",
    ".env.*",
    "*.pem",
    "*.p12",
    "*.jks",
    ".npmrc",
)
_NON_SECRET_SUFFIXES = (".example", ".sample", ".template", ".dist")
_COPY_SUFFIXES = re.compile(r"\.(key|pem|p12|jks)\Z")

# Package manager -> marker files, in detection order.
PACKAGE_MANAGERS: dict[str, tuple[str, ...]] = {
    "bundler": ("Gemfile.lock", "Gemfile"),
    "yarn": ("yarn.lock",),
    "pnpm": ("pnpm-lock.yaml",),
    "npm": ("package-lock.json", "package.json"),
    "uv": ("uv.lock",),
    "poetry": ("poetry.lock",),
    "pipenv": ("Pipfile.lock", "Pipfile"),
    "pip": ("requirements.txt",),
    "cargo": ("Cargo.toml",),
    "go": ("go.mod",),
}

_INSTALL_COMMANDS: dict[str, list[str]] = {
    "bundler": ["bundle", "install"],
    "yarn": ["yarn", "install"],
    "pnpm": ["pnpm", "install"],
    "npm": ["npm", "install"],
    "uv": ["uv", "sync"],
    "poetry": ["poetry", "install"],
    "pipenv": ["pipenv", "install"],
    "pip": ["pip", "install", "-r", "requirements.txt"],
    "cargo": ["cargo", "fetch"],
    "go": ["go", "mod", "download"],
}

_JS_TYPES = frozenset({"nextjs", "react", "nodejs", "typescript"})
_PYTHON_TYPES = frozenset({"python", "django"})


class ProjectDetector:
    """Inspect a project directory and suggest a rules config for it."""

    def __init__(self, project_path: Path) -> None:
        self.project_path = Path(project_path)
        if not self.project_path.is_dir():
            msg = f"Project path is not a directory: {self.project_path}"
            raise ValueError(msg)

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    def detect_type(self) -> str:
        """Return the most specific project type, or ``"unknown"``."""
        if self._has("Gemfile") and self._has("config/application.rb"):
            return "rails"
        if self._has("manage.py"):
            return "django"
        if self._has("package.json"):
            deps = self._package_json_dependencies()
            if "next" in deps or self._has("next.config.js") or self._has("next.config.mjs"):
                return "nextjs"
            if "react" in deps:
                return "react"
            if self._has("tsconfig.json"):
                return "typescript"
            return "nodejs"
        if any(self._has(f) for f in ("pyproject.toml", "requirements.txt", "setup.py", "Pipfile")):
            return "python"
        if self._has("Gemfile") or any(self.project_path.glob("*.gemspec")):
            return "ruby"
        if self._has("go.mod"):
            return "go"
        if self._has("Cargo.toml"):
            return "rust"
        return "unknown"

    def detect_package_manager(self) -> str:
        for manager, markers in PACKAGE_MANAGERS.items():
            if any(self._has(marker) for marker in markers):
                return manager
        return "unknown"

    def detect_sensitive_files(self) -> list[str]:
        """Project-relative paths of files that look like secrets."""
        found: set[str] = set()
        for pattern in SENSITIVE_PATTERNS:
            for match in self.project_path.glob(pattern):
                if match.is_file() and not match.name.endswith(_NON_SECRET_SUFFIXES):
                    found.add(match.relative_to(self.project_path).as_posix())
        return sorted(found)

    def detect(self) -> dict[str, Any]:
        """Summary used by ``sxn rules suggest``."""
        return {
            "path": str(self.project_path),
            "type": self.detect_type(),
            "package_manager": self.detect_package_manager(),
            "sensitive_files": self.detect_sensitive_files(),
        }

    # ------------------------------------------------------------------
    # Suggestions
    # ------------------------------------------------------------------

    def suggest_rules(self) -> dict[str, Any]:
        """Return a rules config suited to the detected project.

        Every suggested entry is optional (``required: false``) so the
        config validates whether or not the files are present.
        """
        info = self.detect()
        rules: dict[str, Any] = {}

        files = self._suggest_files(info)
        if files:
            rules["copy_files"] = {"type": "copy_files", "config": {"files": files}}

        commands = self._suggest_commands(info)
        if commands:
            rules["setup_commands"] = {
                "type": "setup_commands",
                "config": {"commands": commands},
                "dependencies": ["copy_files"] if files else [],
            }

        rules["templates"] = {
            "type": "template",
            "config": {"templates": self._suggest_templates(info)},
        }
        log.debug("detector.suggested", project=str(self.project_path), rules=list(rules))
        return rules

    @staticmethod
    def _suggest_files(info: dict[str, Any]) -> list[dict[str, Any]]:
        project_type = info["type"]
        files: list[dict[str, Any]] = []
        if project_type == "rails":
            files += [
                {"source": "config/master.key", "strategy": "copy", "permissions": "0600"},
                {"source": ".env", "strategy": "symlink"},
                {"source": ".env.development", "strategy": "symlink"},
            ]
        elif project_type in _JS_TYPES:
            files += [
                {"source": ".env", "strategy": "symlink"},
                {"source": ".env.local", "strategy": "symlink"},
                {"source": ".npmrc", "strategy": "copy", "permissions": "0600"},
            ]
        elif project_type in _PYTHON_TYPES:
            files += [{"source": ".env", "strategy": "symlink"}]

        known = {f["source"] for f in files}
        for path in info["sensitive_files"]:
            if path in known:
                continue
            if _COPY_SUFFIXES.search(path):
                files.append({"source": path, "strategy": "copy", "permissions": "0600"})
            else:
                files.append({"source": path, "strategy": "symlink"})
        return [{**f, "required": False} for f in files]

    @staticmethod
    def _suggest_commands(info: dict[str, Any]) -> list[dict[str, Any]]:
        manager = info["package_manager"]
        install = _INSTALL_COMMANDS.get(manager)
        if install is None:
            return []
        commands: list[dict[str, Any]] = [
            {"command": install, "description": "Install dependencies", "timeout": 600}
        ]
        if info["type"] == "rails":
            commands += [
                {
                    "command": ["bin/rails", "db:create"],
                    "condition": "db_not_exists",
                    "description": "Create database",
                },
                {"command": ["bin/rails", "db:migrate"], "description": "Run database migrations"},
            ]
        elif manager in ("npm", "yarn", "pnpm"):
            commands.append(
                {
                    "command": [manager, "run", "build"],
                    "condition": "file_exists:package.json",
                    "ignore_failure": True,
                    "description": "Build project",
                }
            )
        return commands

    @staticmethod
    def _suggest_templates(info: dict[str, Any]) -> list[dict[str, Any]]:
        templates = [
            {
                "source": ".sxn/templates/session-info.md.j2",
                "destination": "SESSION_INFO.md",
                "required": False,
            }
        ]
        if info["type"] == "rails":
            templates.append(
                {
                    "source": ".sxn/templates/rails/CLAUDE.md.j2",
                    "destination": "CLAUDE.md",
                    "required": False,
                }
            )
        return templates

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _has(self, relative: str) -> bool:
        return (self.project_path / relative).exists()

    def _package_json_dependencies(self) -> set[str]:
        try:
            data = json.loads((self.project_path / "package.json").read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            log.debug("detector.package_json_unreadable", error=str(exc))
            return set()
        if not isinstance(data, dict):
            return set()
        deps: set[str] = set()
        for key in ("dependencies", "devDependencies"):
            section = data.get(key)
            if isinstance(section, dict):
                deps.update(section)
        return deps
