"""``copy_files`` rule: copy or symlink project files into the session."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import structlog

from sxn.domain.results import Artifact
from sxn.domain.specs import CopyFileSpec, parse_permissions
from sxn.domain.types import RuleType, Strategy
from sxn.errors import RuleExecutionError
from sxn.rules.base import Rule

log = structlog.get_logger(__name__)

_STRATEGIES = ", ".join(s.value for s in Strategy)


class CopyFilesRule(Rule):
    """Copy (optionally encrypted) or symlink files from project to session.

    Permissions are applied exactly as configured. Encryption only happens
    for entries with ``encrypt: true``.
    """

    rule_type = RuleType.COPY_FILES
    entries_key = "files"
    entry_label = "File config"
    description = "Copy or symlink files from the project into the session"
    example = {
        "files": [
            {"source": "config/master.key", "strategy": "copy", "permissions": "0600"},
            {"source": ".env", "strategy": "symlink", "required": False},
        ]
    }

    def _entry_problems(self, index: int, entry: Mapping[str, Any]) -> list[str]:
        found: list[str] = []
        label = f"{self.entry_label} {index}"
        project = self.context.project_path

        source = entry.get("source")
        source_problem = self._path_problem(index, "source", source, project)
        if source_problem:
            found.append(source_problem)

        destination = entry.get("destination")
        if destination is not None:
            problem = self._path_problem(
                index, "destination", destination, self.context.session_path, follow_final=False
            )
            if problem:
                found.append(problem)

        strategy = entry.get("strategy", Strategy.COPY.value)
        if strategy not in {s.value for s in Strategy}:
            found.append(
                f"Invalid strategy '{strategy}' for file config {index}. "
                f"Valid strategies: {_STRATEGIES}"
            )

        permissions = entry.get("permissions")
        if permissions is not None:
            try:
                parse_permissions(permissions)
            except ValueError:
                found.append(f"{label} has invalid permissions '{permissions}'")

        for flag in ("encrypt", "required"):
            if flag in entry and not isinstance(entry[flag], bool):
                found.append(f"{label} '{flag}' must be true or false")

        if strategy == Strategy.SYMLINK.value:
            if entry.get("encrypt") is True:
                found.append(f"{label}: encrypt cannot be combined with the symlink strategy")
            if permissions is not None:
                found.append(f"{label}: permissions cannot be combined with the symlink strategy")

        required = entry.get("required", True)
        if not source_problem and required is not False and not (project / source).exists():
            found.append(f"Required source file does not exist: {source}")
        return found

    def _apply(self, config: Mapping[str, Any], artifacts: list[Artifact]) -> None:
        copier = self.gate.copier
        for entry in config["files"]:
            spec = CopyFileSpec.model_validate(entry)
            if not (self.context.project_path / spec.source).exists():
                if spec.required:
                    msg = f"Required source file does not exist: {spec.source}"
                    raise RuleExecutionError(msg)
                log.info("copy_files.optional_missing", source=spec.source)
                continue

            if spec.strategy is Strategy.SYMLINK:
                artifacts.append(copier.symlink(spec.source, spec.target))
            else:
                artifacts.append(
                    copier.copy(
                        spec.source,
                        spec.target,
                        permissions=spec.permissions,
                        encrypt=spec.encrypt,
                    )
                )
