"""``template`` rule: render project templates into the session."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import structlog

from sxn.domain.results import Artifact
from sxn.domain.specs import TemplateSpec
from sxn.domain.types import RuleType
from sxn.errors import RuleExecutionError, TemplateError
from sxn.rules.base import Rule
from sxn.templates.variables import deep_merge

log = structlog.get_logger(__name__)


class TemplateRule(Rule):
    """Render templates with the system variables plus per-entry ones.

    An existing destination is left alone unless ``overwrite: true``; an
    overwritten file is backed up first and restored on rollback.
    """

    rule_type = RuleType.TEMPLATE
    entries_key = "templates"
    entry_label = "Template config"
    description = "Render Jinja2 templates from the project into the session"
    example = {
        "templates": [
            {
                "source": ".sxn/templates/session-info.md.j2",
                "destination": "SESSION.md",
                "variables": {"ticket": "ATL-1234"},
            }
        ]
    }

    def _entry_problems(self, index: int, entry: Mapping[str, Any]) -> list[str]:
        found: list[str] = []
        label = f"{self.entry_label} {index}"

        source = entry.get("source")
        source_problem = self._path_problem(index, "source", source, self.context.project_path)
        if source_problem:
            found.append(source_problem)
        destination_problem = self._path_problem(
            index,
            "destination",
            entry.get("destination"),
            self.context.session_path,
            follow_final=False,
        )
        if destination_problem:
            found.append(destination_problem)

        if "variables" in entry and not isinstance(entry["variables"], Mapping):
            found.append(f"{label} 'variables' must be a mapping")
        for flag in ("process", "required", "overwrite"):
            if flag in entry and not isinstance(entry[flag], bool):
                found.append(f"{label} '{flag}' must be true or false")

        required = entry.get("required", True)
        if (
            not source_problem
            and required is not False
            and not (self.context.project_path / source).is_file()
        ):
            found.append(f"Required template file does not exist: {source}")
        return found

    def _apply(self, config: Mapping[str, Any], artifacts: list[Artifact]) -> None:
        validator = self.gate.validator
        for entry in config["templates"]:
            spec = TemplateSpec.model_validate(entry)
            src = validator.validate(spec.source, self.context.project_path)
            if not src.is_file():
                if spec.required:
                    msg = f"Required template file does not exist: {spec.source}"
                    raise RuleExecutionError(msg)
                log.info("template.optional_missing", source=spec.source)
                continue

            dst = validator.validate(
                spec.destination, self.context.session_path, follow_final=False
            )
            exists = dst.exists() or dst.is_symlink()
            if exists and not spec.overwrite:
                log.info("template.exists_skipped", destination=str(dst))
                continue

            content = self._render(spec, src.read_bytes())
            artifacts.append(
                self.gate.copier.write(
                    spec.destination,
                    content,
                    source_label=str(src),
                    backup=exists,
                )
            )

    def _render(self, spec: TemplateSpec, raw: bytes) -> bytes | str:
        if not spec.process:
            return raw
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            msg = f"Template is not valid UTF-8: {spec.source}"
            raise RuleExecutionError(msg) from exc

        processor = self.context.templates
        variables = deep_merge(self.context.variables.build(), dict(spec.variables))
        try:
            processor.validate_syntax(text)
            return processor.process(text, variables)
        except TemplateError as exc:
            msg = f"Template error in {spec.source}: {exc}"
            raise RuleExecutionError(msg) from exc
