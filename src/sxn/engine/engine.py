"""RulesEngine facade: validate, apply and roll back a rules config."""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from sxn.config.models import SxnConfig
from sxn.domain.results import ApplyResult, RuleResult
from sxn.domain.specs import RuleSpec
from sxn.domain.types import RuleType
from sxn.engine.executor import RuleExecutor
from sxn.engine.graph import RuleGraph, format_cycle
from sxn.engine.rollback import RollbackManager
from sxn.errors import ValidationError
from sxn.rules.base import Rule, RuleContext
from sxn.rules.detector import ProjectDetector
from sxn.rules.registry import RULE_TYPES, rule_class
from sxn.security.gate import SecurityGate
from sxn.templates.processor import TemplateProcessor
from sxn.templates.variables import TemplateVariables

if TYPE_CHECKING:
    from sxn.config.settings import SxnSettings
    from sxn.security.whitelist import CommandWhitelist

log = structlog.get_logger(__name__)


class RulesEngine:
    """Apply rules configs to one session of one project.

    Args:
        project_path: Existing project directory; file sources live here.
        session_path: Existing, writable session directory; every write
            and command stays inside it.
        settings: ``SxnSettings`` or ``SxnConfig``; code defaults when None.
        template_processor: Replaces the default sandboxed processor.
        whitelist: Replaces the whitelist built from settings.

    Raises:
        ValueError: If either path is not a directory or the session is
            not writable.
    """

    def __init__(
        self,
        project_path: str | os.PathLike[str],
        session_path: str | os.PathLike[str],
        *,
        settings: SxnSettings | SxnConfig | None = None,
        template_processor: TemplateProcessor | None = None,
        whitelist: CommandWhitelist | None = None,
    ) -> None:
        project = Path(project_path)
        session = Path(session_path)
        if not project.is_dir():
            msg = f"Project path is not a directory: {project}"
            raise ValueError(msg)
        if not session.is_dir():
            msg = f"Session path is not a directory: {session}"
            raise ValueError(msg)
        if not os.access(session, os.W_OK):
            msg = f"Session path is not writable: {session}"
            raise ValueError(msg)

        self.project_path = project.resolve()
        self.session_path = session.resolve()
        self.settings = settings if settings is not None else SxnConfig()

        gate = SecurityGate.build(
            self.project_path,
            self.session_path,
            settings=self.settings.security,
            whitelist=whitelist,
        )
        processor = template_processor or TemplateProcessor(
            max_size=self.settings.templates.max_size
        )
        variables = TemplateVariables(
            self.project_path,
            self.session_path,
            project_type=ProjectDetector(self.project_path).detect_type(),
        )
        self.context = RuleContext(
            project_path=self.project_path,
            session_path=self.session_path,
            gate=gate,
            templates=processor,
            variables=variables,
        )
        self._rules: dict[RuleType, Rule] = {
            rule_type: cls(self.context) for rule_type, cls in RULE_TYPES.items()
        }
        self._rollback = RollbackManager(self._rule_for_result)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def validate_rules_config(self, config: Any) -> list[RuleSpec]:
        """Check *config* without touching the filesystem.

        Returns:
            The parsed rule specs, in config order.

        Raises:
            ValidationError: With every problem found, rule by rule, then
                unknown dependencies, then a dependency cycle.
        """
        if not isinstance(config, Mapping):
            raise ValidationError("Rules config must be a mapping of rule names to rule definitions")

        errors: list[str] = []
        specs: list[RuleSpec] = []
        names = set(config)
        for position, (name, definition) in enumerate(config.items()):
            spec = self._parse_rule(name, definition, position, errors)
            if spec is not None:
                specs.append(spec)

        for spec in specs:
            for dep in spec.dependencies:
                if dep not in names:
                    errors.append(f"Unknown dependency: {dep} (required by '{spec.name}')")

        cycle = RuleGraph(specs).find_cycle()
        if cycle is not None:
            errors.append(format_cycle(cycle))

        if errors:
            log.info("rules.invalid", errors=errors)
            raise ValidationError(errors)
        return specs

    def apply_rules(
        self,
        config: Any,
        *,
        parallel: bool | None = None,
        max_parallelism: int | None = None,
        continue_on_failure: bool | None = None,
    ) -> ApplyResult:
        """Validate and apply *config*.

        Options left as None fall back to the ``[rules]`` settings.

        Raises:
            ValidationError: If *config* is invalid; nothing has run.
        """
        graph = RuleGraph(self.validate_rules_config(config))
        defaults = self.settings.rules
        executor = RuleExecutor(
            graph,
            self._rule_for_spec,
            self._rollback,
            parallel=defaults.parallel if parallel is None else parallel,
            max_parallelism=(
                defaults.max_parallelism if max_parallelism is None else max_parallelism
            ),
            continue_on_failure=(
                defaults.continue_on_failure if continue_on_failure is None else continue_on_failure
            ),
        )
        log.info("apply.start", session=str(self.session_path), rules=len(graph))
        result = executor.run()
        log.info(
            "apply.finished",
            success=result.success,
            applied=len(result.applied_rules),
            failed=len(result.failed_rules),
            skipped=len(result.skipped_rules),
        )
        return result

    def rollback_rules(self) -> bool:
        """Revert everything applied since the last rollback.

        Returns:
            False if any artifact could not be reverted.
        """
        return self._rollback.rollback()

    def available_rule_types(self) -> list[str]:
        return [rule_type.value for rule_type in RULE_TYPES]

    def rule(self, rule_type: RuleType | str) -> Rule:
        return self._rules[RuleType(rule_type)]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _parse_rule(
        self, name: Any, definition: Any, position: int, errors: list[str]
    ) -> RuleSpec | None:
        """Append the problems of one rule to *errors*; return its spec if usable."""
        if not isinstance(name, str) or not name:
            errors.append(f"Rule names must be non-empty strings, got {name!r}")
            return None
        if not isinstance(definition, Mapping):
            errors.append(f"Rule '{name}': definition must be a mapping")
            return None

        found: list[str] = []
        type_name = definition.get("type")
        cls = rule_class(type_name)
        if type_name is None:
            found.append("missing 'type'")
        elif cls is None:
            known = ", ".join(self.available_rule_types())
            found.append(f"unknown rule type '{type_name}' (known: {known})")

        rule_config = definition.get("config", {})
        if not isinstance(rule_config, Mapping):
            found.append("config must be a mapping")
        elif cls is not None:
            found.extend(self._rules[cls.rule_type].problems(rule_config))

        dependencies = definition.get("dependencies", [])
        if not isinstance(dependencies, list) or not all(isinstance(d, str) for d in dependencies):
            found.append("dependencies must be a list of rule names")
            dependencies = None

        continue_on_failure = definition.get("continue_on_failure", False)
        if not isinstance(continue_on_failure, bool):
            found.append("continue_on_failure must be true or false")

        errors.extend(f"Rule '{name}': {problem}" for problem in found)
        if cls is None or dependencies is None or not isinstance(rule_config, Mapping):
            return None
        return RuleSpec(
            name=name,
            type=cls.rule_type,
            config=dict(rule_config),
            dependencies=tuple(dependencies),
            continue_on_failure=continue_on_failure is True,
            position=position,
        )

    def _rule_for_spec(self, spec: RuleSpec) -> Rule:
        return self._rules[spec.type]

    def _rule_for_result(self, result: RuleResult) -> Rule:
        return self._rules[result.rule_type]
