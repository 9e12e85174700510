"""Registry of built-in rule variants, keyed by :class:`RuleType`."""

from __future__ import annotations

from sxn.domain.types import RuleType
from sxn.rules.base import Rule, RuleContext
from sxn.rules.copy_files import CopyFilesRule
from sxn.rules.setup_commands import SetupCommandsRule
from sxn.rules.template import TemplateRule

RULE_TYPES: dict[RuleType, type[Rule]] = {
    RuleType.COPY_FILES: CopyFilesRule,
    RuleType.SETUP_COMMANDS: SetupCommandsRule,
    RuleType.TEMPLATE: TemplateRule,
}


def rule_class(type_name: str) -> type[Rule] | None:
    """Return the class for a ``type`` value, or None if it is unknown."""
    if not isinstance(type_name, str):
        return None
    try:
        return RULE_TYPES[RuleType(type_name)]
    except ValueError:
        return None


def create_rule(rule_type: RuleType | str, context: RuleContext) -> Rule:
    """Instantiate the rule for *rule_type*.

    Raises:
        ValueError: If *rule_type* is not a known variant.
    """
    cls = rule_class(str(rule_type))
    if cls is None:
        msg = f"Unknown rule type: {rule_type}"
        raise ValueError(msg)
    return cls(context)
