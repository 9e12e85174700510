"""Rule variants and the registry that maps ``type`` values to them."""

from sxn.rules.base import Rule, RuleContext
from sxn.rules.copy_files import CopyFilesRule
from sxn.rules.registry import RULE_TYPES, create_rule
from sxn.rules.setup_commands import SetupCommandsRule
from sxn.rules.template import TemplateRule

__all__ = [
    "RULE_TYPES",
    "CopyFilesRule",
    "Rule",
    "RuleContext",
    "SetupCommandsRule",
    "TemplateRule",
    "create_rule",
]
