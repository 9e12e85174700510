"""Template collaborator: sandboxed Jinja2 rendering and system variables."""

from sxn.templates.processor import TemplateProcessor
from sxn.templates.variables import TemplateVariables

__all__ = ["TemplateProcessor", "TemplateVariables"]
