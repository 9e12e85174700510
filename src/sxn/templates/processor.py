"""Sandboxed Jinja2 template processing.

Each :class:`TemplateProcessor` owns its environment; nothing is shared
between instances, so two engines can render with different limits at
the same time.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import jinja2
from jinja2 import StrictUndefined, meta
from jinja2.sandbox import SandboxedEnvironment

from sxn.errors import TemplateProcessingError, TemplateSyntaxError

DEFAULT_MAX_SIZE = 1024 * 1024


class TemplateProcessor:
    """Render template text with a mapping of variables.

    Undefined variables are errors, not empty strings. Attribute access
    to unsafe members (``__class__``, ``mro``...) is refused by the
    sandbox.

    Args:
        max_size: Largest template source accepted, in characters.
    """

    def __init__(self, *, max_size: int = DEFAULT_MAX_SIZE) -> None:
        self.max_size = max_size
        self._env = SandboxedEnvironment(
            undefined=StrictUndefined,
            keep_trailing_newline=True,
            autoescape=False,
        )

    def process(self, content: str, variables: Mapping[str, Any] | None = None) -> str:
        """Render *content*.

        Raises:
            TemplateSyntaxError: If *content* does not parse.
            TemplateProcessingError: If rendering fails (undefined variable,
                sandbox violation, oversized template).
        """
        self._check_size(content)
        template = self._compile(content)
        try:
            return template.render(dict(variables or {}))
        except jinja2.UndefinedError as exc:
            msg = f"Undefined template variable: {exc.message}"
            raise TemplateProcessingError(msg) from exc
        except jinja2.TemplateError as exc:
            msg = f"Template rendering failed: {exc}"
            raise TemplateProcessingError(msg) from exc

    def validate_syntax(self, content: str) -> bool:
        """Return True if *content* parses; raise TemplateSyntaxError otherwise."""
        self._check_size(content)
        self._parse(content)
        return True

    def extract_variables(self, content: str) -> set[str]:
        """Top-level variable names *content* references but does not define."""
        return set(meta.find_undeclared_variables(self._parse(content)))

    def _check_size(self, content: str) -> None:
        if len(content) > self.max_size:
            msg = f"Template too large: {len(content)} characters (limit {self.max_size})"
            raise TemplateProcessingError(msg)

    def _parse(self, content: str) -> Any:
        try:
            return self._env.parse(content)
        except jinja2.TemplateSyntaxError as exc:
            msg = f"Template syntax error on line {exc.lineno}: {exc.message}"
            raise TemplateSyntaxError(msg) from exc

    def _compile(self, content: str) -> jinja2.Template:
        try:
            return self._env.from_string(content)
        except jinja2.TemplateSyntaxError as exc:
            msg = f"Template syntax error on line {exc.lineno}: {exc.message}"
            raise TemplateSyntaxError(msg) from exc
