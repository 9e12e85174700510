"""Exception hierarchy for sxn.

Only :class:`ValidationError` (raised before any rule executes) escapes the
rules engine. Everything raised while a rule runs is captured into that
rule's :class:`~sxn.domain.results.RuleResult`.
"""

from __future__ import annotations

from collections.abc import Iterable


class SxnError(Exception):
    """Base class for all sxn errors.

    Attributes:
        exit_code: Process exit code used when the error reaches the CLI.
    """

    def __init__(self, message: str = "", *, exit_code: int = 1) -> None:
        super().__init__(message)
        self.exit_code = exit_code


class ValidationError(SxnError):
    """Rules configuration is invalid.

    Carries every detected violation in :attr:`errors`; the message joins
    them so a single ``match=`` in tests or a grep in logs finds any one.
    """

    def __init__(self, errors: str | Iterable[str]) -> None:
        self.errors: list[str] = [errors] if isinstance(errors, str) else list(errors)
        super().__init__("; ".join(self.errors))


class SecurityError(SxnError):
    """A security control refused an operation."""


class PathValidationError(SecurityError):
    """A path escapes its base directory or is otherwise unsafe."""


class CommandNotAllowedError(SecurityError):
    """A command failed the whitelist check."""


class CommandExecutionError(SecurityError):
    """A whitelisted command could not be started safely."""


class RuleExecutionError(SxnError):
    """A rule failed while applying. Recoverable at the engine level."""


class RollbackError(SxnError):
    """An artifact could not be reverted."""


class TemplateError(SxnError):
    """Base class for template collaborator errors."""


class TemplateSyntaxError(TemplateError):
    """Template source could not be parsed."""


class TemplateProcessingError(TemplateError):
    """Template failed to render."""
