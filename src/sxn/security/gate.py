"""SecurityGate bundles the four controls for one project/session pair."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from sxn.security.copier import MAX_FILE_SIZE, SecureFileCopier, decode_key
from sxn.security.executor import SecureCommandExecutor
from sxn.security.paths import PathValidator
from sxn.security.whitelist import CommandWhitelist

if TYPE_CHECKING:
    from sxn.config.models import SecurityConfig


@dataclass(frozen=True)
class SecurityGate:
    """Every mutating rule operation goes through one of these controls."""

    validator: PathValidator
    whitelist: CommandWhitelist
    copier: SecureFileCopier
    executor: SecureCommandExecutor

    @classmethod
    def build(
        cls,
        project_path: Path,
        session_path: Path,
        *,
        settings: SecurityConfig | None = None,
        whitelist: CommandWhitelist | None = None,
    ) -> SecurityGate:
        """Wire the controls from ``[security]`` settings.

        An explicit *whitelist* replaces the one built from settings.
        """
        validator = PathValidator()
        if whitelist is None:
            extra = settings.extra_commands if settings is not None else None
            whitelist = CommandWhitelist(extra=extra)

        max_file_size = MAX_FILE_SIZE
        key: bytes | None = None
        if settings is not None:
            max_file_size = settings.max_file_size
            if settings.encryption_key:
                key = decode_key(settings.encryption_key)

        return cls(
            validator=validator,
            whitelist=whitelist,
            copier=SecureFileCopier(
                project_path,
                session_path,
                validator=validator,
                encryption_key=key,
                max_file_size=max_file_size,
            ),
            executor=SecureCommandExecutor(session_path, whitelist, validator=validator),
        )
