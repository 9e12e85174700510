"""Security gate: every mutating rule operation passes through here.

Path validation, command whitelisting, safe file copy, and safe subprocess
execution. This layer depends on stdlib, cryptography, and structlog; it
must never import from rules, engine, services, or commands.
"""

from sxn.security.copier import SecureFileCopier
from sxn.security.executor import CommandResult, SecureCommandExecutor
from sxn.security.gate import SecurityGate
from sxn.security.paths import PathValidator
from sxn.security.whitelist import CommandWhitelist

__all__ = [
    "CommandResult",
    "CommandWhitelist",
    "PathValidator",
    "SecureCommandExecutor",
    "SecureFileCopier",
    "SecurityGate",
]
