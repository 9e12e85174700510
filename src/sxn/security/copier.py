"""Secure file copier: copy, symlink and write into a session.

Both paths are validated before any filesystem mutation. Content is written
to a ``0600`` temp file beside the destination, encrypted first when asked,
chmod'ed to the requested mode only after the write completes, and then
atomically moved into place.

Encryption is AES-256-GCM. The payload format is
``b64(nonce):b64(tag):b64(ciphertext)``.
"""

from __future__ import annotations

import base64
import hashlib
import os
import stat
import tempfile
import threading
import time
from pathlib import Path

import structlog
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from sxn.domain.results import Artifact
from sxn.domain.types import Operation
from sxn.errors import SecurityError
from sxn.security.paths import PathValidator

log = structlog.get_logger(__name__)

MAX_FILE_SIZE = 100 * 1024 * 1024
DEFAULT_WRITE_PERMISSIONS = 0o644
_NONCE_SIZE = 12
_TAG_SIZE = 16
_CHUNK_SIZE = 64 * 1024


# ---------------------------------------------------------------------------
# Encryption and checksums
# ---------------------------------------------------------------------------


def encrypt_content(data: bytes, key: bytes) -> bytes:
    """Encrypt *data* with AES-256-GCM under *key*."""
    nonce = os.urandom(_NONCE_SIZE)
    sealed = AESGCM(key).encrypt(nonce, data, None)
    ciphertext, tag = sealed[:-_TAG_SIZE], sealed[-_TAG_SIZE:]
    return b":".join(base64.b64encode(part) for part in (nonce, tag, ciphertext))


def decrypt_content(payload: bytes, key: bytes) -> bytes:
    """Reverse :func:`encrypt_content`.

    Raises:
        SecurityError: On a malformed payload or a failed authentication.
    """
    parts = payload.split(b":")
    if len(parts) != 3:
        msg = "Invalid encrypted content format"
        raise SecurityError(msg)
    try:
        nonce, tag, ciphertext = (base64.b64decode(part, validate=True) for part in parts)
        return AESGCM(key).decrypt(nonce, ciphertext + tag, None)
    except (InvalidTag, ValueError) as exc:
        msg = "Decryption failed: payload could not be authenticated"
        raise SecurityError(msg) from exc


def decode_key(encoded: str) -> bytes:
    """Decode a base64 encryption key from settings.

    Raises:
        SecurityError: If the key is not valid base64 or not 256 bits.
    """
    try:
        key = base64.b64decode(encoded, validate=True)
    except ValueError as exc:
        msg = "Encryption key is not valid base64"
        raise SecurityError(msg) from exc
    if len(key) != 32:
        msg = f"Encryption key must be 32 bytes, got {len(key)}"
        raise SecurityError(msg)
    return key


def checksum_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def file_checksum(path: Path) -> str:
    """sha256 hex digest of a file, read in chunks."""
    digest = hashlib.sha256()
    with path.open("rb") as fh:
        while chunk := fh.read(_CHUNK_SIZE):
            digest.update(chunk)
    return digest.hexdigest()


# ---------------------------------------------------------------------------
# SecureFileCopier
# ---------------------------------------------------------------------------


class SecureFileCopier:
    """Copy project files into a session under the security controls.

    Args:
        project_root: Directory sources must stay within.
        session_root: Directory destinations must stay within.
        validator: Path validator (shared with the rest of the gate).
        encryption_key: 32-byte AES key. Generated on first use when absent;
            an ephemeral key is logged as a warning since encrypted copies
            cannot be decrypted once the process exits.
        max_file_size: Largest source accepted, in bytes.
    """

    def __init__(
        self,
        project_root: Path,
        session_root: Path,
        *,
        validator: PathValidator | None = None,
        encryption_key: bytes | None = None,
        max_file_size: int = MAX_FILE_SIZE,
    ) -> None:
        self._project_root = Path(project_root).resolve()
        self._session_root = Path(session_root).resolve()
        self._validator = validator or PathValidator()
        self._key = encryption_key
        self._key_lock = threading.Lock()
        self._max_file_size = max_file_size

    @property
    def encryption_key(self) -> bytes:
        with self._key_lock:
            if self._key is None:
                self._key = AESGCM.generate_key(bit_length=256)
                log.warning("copier.ephemeral_key", session=str(self._session_root))
            return self._key

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def copy(
        self,
        source: str,
        destination: str | None = None,
        *,
        permissions: int | None = None,
        encrypt: bool = False,
    ) -> Artifact:
        """Copy *source* (project-relative) to *destination* (session-relative).

        Permissions default to the source's mode bits when not given; they
        are applied exactly as requested, independent of *encrypt*. An
        existing destination is kept as a backup for rollback.
        """
        start = time.perf_counter()
        src = self._validator.validate(source, self._project_root)
        dst = self._validator.validate(
            destination or source, self._session_root, follow_final=False
        )
        self._check_source(src)
        self._check_destination(dst)

        data = src.read_bytes()
        if encrypt:
            data = encrypt_content(data, self.encryption_key)
        mode = permissions if permissions is not None else stat.S_IMODE(src.stat().st_mode)

        detail: dict[str, object] = {}
        backup_path = self._backup(dst)
        if backup_path is not None:
            detail["backup_path"] = backup_path
        detail["created_dirs"] = self._ensure_parent(dst)
        self._atomic_write(dst, data, mode)
        detail["permissions"] = f"{mode:04o}"

        artifact = Artifact(
            operation=Operation.COPY,
            source_path=str(src),
            destination_path=str(dst),
            checksum=checksum_bytes(data),
            encrypted=encrypt,
            duration=time.perf_counter() - start,
            detail=detail,
        )
        log.info(
            "file.copy",
            source=str(src),
            destination=str(dst),
            encrypted=encrypt,
            permissions=f"{mode:04o}",
        )
        return artifact

    def symlink(self, source: str, destination: str | None = None) -> Artifact:
        """Link *destination* in the session to *source* in the project.

        An existing file or symlink at the destination is backed up and
        replaced.
        """
        start = time.perf_counter()
        src = self._validator.validate(source, self._project_root)
        dst = self._validator.validate(
            destination or source, self._session_root, follow_final=False
        )
        self._check_source(src)
        self._check_destination(dst)

        detail: dict[str, object] = {"created_dirs": self._ensure_parent(dst)}
        backup_path = self._backup(dst)
        if backup_path is not None:
            detail["backup_path"] = backup_path
            dst.unlink()
        detail["replaced"] = backup_path is not None
        os.symlink(src, dst)

        artifact = Artifact(
            operation=Operation.SYMLINK,
            source_path=str(src),
            destination_path=str(dst),
            checksum=file_checksum(src),
            duration=time.perf_counter() - start,
            detail=detail,
        )
        log.info("file.symlink", source=str(src), destination=str(dst), backup=backup_path)
        return artifact

    def write(
        self,
        destination: str,
        content: bytes | str,
        *,
        permissions: int = DEFAULT_WRITE_PERMISSIONS,
        source_label: str = "",
        operation: Operation = Operation.TEMPLATE,
        backup: bool = False,
    ) -> Artifact:
        """Write generated *content* to *destination* (session-relative).

        Args:
            backup: Keep a copy of an existing destination beside it; the
                backup path is recorded so rollback can restore it.
        """
        start = time.perf_counter()
        dst = self._validator.validate(destination, self._session_root, follow_final=False)
        self._check_destination(dst)
        data = content.encode("utf-8") if isinstance(content, str) else content
        if len(data) > self._max_file_size:
            msg = f"Content too large to write: {len(data)} bytes"
            raise SecurityError(msg)

        detail: dict[str, object] = {}
        backup_path = self._backup(dst) if backup else None
        if backup_path is not None:
            detail["backup_path"] = backup_path

        detail["created_dirs"] = self._ensure_parent(dst)
        self._atomic_write(dst, data, permissions)
        detail["permissions"] = f"{permissions:04o}"

        log.info("file.write", destination=str(dst), source=source_label, size=len(data))
        return Artifact(
            operation=operation,
            source_path=source_label,
            destination_path=str(dst),
            checksum=checksum_bytes(data),
            duration=time.perf_counter() - start,
            detail=detail,
        )

    def decrypt_file(self, destination: str) -> bytes:
        """Return the decrypted content of an encrypted copy in the session."""
        dst = self._validator.validate(destination, self._session_root)
        return decrypt_content(dst.read_bytes(), self.encryption_key)

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def _check_source(self, src: Path) -> None:
        if not src.exists():
            msg = f"Source file does not exist: {src}"
            raise SecurityError(msg)
        if not src.is_file():
            msg = f"Source is not a regular file: {src}"
            raise SecurityError(msg)
        if not os.access(src, os.R_OK):
            msg = f"Source file is not readable: {src}"
            raise SecurityError(msg)
        size = src.stat().st_size
        if size > self._max_file_size:
            msg = f"File too large for secure copying: {size} bytes"
            raise SecurityError(msg)

    @staticmethod
    def _check_destination(dst: Path) -> None:
        if dst.is_symlink():
            return
        if dst.is_dir():
            msg = f"Destination is a directory: {dst}"
            raise SecurityError(msg)
        if dst.exists() and dst.stat().st_uid != os.getuid():
            msg = f"Cannot overwrite file owned by a different user: {dst}"
            raise SecurityError(msg)

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def _ensure_parent(self, dst: Path) -> list[str]:
        """Create missing parent directories; return them deepest first."""
        missing: list[Path] = []
        current = dst.parent
        while current != self._session_root and not current.exists():
            missing.append(current)
            current = current.parent
        if missing:
            dst.parent.mkdir(parents=True, mode=0o755, exist_ok=True)
        return [str(p) for p in missing]

    def _backup(self, dst: Path) -> str | None:
        """Keep a copy of an existing *dst* beside it; return its path."""
        if not (dst.is_symlink() or dst.is_file()):
            return None
        backup_path = dst.with_name(f"{dst.name}.backup.{time.time_ns()}")
        if dst.is_symlink():
            os.symlink(os.readlink(dst), backup_path)
        else:
            self._atomic_write(backup_path, dst.read_bytes(), stat.S_IMODE(dst.stat().st_mode))
        return str(backup_path)

    @staticmethod
    def _atomic_write(dst: Path, data: bytes, mode: int) -> None:
        fd, tmp_name = tempfile.mkstemp(dir=dst.parent, prefix=f".{dst.name}.", suffix=".tmp")
        tmp = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
            os.chmod(tmp, mode)
            os.replace(tmp, dst)
        except OSError as exc:
            tmp.unlink(missing_ok=True)
            msg = f"File write failed for {dst}: {exc}"
            raise SecurityError(msg) from exc
