"""Path validation against a base directory.

Candidates are resolved to their real path (symlinks included) before the
containment check, so both ``../`` sequences and symlinks that point out of
the base directory are rejected. Validation never mutates the filesystem.
"""

from __future__ import annotations

import os
from pathlib import Path

from sxn.errors import PathValidationError


class PathValidator:
    """Resolve candidate paths and keep them inside a base directory."""

    def validate(
        self,
        candidate: str | os.PathLike[str],
        base_dir: str | os.PathLike[str],
        *,
        allow_absolute: bool = False,
        follow_final: bool = True,
    ) -> Path:
        """Return the canonical absolute path of *candidate* under *base_dir*.

        Args:
            candidate: Path relative to *base_dir* (or absolute, if allowed).
            base_dir: Existing directory the result must stay within.
            allow_absolute: Accept absolute candidates (still contained).
            follow_final: Resolve the last component too. Pass False for
                destinations that will be replaced, so an existing symlink
                at the destination is judged by its own location rather
                than by its target.

        Raises:
            PathValidationError: If the path is empty, contains NUL bytes,
                is absolute without permission, or escapes *base_dir*.
        """
        text = os.fspath(candidate)
        if not text:
            msg = "Path cannot be empty"
            raise PathValidationError(msg)
        if "\x00" in text:
            msg = f"Path contains null bytes: {text!r}"
            raise PathValidationError(msg)

        base = self._resolve_base(base_dir)
        path = Path(text)
        if path.is_absolute() and not allow_absolute:
            msg = f"Absolute paths are not permitted: {text}"
            raise PathValidationError(msg)

        joined = path if path.is_absolute() else base / path
        if follow_final:
            resolved = joined.resolve()
        else:
            if joined.name in ("", ".", ".."):
                msg = f"Path does not name a file: {text}"
                raise PathValidationError(msg)
            resolved = joined.parent.resolve() / joined.name

        if resolved != base and not resolved.is_relative_to(base):
            msg = f"Path escapes base directory {base}: {text}"
            raise PathValidationError(msg)
        return resolved

    def is_within(
        self, candidate: str | os.PathLike[str], base_dir: str | os.PathLike[str]
    ) -> bool:
        """Predicate form of :meth:`validate`."""
        try:
            self.validate(candidate, base_dir, allow_absolute=True)
        except PathValidationError:
            return False
        return True

    @staticmethod
    def _resolve_base(base_dir: str | os.PathLike[str]) -> Path:
        base = Path(base_dir)
        try:
            resolved = base.resolve(strict=True)
        except (FileNotFoundError, RuntimeError) as exc:
            msg = f"Base directory does not exist: {base}"
            raise PathValidationError(msg) from exc
        if not resolved.is_dir():
            msg = f"Base directory is not a directory: {base}"
            raise PathValidationError(msg)
        return resolved
