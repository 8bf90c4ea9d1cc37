"""
Filesystem backend — symlink primitives for managed dotfiles.

Only symlinks are ever replaced or removed. A regular file or a
directory sitting where a link should go is reported as a conflict
and left untouched. An existing link is replaced by renaming a fresh
link over it, so the path never goes missing.
"""

from __future__ import annotations

import contextlib
import logging
import os
import uuid
from pathlib import Path

from archman.adapters.base import FileBackend
from archman.core.errors import BackendError, LinkConflictError, ObservationError

logger = logging.getLogger(__name__)


class SymlinkBackend(FileBackend):
    """Symlink operations on the local filesystem."""

    @property
    def name(self) -> str:
        return "filesystem"

    def resolve_link(self, path: str) -> str | None:
        target = Path(path)
        try:
            if not target.is_symlink():
                return None
            return os.readlink(target)
        except OSError as e:
            raise ObservationError(f"Cannot inspect {path}: {e}") from e

    def exists(self, path: str) -> bool:
        return os.path.lexists(path)

    def create_link(self, path: str, source: str) -> None:
        target = Path(path)
        if os.path.lexists(target) and not target.is_symlink():
            raise LinkConflictError(path)
        tmp = target.with_name(f".{target.name}.archman-{uuid.uuid4().hex[:8]}")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            tmp.symlink_to(source)
            os.replace(tmp, target)
        except OSError as e:
            with contextlib.suppress(OSError):
                tmp.unlink()
            raise BackendError(f"Failed to create link {path} -> {source}: {e}") from e
        logger.info("Created link %s -> %s", path, source)

    def remove_link(self, path: str) -> None:
        target = Path(path)
        if not target.is_symlink():
            raise BackendError(f"{path} is not a symlink, refusing to remove it")
        try:
            target.unlink()
        except OSError as e:
            raise BackendError(f"Failed to remove {path}: {e}") from e
        logger.info("Removed link %s", path)
