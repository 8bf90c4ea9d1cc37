"""
Audit ledger — append-only reconciliation log.

Every non-dry-run reconciliation writes one entry to an NDJSON
(newline-delimited JSON) file. This is the host's change history,
useful for finding out what archman did and when.

The ledger is append-only: entries are never modified or deleted.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_AUDIT_FILE = "audit.ndjson"


def default_state_dir() -> Path:
    """Directory for archman's state: $ARCHMAN_STATE_DIR or XDG state home."""
    override = os.environ.get("ARCHMAN_STATE_DIR")
    if override:
        return Path(override).expanduser()
    xdg = os.environ.get("XDG_STATE_HOME")
    base = Path(xdg) if xdg else Path.home() / ".local" / "state"
    return base / "archman"


class AuditEntry(BaseModel):
    """A single audit log entry."""

    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    operation_id: str = ""
    operation_type: str = ""       # sync

    # What happened
    host: str = ""
    mode: str = ""                 # fail_fast, best_effort

    # Results
    status: str = ""               # complete, completed_with_failures, aborted
    actions_total: int = 0
    actions_applied: int = 0
    actions_failed: int = 0
    actions_skipped: int = 0
    duration_ms: int = 0

    # Failures (if any)
    resources_failed: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)

    context: dict[str, Any] = Field(default_factory=dict)


class AuditWriter:
    """Append-only audit ledger writer.

    Each call to write() appends a single JSON line to the ledger file.
    The file is created if it doesn't exist.
    """

    def __init__(self, path: Path | None = None, state_dir: Path | None = None):
        if path is not None:
            self._path = path
        else:
            self._path = (state_dir or default_state_dir()) / DEFAULT_AUDIT_FILE

    @property
    def path(self) -> Path:
        return self._path

    def write(self, entry: AuditEntry) -> None:
        """Append an audit entry to the ledger.

        A ledger that cannot be written is logged, not raised: the
        host has already been changed by then.
        """
        data = entry.model_dump(mode="json")
        line = json.dumps(data, ensure_ascii=False) + "\n"

        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line)
            logger.debug("Audit entry written: %s/%s", entry.operation_type, entry.operation_id)
        except OSError as e:
            logger.error("Failed to write audit entry: %s", e)

    def read_all(self) -> list[AuditEntry]:
        """Read all entries from the ledger, oldest first."""
        if not self._path.is_file():
            return []

        entries = []
        try:
            with self._path.open("r", encoding="utf-8") as f:
                for line_num, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        entries.append(AuditEntry.model_validate(json.loads(line)))
                    except (json.JSONDecodeError, ValidationError) as e:
                        logger.warning("Skipping corrupt audit entry at line %d: %s", line_num, e)
        except OSError as e:
            logger.error("Failed to read audit ledger: %s", e)

        return entries

    def read_recent(self, n: int = 20) -> list[AuditEntry]:
        """Read the most recent N entries."""
        all_entries = self.read_all()
        return all_entries[-n:] if n > 0 else []

    def entry_count(self) -> int:
        """Count entries without loading them all into memory."""
        if not self._path.is_file():
            return 0
        try:
            with self._path.open("r", encoding="utf-8") as f:
                return sum(1 for line in f if line.strip())
        except OSError:
            return 0
