"""Run configuration — how a reconciliation run applies its plan."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class ExecutionMode(str, Enum):
    """What the executor does after a failed action."""

    FAIL_FAST = "fail_fast"         # stop, skip the rest
    BEST_EFFORT = "best_effort"     # keep going


class RunConfig(BaseModel):
    """Caller options for one reconciliation run."""

    mode: ExecutionMode = ExecutionMode.FAIL_FAST
    dry_run: bool = False
