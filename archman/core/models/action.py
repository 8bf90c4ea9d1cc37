"""
Action and ExecutionResult models — the execution contract.

Actions represent requested changes to the host. Results represent
their outcome. This is the I/O contract between the engine and the
backend registry: the engine sends Actions, the registry returns
ExecutionResults. Never exceptions.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from archman.core.errors import ErrorKind
from archman.core.models.resource import ResourceId, ResourceKind


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class ActionType(str, Enum):
    """Every change the engine knows how to request."""

    INSTALL = "install"
    REMOVE = "remove"
    CREATE_LINK = "create_link"
    REMOVE_LINK = "remove_link"
    ENABLE_SERVICE = "enable_service"
    DISABLE_SERVICE = "disable_service"
    START_SERVICE = "start_service"
    STOP_SERVICE = "stop_service"


class Direction(str, Enum):
    """Whether an action builds something up or tears it down."""

    CREATE = "create"
    REMOVE = "remove"


_DIRECTIONS: dict[ActionType, Direction] = {
    ActionType.INSTALL: Direction.CREATE,
    ActionType.CREATE_LINK: Direction.CREATE,
    ActionType.ENABLE_SERVICE: Direction.CREATE,
    ActionType.START_SERVICE: Direction.CREATE,
    ActionType.REMOVE: Direction.REMOVE,
    ActionType.REMOVE_LINK: Direction.REMOVE,
    ActionType.DISABLE_SERVICE: Direction.REMOVE,
    ActionType.STOP_SERVICE: Direction.REMOVE,
}

# Which resource kind each action type may target.
_KINDS: dict[ActionType, ResourceKind] = {
    ActionType.INSTALL: ResourceKind.PACKAGE,
    ActionType.REMOVE: ResourceKind.PACKAGE,
    ActionType.CREATE_LINK: ResourceKind.LINKED_FILE,
    ActionType.REMOVE_LINK: ResourceKind.LINKED_FILE,
    ActionType.ENABLE_SERVICE: ResourceKind.SERVICE_UNIT,
    ActionType.DISABLE_SERVICE: ResourceKind.SERVICE_UNIT,
    ActionType.START_SERVICE: ResourceKind.SERVICE_UNIT,
    ActionType.STOP_SERVICE: ResourceKind.SERVICE_UNIT,
}


class Action(BaseModel):
    """A single atomic change to apply to the host.

    Actions are created by the differ, ordered by the planner and
    dispatched through the backend registry.
    """

    model_config = ConfigDict(frozen=True)

    type: ActionType
    resource: ResourceId
    source: str | None = None       # link source, for create_link
    params: dict[str, Any] = Field(default_factory=dict)

    @property
    def kind(self) -> ResourceKind:
        return self.resource.kind

    @property
    def direction(self) -> Direction:
        return _DIRECTIONS[self.type]

    def describe(self) -> str:
        """Human-readable one-liner, e.g. ``create_link /home/u/.vimrc -> /repo/vimrc``."""
        if self.type == ActionType.CREATE_LINK:
            return f"{self.type.value} {self.resource.name} -> {self.source}"
        return f"{self.type.value} {self.resource.name}"

    def __str__(self) -> str:
        return self.describe()

    # ── Constructors ─────────────────────────────────────────────

    @classmethod
    def install(cls, resource: ResourceId, aur: bool = False) -> Action:
        return cls(
            type=ActionType.INSTALL,
            resource=resource,
            params={"aur": True} if aur else {},
        )

    @classmethod
    def remove(cls, resource: ResourceId) -> Action:
        return cls(type=ActionType.REMOVE, resource=resource)

    @classmethod
    def create_link(cls, resource: ResourceId, source: str) -> Action:
        return cls(type=ActionType.CREATE_LINK, resource=resource, source=source)

    @classmethod
    def remove_link(cls, resource: ResourceId) -> Action:
        return cls(type=ActionType.REMOVE_LINK, resource=resource)

    @classmethod
    def for_service(cls, action_type: ActionType, resource: ResourceId) -> Action:
        if _KINDS[action_type] != ResourceKind.SERVICE_UNIT:
            raise ValueError(f"{action_type.value} is not a service action")
        return cls(type=action_type, resource=resource)


class ExecutionResult(BaseModel):
    """Outcome of one action.

    The registry NEVER raises: backend failures are captured here with
    status='failed' and the ErrorKind that classifies them.
    """

    action: Action
    status: Literal["applied", "skipped", "failed"] = "applied"

    started_at: str = Field(default_factory=_now_iso)
    ended_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    reason: str = ""                # why an action was skipped
    error: str | None = None
    error_kind: ErrorKind | None = None

    @property
    def ok(self) -> bool:
        """Whether the action was applied."""
        return self.status == "applied"

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    @property
    def skipped(self) -> bool:
        return self.status == "skipped"

    @classmethod
    def applied(cls, action: Action, **kwargs: Any) -> ExecutionResult:
        """Create an applied result."""
        return cls(action=action, status="applied", **kwargs)

    @classmethod
    def failure(
        cls,
        action: Action,
        error: str,
        error_kind: ErrorKind = ErrorKind.BACKEND_ERROR,
        **kwargs: Any,
    ) -> ExecutionResult:
        """Create a failed result."""
        return cls(
            action=action,
            status="failed",
            error=error,
            error_kind=error_kind,
            **kwargs,
        )

    @classmethod
    def skip(cls, action: Action, reason: str, **kwargs: Any) -> ExecutionResult:
        """Create a skipped result."""
        return cls(action=action, status="skipped", reason=reason, **kwargs)
