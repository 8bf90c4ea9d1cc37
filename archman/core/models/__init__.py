"""
Domain models — Pydantic types for the reconciliation engine.

All models are re-exported here for convenient access:

    from archman.core.models import ResourceId, Action, Manifest, RunConfig
"""

from archman.core.models.action import Action, ActionType, Direction, ExecutionResult
from archman.core.models.manifest import LinkSpec, Manifest, PackageSpec, ServiceSpec
from archman.core.models.resource import (
    DesiredState,
    LinkState,
    ObservedState,
    ObservedStatus,
    PackageState,
    ResourceId,
    ResourceKind,
    ServiceState,
)
from archman.core.models.run import ExecutionMode, RunConfig

__all__ = [
    # action.py
    "Action",
    "ActionType",
    "DesiredState",
    "Direction",
    "ExecutionMode",
    "ExecutionResult",
    "LinkSpec",
    "LinkState",
    # manifest.py
    "Manifest",
    "ObservedState",
    "ObservedStatus",
    "PackageSpec",
    "PackageState",
    # resource.py
    "ResourceId",
    "ResourceKind",
    # run.py
    "RunConfig",
    "ServiceSpec",
    "ServiceState",
]
