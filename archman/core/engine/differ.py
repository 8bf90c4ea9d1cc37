"""
Differ — the minimal set of actions that moves observed to desired.

Pure and deterministic: no backend access, no clock, no randomness.
Actions come out in model declaration order, and within a service
unit in the order they must run (enable before start, stop before
disable). Static units only ever get start/stop actions.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

from archman.core.engine.model import DesiredModel
from archman.core.models.action import Action, ActionType
from archman.core.models.resource import (
    DesiredState,
    LinkState,
    ObservedState,
    ObservedStatus,
    PackageState,
    ResourceId,
    ServiceState,
)

logger = logging.getLogger(__name__)


def _diff_package(rid: ResourceId, desired: PackageState, observed: ObservedState) -> list[Action]:
    if desired.present and observed.status != ObservedStatus.PRESENT:
        return [Action.install(rid, aur=desired.aur)]
    if not desired.present and observed.status == ObservedStatus.PRESENT:
        return [Action.remove(rid)]
    return []


def _diff_link(rid: ResourceId, desired: LinkState, observed: ObservedState) -> list[Action]:
    if desired.source is not None:
        linked = observed.status == ObservedStatus.PRESENT and observed.source == desired.source
        return [] if linked else [Action.create_link(rid, desired.source)]
    # only ever remove something we know is a symlink
    if observed.status == ObservedStatus.PRESENT:
        return [Action.remove_link(rid)]
    return []


def _diff_service(rid: ResourceId, desired: ServiceState, observed: ObservedState) -> list[Action]:
    # unknown flags (None) never equal the desired bool, so they converge
    enable = None
    if not observed.static and observed.enabled != desired.enabled:
        enable = ActionType.ENABLE_SERVICE if desired.enabled else ActionType.DISABLE_SERVICE
    run = None
    if observed.running != desired.running:
        run = ActionType.START_SERVICE if desired.running else ActionType.STOP_SERVICE

    if enable == ActionType.DISABLE_SERVICE or run == ActionType.STOP_SERVICE:
        order = [run, enable]
    else:
        order = [enable, run]
    return [Action.for_service(t, rid) for t in order if t is not None]


def diff_resource(rid: ResourceId, desired: DesiredState, observed: ObservedState) -> list[Action]:
    """Actions needed for one resource; empty if it already matches."""
    if observed.kind != rid.kind or desired.kind != rid.kind:
        raise ValueError(f"State kinds do not match resource {rid}")

    match desired:
        case PackageState():
            return _diff_package(rid, desired, observed)
        case LinkState():
            return _diff_link(rid, desired, observed)
        case ServiceState():
            return _diff_service(rid, desired, observed)
    raise TypeError(f"Unsupported desired state: {desired!r}")


def diff(model: DesiredModel, snapshot: Mapping[ResourceId, ObservedState]) -> list[Action]:
    """Diff every resource in the model against the observed snapshot.

    A resource missing from the snapshot is diffed as ``unknown``.

    Returns:
        Actions in model declaration order.
    """
    actions: list[Action] = []
    for rid, desired in model.items():
        observed = snapshot.get(rid) or ObservedState.unknown(rid.kind, "not observed")
        actions.extend(diff_resource(rid, desired, observed))
    logger.debug("Differ produced %d action(s)", len(actions))
    return actions
