"""
State observer — snapshot the host for the resources we care about.

Issues read-only queries only. Packages are observed with one bulk
query per package backend; links and services are observed one by
one. A failed query degrades the affected resources to ``unknown``
and never aborts the pass.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping

from archman.adapters.base import UnitStatus
from archman.adapters.registry import BackendRegistry, PackageView
from archman.core.errors import ArchmanError
from archman.core.models.resource import ObservedState, ObservedStatus, ResourceId, ResourceKind

logger = logging.getLogger(__name__)


class ObservedSnapshot(Mapping[ResourceId, ObservedState]):
    """Read-only ResourceId → ObservedState mapping taken once per run.

    ``package_view`` keeps the merged package query the package states
    came from; it is None when no package was observed.
    """

    def __init__(
        self,
        states: dict[ResourceId, ObservedState],
        package_view: PackageView | None = None,
    ):
        self._states = dict(states)
        self.package_view = package_view

    def __getitem__(self, key: ResourceId) -> ObservedState:
        return self._states[key]

    def __iter__(self) -> Iterator[ResourceId]:
        return iter(self._states)

    def __len__(self) -> int:
        return len(self._states)

    @property
    def unknown(self) -> list[ResourceId]:
        """Resources whose state could not be determined."""
        return [rid for rid, s in self._states.items() if s.status == ObservedStatus.UNKNOWN]

    @property
    def conflicts(self) -> list[ResourceId]:
        """Link targets occupied by something that is not a symlink."""
        return [rid for rid, s in self._states.items() if s.status == ObservedStatus.CONFLICT]


def _observe_packages(ids: list[ResourceId], view: PackageView) -> dict[ResourceId, ObservedState]:
    states: dict[ResourceId, ObservedState] = {}
    for rid in ids:
        if rid.name in view:
            status = ObservedStatus.PRESENT
        elif view.complete:
            status = ObservedStatus.ABSENT
        else:
            # some backend did not answer; it might hold the package
            states[rid] = ObservedState.unknown(
                ResourceKind.PACKAGE,
                "; ".join(f"{b}: {e}" for b, e in view.failed.items()),
            )
            continue
        states[rid] = ObservedState(kind=ResourceKind.PACKAGE, status=status)
    return states


def _observe_link(rid: ResourceId, registry: BackendRegistry) -> ObservedState:
    kind = ResourceKind.LINKED_FILE
    try:
        source = registry.files.resolve_link(rid.name)
        if source is not None:
            return ObservedState(kind=kind, status=ObservedStatus.PRESENT, source=source)
        if registry.files.exists(rid.name):
            return ObservedState(
                kind=kind,
                status=ObservedStatus.CONFLICT,
                error=f"{rid.name} exists and is not a symlink",
            )
        return ObservedState(kind=kind, status=ObservedStatus.ABSENT)
    except (ArchmanError, OSError) as e:
        logger.warning("Cannot observe %s: %s", rid, e)
        return ObservedState.unknown(kind, str(e))


def _observe_service(rid: ResourceId, registry: BackendRegistry) -> ObservedState:
    kind = ResourceKind.SERVICE_UNIT
    try:
        status = UnitStatus(*registry.services.query(rid.name))
    except (ArchmanError, OSError) as e:
        logger.warning("Cannot observe %s: %s", rid, e)
        return ObservedState.unknown(kind, str(e))

    if status.enabled is None and status.running is None and not status.static:
        return ObservedState.unknown(kind, "service query returned no state")
    return ObservedState(
        kind=kind,
        status=ObservedStatus.PRESENT,
        enabled=status.enabled,
        running=status.running,
        static=status.static,
    )


def observe(ids: Iterable[ResourceId], registry: BackendRegistry) -> ObservedSnapshot:
    """Query the backends for the current state of every given resource.

    Args:
        ids: Resources to observe (normally the desired model's keys).
        registry: Backend registry to query.

    Returns:
        ObservedSnapshot covering every id.
    """
    ids = list(ids)
    states: dict[ResourceId, ObservedState] = {}

    package_ids = [rid for rid in ids if rid.kind == ResourceKind.PACKAGE]
    view = None
    if package_ids:
        view = registry.list_installed()
        states.update(_observe_packages(package_ids, view))
    for rid in ids:
        if rid.kind == ResourceKind.LINKED_FILE:
            states[rid] = _observe_link(rid, registry)
        elif rid.kind == ResourceKind.SERVICE_UNIT:
            states[rid] = _observe_service(rid, registry)

    snapshot = ObservedSnapshot({rid: states[rid] for rid in ids}, package_view=view)
    if snapshot.unknown:
        logger.warning("%d resource(s) could not be observed", len(snapshot.unknown))
    logger.info("Observed %d resources", len(snapshot))
    return snapshot
