"""
Resource model — the validated, immutable desired-state set.

Converts a Manifest into an ordered ResourceId → DesiredState mapping
and rejects anything the rest of the pipeline cannot act on safely.
Declaration order is preserved (packages, links, services) because
the differ and planner derive their deterministic order from it.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from pathlib import Path
from types import MappingProxyType

from archman.core.errors import InvalidManifestError
from archman.core.models.manifest import Manifest
from archman.core.models.resource import (
    DesiredState,
    LinkState,
    PackageState,
    ResourceId,
    ResourceKind,
    ServiceState,
)

logger = logging.getLogger(__name__)


class DesiredModel(Mapping[ResourceId, DesiredState]):
    """Read-only, insertion-ordered mapping of resources to desired state."""

    def __init__(self, entries: list[tuple[ResourceId, DesiredState]]):
        self._entries: Mapping[ResourceId, DesiredState] = MappingProxyType(dict(entries))

    def __getitem__(self, key: ResourceId) -> DesiredState:
        return self._entries[key]

    def __iter__(self) -> Iterator[ResourceId]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def ids_of_kind(self, kind: ResourceKind) -> list[ResourceId]:
        """Resource ids of one kind, in declaration order."""
        return [rid for rid in self._entries if rid.kind == kind]

    def __repr__(self) -> str:
        return f"<DesiredModel resources={len(self)}>"


def build_desired_model(manifest: Manifest) -> DesiredModel:
    """Validate a manifest and build the desired-state model.

    Args:
        manifest: Plain manifest data from the loader or a caller.

    Returns:
        DesiredModel in declaration order.

    Raises:
        InvalidManifestError: Listing every problem found.
    """
    errors: list[str] = []
    entries: list[tuple[ResourceId, DesiredState]] = []

    for i, pkg in enumerate(manifest.packages):
        if not pkg.name.strip():
            errors.append(f"packages[{i}]: empty package name")
            continue
        entries.append((
            ResourceId.package(pkg.name),
            PackageState(present=pkg.present, aur=pkg.aur),
        ))

    for i, link in enumerate(manifest.links):
        if not link.path.strip():
            errors.append(f"links[{i}]: empty link path")
            continue
        if not Path(link.path).is_absolute():
            errors.append(f"links[{i}]: link path {link.path!r} is not absolute")
            continue
        if link.source is not None:
            source = Path(link.source)
            if not source.is_absolute():
                errors.append(f"links[{i}]: source {link.source!r} is not absolute")
                continue
            if not source.exists():
                errors.append(f"links[{i}]: source {link.source!r} does not exist")
                continue
        entries.append((ResourceId.linked_file(link.path), LinkState(source=link.source)))

    for i, svc in enumerate(manifest.services):
        if not svc.unit.strip():
            errors.append(f"services[{i}]: empty unit name")
            continue
        entries.append((
            ResourceId.service_unit(svc.unit),
            ServiceState(present=svc.present, enabled=svc.enabled, running=svc.running),
        ))

    seen: set[ResourceId] = set()
    for rid, _ in entries:
        if rid in seen:
            errors.append(f"duplicate resource {rid}")
        seen.add(rid)

    if errors:
        raise InvalidManifestError(errors)

    logger.debug("Built desired model with %d resources", len(entries))
    return DesiredModel(entries)
