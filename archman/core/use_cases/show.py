"""
Show use case — summarize declared vs. installed state without changing anything.
"""

from __future__ import annotations

import logging
import socket
from dataclasses import dataclass, field
from pathlib import Path

from archman.adapters.registry import BackendRegistry
from archman.core.config.loader import ConfigError, default_manifest_path, load_manifest
from archman.core.errors import ArchmanError, CyclicDependencyError, InvalidManifestError
from archman.core.models.action import ActionType
from archman.core.models.resource import ResourceKind
from archman.core.use_cases.sync import default_registry, plan_changes

logger = logging.getLogger(__name__)


@dataclass
class ShowResult:
    """Counts describing how far the host is from its manifest."""

    host: str = ""
    manifest_path: Path | None = None
    declared: int = 0
    installed: int = 0
    installed_by: dict[str, int] = field(default_factory=dict)
    # None when the package backend cannot tell why packages are installed
    explicit: int | None = None
    as_dependencies: int | None = None
    unneeded: list[str] | None = None
    to_install: list[str] = field(default_factory=list)
    to_remove: list[str] = field(default_factory=list)
    links_pending: int = 0
    services_pending: int = 0
    unknown: list[str] = field(default_factory=list)
    conflicts: list[str] = field(default_factory=list)
    error: str | None = None

    def summary_rows(self) -> list[tuple[str, int]]:
        rows = [("declared", self.declared), ("installed", self.installed)]
        for backend, count in self.installed_by.items():
            rows.append((f"  via {backend}", count))
        if self.explicit is not None:
            rows.append(("  explicitly", self.explicit))
            rows.append(("  as dependencies", self.as_dependencies or 0))
        rows += [
            ("to install", len(self.to_install)),
            ("to remove", len(self.to_remove)),
        ]
        if self.unneeded is not None:
            rows.append(("unneeded", len(self.unneeded)))
        rows += [
            ("links to change", self.links_pending),
            ("service changes", self.services_pending),
            ("unknown", len(self.unknown)),
            ("conflicts", len(self.conflicts)),
        ]
        return rows

    def to_dict(self) -> dict:
        if self.error:
            return {"error": self.error}
        return {
            "host": self.host,
            "manifest": str(self.manifest_path) if self.manifest_path else None,
            "packages": {
                "declared": self.declared,
                "installed": self.installed,
                "installed_by": self.installed_by,
                "to_install": self.to_install,
                "to_remove": self.to_remove,
                "explicit": self.explicit,
                "as_dependencies": self.as_dependencies,
                "unneeded": self.unneeded,
            },
            "links_pending": self.links_pending,
            "services_pending": self.services_pending,
            "unknown": self.unknown,
            "conflicts": self.conflicts,
        }


def show_status(
    config_path: Path | None = None,
    hostname: str | None = None,
    mock_mode: bool = False,
    registry: BackendRegistry | None = None,
) -> ShowResult:
    """Observe the host and summarize pending changes. Read-only."""
    host = hostname or socket.gethostname()
    path = config_path or default_manifest_path()
    result = ShowResult(host=host, manifest_path=path)

    try:
        manifest = load_manifest(path, hostname=host)
    except ConfigError as e:
        result.error = str(e)
        return result

    if registry is None:
        registry = default_registry(mock_mode)

    try:
        model, snapshot, plan = plan_changes(manifest, registry)
    except (InvalidManifestError, CyclicDependencyError) as e:
        result.error = str(e)
        return result

    result.declared = sum(
        1 for rid in model.ids_of_kind(ResourceKind.PACKAGE) if model[rid].present
    )

    view = snapshot.package_view
    if view is None:
        view = registry.list_installed()
    result.installed = len(view.owners)
    for owner in view.owners.values():
        result.installed_by[owner] = result.installed_by.get(owner, 0) + 1

    try:
        reasons = registry.install_reasons()
    except ArchmanError as e:
        logger.debug("No install reasons from %s: %s", registry.packages.name, e)
    else:
        result.explicit = len(reasons.explicit)
        result.as_dependencies = len(reasons.dependencies)
        result.unneeded = sorted(reasons.unneeded)

    for action in plan:
        if action.type == ActionType.INSTALL:
            result.to_install.append(action.resource.name)
        elif action.type == ActionType.REMOVE:
            result.to_remove.append(action.resource.name)
        elif action.kind == ResourceKind.LINKED_FILE:
            result.links_pending += 1
        else:
            result.services_pending += 1

    result.unknown = [str(rid) for rid in snapshot.unknown]
    result.conflicts = [str(rid) for rid in snapshot.conflicts]
    return result
