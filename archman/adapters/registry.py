"""
Backend registry — central dispatch for all backend operations.

The registry is the single point of backend management. It composes
the system and AUR package backends into one logical package view,
holds the file and service backends, and maps every Action onto the
one backend call its type stands for. The engine never talks to a
backend directly when applying a plan — always through the registry.
"""

from __future__ import annotations

import logging
import time
from datetime import UTC, datetime
from typing import Any, Callable

from archman.adapters.base import FileBackend, InstallReasons, PackageBackend, ServiceBackend
from archman.core.errors import ArchmanError, ErrorKind, LinkConflictError, ObservationError
from archman.core.models.action import Action, ActionType, ExecutionResult

logger = logging.getLogger(__name__)


class PackageView:
    """Result of a merged package query.

    ``owners`` maps each installed name to the backend that reported
    it. ``failed`` names the backends whose query failed; a name that
    is absent from ``owners`` is only known to be absent if no backend
    failed.
    """

    def __init__(self) -> None:
        self.owners: dict[str, str] = {}
        self.failed: dict[str, str] = {}

    @property
    def complete(self) -> bool:
        return not self.failed

    def __contains__(self, name: str) -> bool:
        return name in self.owners


class BackendRegistry:
    """Central registry and dispatcher for backends.

    Features:
        - Merged package view over system + AUR backends (AUR wins)
        - Removal routed to the backend that owns the package
        - Link conflict re-check before any create_link
        - apply(): Action → ExecutionResult, never raises
    """

    def __init__(
        self,
        packages: PackageBackend,
        files: FileBackend,
        services: ServiceBackend,
        aur: PackageBackend | None = None,
    ):
        self.packages = packages
        self.aur = aur
        self.files = files
        self.services = services
        self._owners: dict[str, str] = {}

    def package_backends(self) -> list[PackageBackend]:
        """System backend first, AUR last so its answers take precedence."""
        backends = [self.packages]
        if self.aur is not None:
            backends.append(self.aur)
        return backends

    def backend_status(self) -> dict[str, dict[str, Any]]:
        """Get availability status of all registered backends."""
        status = {}
        for backend in [*self.package_backends(), self.files, self.services]:
            try:
                available = backend.is_available()
            except Exception:
                available = False
            status[backend.name] = {
                "name": backend.name,
                "available": available,
                "type": backend.__class__.__name__,
            }
        return status

    # ── Queries ──────────────────────────────────────────────────

    def list_installed(self) -> PackageView:
        """Query every package backend once and merge the results.

        A failing backend is recorded in ``view.failed`` and does not
        prevent the others from answering.
        """
        view = PackageView()
        for backend in self.package_backends():
            try:
                names = backend.list_installed()
            except (ArchmanError, OSError) as e:
                logger.warning("Package query via %s failed: %s", backend.name, e)
                view.failed[backend.name] = str(e)
                continue
            for name in names:
                # later backends (AUR) overwrite earlier ones
                view.owners[name] = backend.name

        self._owners = dict(view.owners)
        return view

    def group_members(self, group: str) -> list[str]:
        """Packages in a sync-database group, answered by the system backend."""
        return self.packages.group_members(group)

    def install_reasons(self) -> InstallReasons:
        """Explicit / dependency breakdown of the local package database."""
        return self.packages.install_reasons()

    # ── Dispatch ─────────────────────────────────────────────────

    def _package_backend_for(self, action: Action) -> PackageBackend:
        name = action.resource.name
        if action.type == ActionType.INSTALL:
            if action.params.get("aur"):
                if self.aur is None:
                    raise ArchmanError(f"No AUR helper configured to install '{name}'")
                return self.aur
            return self.packages
        owner = self._owners.get(name)
        if self.aur is not None and owner == self.aur.name:
            return self.aur
        return self.packages

    def _create_link(self, path: str, source: str) -> None:
        if self.files.resolve_link(path) is None and self.files.exists(path):
            raise LinkConflictError(path)
        self.files.create_link(path, source)

    def _call_for(self, action: Action) -> Callable[[], None]:
        target = action.resource.name
        match action.type:
            case ActionType.INSTALL:
                backend = self._package_backend_for(action)
                return lambda: backend.install(target)
            case ActionType.REMOVE:
                backend = self._package_backend_for(action)
                return lambda: backend.remove(target)
            case ActionType.CREATE_LINK:
                source = action.source
                if source is None:
                    raise ArchmanError(f"create_link for {target} has no source")
                return lambda: self._create_link(target, source)
            case ActionType.REMOVE_LINK:
                return lambda: self.files.remove_link(target)
            case ActionType.ENABLE_SERVICE:
                return lambda: self.services.enable(target)
            case ActionType.DISABLE_SERVICE:
                return lambda: self.services.disable(target)
            case ActionType.START_SERVICE:
                return lambda: self.services.start(target)
            case ActionType.STOP_SERVICE:
                return lambda: self.services.stop(target)
        raise ArchmanError(f"Unsupported action type: {action.type}")

    def apply(self, action: Action) -> ExecutionResult:
        """Apply one action through the backend its type maps to.

        Returns:
            ExecutionResult with status 'applied' or 'failed'. Never raises.
        """
        started_at = datetime.now(UTC).isoformat()
        start_time = time.monotonic()

        try:
            self._call_for(action)()
            result = ExecutionResult.applied(action, started_at=started_at)
        except LinkConflictError as e:
            result = ExecutionResult.failure(
                action, str(e), ErrorKind.LINK_CONFLICT, started_at=started_at,
            )
        except ObservationError as e:
            # a precondition query inside the call failed
            result = ExecutionResult.failure(
                action, str(e), ErrorKind.BACKEND_ERROR, started_at=started_at,
            )
        except ArchmanError as e:
            result = ExecutionResult.failure(action, str(e), e.kind, started_at=started_at)
        except Exception as e:
            # backends are expected to raise BackendError only
            logger.error("Backend raised during %s: %s", action.describe(), e)
            result = ExecutionResult.failure(
                action, f"Unexpected error: {e}", started_at=started_at,
            )

        result.duration_ms = int((time.monotonic() - start_time) * 1000)
        return result
