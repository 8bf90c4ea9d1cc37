"""
Mock backends — in-memory test doubles for every backend protocol.

Used in mock mode and in tests to reconcile a simulated host without
touching the real one. Each mock keeps its own state, mutates it on
successful calls, records every call, and can be told to fail
specific operations.
"""

from __future__ import annotations

from archman.adapters.base import (
    FileBackend,
    InstallReasons,
    PackageBackend,
    ServiceBackend,
    UnitStatus,
)
from archman.core.errors import BackendError, LinkConflictError, ObservationError


class _CallRecorder:
    """Call log and injected failures shared by all mocks."""

    def __init__(self) -> None:
        self._call_log: list[tuple[str, str]] = []
        self._failures: dict[tuple[str, str], str] = {}

    @property
    def call_log(self) -> list[tuple[str, str]]:
        """All (operation, target) pairs this mock has received."""
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    @property
    def mutations(self) -> list[tuple[str, str]]:
        """Calls that would have changed the host."""
        return [c for c in self._call_log if c[0] not in _QUERY_OPS]

    def set_failure(self, operation: str, target: str, error: str = "Mock failure") -> None:
        """Configure ``operation`` on ``target`` to raise."""
        self._failures[(operation, target)] = error

    def _record(self, operation: str, target: str) -> None:
        self._call_log.append((operation, target))
        error = self._failures.get((operation, target))
        if error is not None:
            if operation in _QUERY_OPS:
                raise ObservationError(error)
            raise BackendError(error)

    def reset(self) -> None:
        """Clear call log and injected failures."""
        self._call_log.clear()
        self._failures.clear()


_QUERY_OPS = frozenset({
    "list_installed", "group_members", "install_reasons", "resolve_link", "exists", "query",
})


class MockPackageBackend(_CallRecorder, PackageBackend):
    """In-memory package database.

    ``set_failure("list_installed", "*")`` makes the bulk query fail.
    ``groups`` maps group names to member packages; ``dependencies``
    holds installed packages pulled in as dependencies and
    ``unneeded`` the subset nothing requires any more.
    """

    def __init__(
        self,
        backend_name: str = "mock-packages",
        installed: set[str] | None = None,
        available: bool = True,
        groups: dict[str, list[str]] | None = None,
        dependencies: set[str] | None = None,
        unneeded: set[str] | None = None,
    ):
        super().__init__()
        self._name = backend_name
        self._available = available
        self.installed: set[str] = set(installed or ())
        self.groups: dict[str, list[str]] = dict(groups or {})
        self.dependencies: set[str] = set(dependencies or ())
        self.unneeded: set[str] = set(unneeded or ())

    @property
    def name(self) -> str:
        return self._name

    def is_available(self) -> bool:
        return self._available

    def list_installed(self) -> set[str]:
        self._record("list_installed", "*")
        return set(self.installed)

    def install(self, name: str) -> None:
        self._record("install", name)
        self.installed.add(name)

    def remove(self, name: str) -> None:
        self._record("remove", name)
        if name not in self.installed:
            raise BackendError(f"target not found: {name}")
        self.installed.discard(name)

    def group_members(self, group: str) -> list[str]:
        self._record("group_members", group)
        if group not in self.groups:
            raise BackendError(f"group not found: {group}")
        return list(self.groups[group])

    def install_reasons(self) -> InstallReasons:
        self._record("install_reasons", "*")
        deps = self.dependencies & self.installed
        return InstallReasons(
            explicit=self.installed - deps,
            dependencies=deps,
            unneeded=self.unneeded & deps,
        )


class MockFileBackend(_CallRecorder, FileBackend):
    """In-memory filesystem holding symlinks and plain files.

    ``links`` maps link paths to their targets; ``files`` holds paths
    occupied by anything that is not a symlink.
    """

    def __init__(
        self,
        links: dict[str, str] | None = None,
        files: set[str] | None = None,
    ):
        super().__init__()
        self.links: dict[str, str] = dict(links or {})
        self.files: set[str] = set(files or ())

    @property
    def name(self) -> str:
        return "mock-files"

    def resolve_link(self, path: str) -> str | None:
        self._record("resolve_link", path)
        return self.links.get(path)

    def exists(self, path: str) -> bool:
        self._record("exists", path)
        return path in self.links or path in self.files

    def create_link(self, path: str, source: str) -> None:
        self._record("create_link", path)
        if path in self.files:
            raise LinkConflictError(path)
        self.links[path] = source

    def remove_link(self, path: str) -> None:
        self._record("remove_link", path)
        if path not in self.links:
            raise BackendError(f"{path} is not a symlink")
        del self.links[path]


class MockServiceBackend(_CallRecorder, ServiceBackend):
    """In-memory service manager.

    ``units`` maps unit names to (enabled, running) or
    (enabled, running, static). Unknown units are reported as disabled
    and stopped. Enabling or disabling a static unit changes nothing.
    """

    def __init__(self, units: dict[str, tuple] | None = None):
        super().__init__()
        self.units: dict[str, tuple] = dict(units or {})

    @property
    def name(self) -> str:
        return "mock-services"

    def query(self, unit: str) -> UnitStatus:
        self._record("query", unit)
        return UnitStatus(*self.units.get(unit, (False, False)))

    def _set(self, unit: str, enabled: bool | None = None, running: bool | None = None) -> None:
        cur = UnitStatus(*self.units.get(unit, (False, False)))
        if cur.static:
            enabled = None
        self.units[unit] = cur._replace(
            enabled=cur.enabled if enabled is None else enabled,
            running=cur.running if running is None else running,
        )

    def enable(self, unit: str) -> None:
        self._record("enable", unit)
        self._set(unit, enabled=True)

    def disable(self, unit: str) -> None:
        self._record("disable", unit)
        self._set(unit, enabled=False)

    def start(self, unit: str) -> None:
        self._record("start", unit)
        self._set(unit, running=True)

    def stop(self, unit: str) -> None:
        self._record("stop", unit)
        self._set(unit, running=False)
