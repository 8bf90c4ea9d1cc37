"""
Backend base — the protocol contract between the engine and the host.

This defines the abstract interfaces every backend must implement.
The engine only talks to the host through these protocols, never
directly to pacman, the filesystem or systemctl.

Queries are read-only. Mutating calls either fully succeed or raise
``BackendError``; the registry turns those into failed results.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import NamedTuple

from archman.core.errors import BackendError


class UnitStatus(NamedTuple):
    """What a service backend reports about one unit.

    ``static`` marks units whose enablement systemd does not let us
    toggle (static, indirect, alias, generated, transient); for those
    ``enabled`` carries no meaning.
    """

    enabled: bool | None
    running: bool | None
    static: bool = False


@dataclass
class InstallReasons:
    """Installed packages split by why they are installed."""

    explicit: set[str] = field(default_factory=set)
    dependencies: set[str] = field(default_factory=set)
    unneeded: set[str] = field(default_factory=set)  # dependencies nothing requires


class Backend(ABC):
    """Common surface of all backends."""

    @property
    @abstractmethod
    def name(self) -> str:
        """The backend identifier (e.g., 'pacman', 'paru', 'systemctl')."""

    def is_available(self) -> bool:
        """Check if the underlying tool is usable. Should be fast and never raise."""
        return True

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


class PackageBackend(Backend):
    """A package manager that installs and removes packages by name.

    Dependency resolution is entirely the package manager's job; the
    engine only tracks top-level names.
    """

    @abstractmethod
    def list_installed(self) -> set[str]:
        """Return every package name this backend reports as installed.

        Raises:
            ObservationError: If the query itself failed.
        """

    @abstractmethod
    def install(self, name: str) -> None:
        """Install a package. Raises BackendError on failure."""

    @abstractmethod
    def remove(self, name: str) -> None:
        """Remove a package. Raises BackendError on failure."""

    def group_members(self, group: str) -> list[str]:
        """Packages that belong to a package group.

        Raises:
            BackendError: If the group is unknown or the query failed.
        """
        raise BackendError(f"{self.name} does not support package groups")

    def install_reasons(self) -> InstallReasons:
        """Installed packages split into explicit, dependencies and unneeded.

        Raises:
            ObservationError: If the query failed.
        """
        raise BackendError(f"{self.name} does not report install reasons")


class FileBackend(Backend):
    """Symlink primitives on the local filesystem."""

    @abstractmethod
    def resolve_link(self, path: str) -> str | None:
        """Return the target of the symlink at ``path``.

        None if nothing is there or the entry is not a symlink.
        """

    @abstractmethod
    def exists(self, path: str) -> bool:
        """Whether any entry (file, directory, symlink) occupies ``path``."""

    @abstractmethod
    def create_link(self, path: str, source: str) -> None:
        """Point ``path`` at ``source``, replacing an existing symlink only.

        Raises:
            LinkConflictError: If a non-symlink occupies ``path``.
            BackendError: On any other failure.
        """

    @abstractmethod
    def remove_link(self, path: str) -> None:
        """Remove the symlink at ``path``. Raises BackendError on failure."""


class ServiceBackend(Backend):
    """A service manager addressing units by name."""

    @abstractmethod
    def query(self, unit: str) -> UnitStatus:
        """Return the unit's (enabled, running, static) status.

        ``enabled`` and ``running`` are None when that query failed.
        """

    @abstractmethod
    def enable(self, unit: str) -> None: ...

    @abstractmethod
    def disable(self, unit: str) -> None: ...

    @abstractmethod
    def start(self, unit: str) -> None: ...

    @abstractmethod
    def stop(self, unit: str) -> None: ...
