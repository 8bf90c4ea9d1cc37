"""Adapters — backend bindings for the host being reconciled.

Public re-exports for convenient access.
"""

from archman.adapters.base import (
    Backend,
    FileBackend,
    InstallReasons,
    PackageBackend,
    ServiceBackend,
    UnitStatus,
)
from archman.adapters.mock import MockFileBackend, MockPackageBackend, MockServiceBackend
from archman.adapters.registry import BackendRegistry, PackageView

__all__ = [
    "Backend",
    "BackendRegistry",
    "FileBackend",
    "InstallReasons",
    "MockFileBackend",
    "MockPackageBackend",
    "MockServiceBackend",
    "PackageBackend",
    "PackageView",
    "ServiceBackend",
    "UnitStatus",
]
