"""
Resource models — what archman manages and the states it can be in.

Three closed resource kinds exist: packages, linked files and service
units. Desired state is a discriminated union keyed on ``kind``; each
variant carries only the fields meaningful for its kind. Observed
state is a single shape populated by the observer, where ``unknown``
is a first-class value that is never read as ``absent``.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ResourceKind(str, Enum):
    """The kinds of resources archman can reconcile."""

    PACKAGE = "package"
    LINKED_FILE = "linked_file"
    SERVICE_UNIT = "service_unit"


class ResourceId(BaseModel):
    """Primary key of a resource: a (kind, name) pair.

    ``name`` is the package name, the absolute link target path, or
    the systemd unit name, depending on ``kind``.
    """

    model_config = ConfigDict(frozen=True)

    kind: ResourceKind
    name: str

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.name}"

    @classmethod
    def package(cls, name: str) -> ResourceId:
        return cls(kind=ResourceKind.PACKAGE, name=name)

    @classmethod
    def linked_file(cls, path: str) -> ResourceId:
        return cls(kind=ResourceKind.LINKED_FILE, name=path)

    @classmethod
    def service_unit(cls, unit: str) -> ResourceId:
        return cls(kind=ResourceKind.SERVICE_UNIT, name=unit)


# ── Desired state ───────────────────────────────────────────────────


class PackageState(BaseModel):
    """Desired state of a package."""

    model_config = ConfigDict(frozen=True)

    kind: Literal[ResourceKind.PACKAGE] = ResourceKind.PACKAGE
    present: bool = True
    aur: bool = False               # install through the AUR helper


class LinkState(BaseModel):
    """Desired state of a linked file.

    ``source`` set means "linked to source"; ``None`` means absent.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal[ResourceKind.LINKED_FILE] = ResourceKind.LINKED_FILE
    source: str | None = None

    @property
    def present(self) -> bool:
        return self.source is not None


class ServiceState(BaseModel):
    """Desired state of a systemd unit."""

    model_config = ConfigDict(frozen=True)

    kind: Literal[ResourceKind.SERVICE_UNIT] = ResourceKind.SERVICE_UNIT
    present: bool = True
    enabled: bool = True
    running: bool = True

    @model_validator(mode="before")
    @classmethod
    def _absent_means_off(cls, data: Any) -> Any:
        # An absent unit is one that is neither enabled nor running.
        if isinstance(data, dict) and data.get("present") is False:
            data = {**data, "enabled": False, "running": False}
        return data


DesiredState = Annotated[
    Union[PackageState, LinkState, ServiceState],
    Field(discriminator="kind"),
]


# ── Observed state ──────────────────────────────────────────────────


class ObservedStatus(str, Enum):
    """Coarse observed status of a resource."""

    PRESENT = "present"
    ABSENT = "absent"
    UNKNOWN = "unknown"     # backend query failed
    CONFLICT = "conflict"   # a non-symlink occupies a link target


class ObservedState(BaseModel):
    """Current state of a resource as reported by its backend.

    For linked files ``source`` holds the resolved symlink target.
    For service units ``enabled`` and ``running`` are ``None`` when
    the corresponding query failed, and ``static`` marks units whose
    enablement cannot be toggled.
    """

    model_config = ConfigDict(frozen=True)

    kind: ResourceKind
    status: ObservedStatus
    source: str | None = None
    enabled: bool | None = None
    running: bool | None = None
    static: bool = False
    error: str | None = None

    @property
    def known(self) -> bool:
        return self.status != ObservedStatus.UNKNOWN

    @classmethod
    def unknown(cls, kind: ResourceKind, error: str = "") -> ObservedState:
        return cls(kind=kind, status=ObservedStatus.UNKNOWN, error=error or None)
