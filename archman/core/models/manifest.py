"""
Manifest models — the desired-state declaration as plain data.

This is the caller-facing shape: ordered lists of packages,
linked files and service units, plus the package groups whose
members are expanded into packages before planning. The loader
produces it from YAML; tests and other callers may build it
directly. It is converted into a validated DesiredModel by
``archman.core.engine.model``.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class PackageSpec(BaseModel):
    """A package the host should (or should not) have installed."""

    name: str
    present: bool = True
    aur: bool = False


class LinkSpec(BaseModel):
    """A symlink at ``path`` pointing to ``source``.

    ``source`` of None declares that no link may exist at ``path``.
    """

    path: str
    source: str | None = None


class ServiceSpec(BaseModel):
    """A systemd unit and its desired enabled/running flags."""

    unit: str
    present: bool = True
    enabled: bool = True
    running: bool = True


class Manifest(BaseModel):
    """Root desired-state declaration for one host."""

    packages: list[PackageSpec] = Field(default_factory=list)
    links: list[LinkSpec] = Field(default_factory=list)
    services: list[ServiceSpec] = Field(default_factory=list)
    package_groups: list[str] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.packages) + len(self.links) + len(self.services)
