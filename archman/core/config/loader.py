"""
Manifest loader — reads archman.yml into the Manifest model.

The file has a ``common`` section applied to every host and optional
per-host sections under ``hosts`` keyed by hostname:

    common:
      packages: [git, {editors: [vim, neovim]}, {name: paru-bin, aur: true}]
      links: {"~/.vimrc": dotfiles/vimrc}
      services: [sshd, {unit: cups.service, state: absent}]
      package_groups: [base-devel]
    hosts:
      laptop:
        packages: [tlp]

A file without ``common``/``hosts`` is read as a single common
section. ``package_groups`` names pacman groups whose members are
all declared present. Packages, groups and services from the host
section are appended to the common ones; a link declared for the
host overrides the common link with the same path. ``~`` expands to the home directory and
relative paths resolve against the manifest's directory.
"""

from __future__ import annotations

import logging
import os
import socket
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from archman.core.models.manifest import LinkSpec, Manifest, PackageSpec, ServiceSpec

logger = logging.getLogger(__name__)

MANIFEST_ENV = "ARCHMAN_MANIFEST"
DEFAULT_MANIFEST = Path(".config") / "archman" / "archman.yml"

_STATES = {"present": True, "absent": False}


class ConfigError(Exception):
    """Raised when the manifest file is missing, unreadable or malformed."""


class _Section(BaseModel):
    """One common or per-host block, before flattening."""

    model_config = ConfigDict(extra="forbid")

    packages: Any = Field(default_factory=list)
    links: dict[str, str | None] | list[dict[str, Any]] = Field(default_factory=dict)
    services: list[str | dict[str, Any]] = Field(default_factory=list)
    package_groups: list[str] = Field(default_factory=list)


class _RawManifest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    common: _Section = Field(default_factory=_Section)
    hosts: dict[str, _Section] = Field(default_factory=dict)


def default_manifest_path() -> Path:
    """$ARCHMAN_MANIFEST, or ~/.config/archman/archman.yml."""
    override = os.environ.get(MANIFEST_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / DEFAULT_MANIFEST


class _PathResolver:
    """Expands ``~`` and anchors relative paths at the manifest directory."""

    def __init__(self, base_dir: Path, home: Path):
        self.base_dir = base_dir
        self.home = home

    def __call__(self, raw: str) -> str:
        if raw == "~":
            return str(self.home)
        if raw.startswith("~/"):
            return str(self.home / raw[2:])
        path = Path(raw)
        if path.is_absolute():
            return str(path)
        return str(self.base_dir / path)


def _parse_state(value: Any, where: str) -> bool:
    if value is None:
        return True
    if value not in _STATES:
        raise ConfigError(f"{where}: state must be 'present' or 'absent', got {value!r}")
    return _STATES[value]


def _flatten_packages(node: Any, where: str, out: list[PackageSpec]) -> None:
    """Flatten arbitrarily nested package groups into ``out``.

    Strings are package names, lists are anonymous groups, mappings
    with a ``name`` key are single packages with options, and any
    other mapping is a set of named groups.
    """
    if node is None:
        return
    if isinstance(node, str):
        out.append(PackageSpec(name=node))
    elif isinstance(node, list):
        for i, child in enumerate(node):
            _flatten_packages(child, f"{where}[{i}]", out)
    elif isinstance(node, dict) and "name" in node:
        unknown = set(node) - {"name", "state", "aur"}
        if unknown:
            raise ConfigError(f"{where}: unknown package keys {sorted(unknown)}")
        try:
            out.append(PackageSpec(
                name=str(node["name"]),
                present=_parse_state(node.get("state"), where),
                aur=node.get("aur", False),
            ))
        except ValidationError as e:
            raise ConfigError(f"{where}: {e}") from e
    elif isinstance(node, dict):
        for group, child in node.items():
            _flatten_packages(child, f"{where}.{group}", out)
    else:
        raise ConfigError(f"{where}: expected a package name, list or mapping, got {node!r}")


def _section_links(section: _Section, where: str, resolve: _PathResolver) -> list[LinkSpec]:
    links: list[LinkSpec] = []
    if isinstance(section.links, dict):
        for path, source in section.links.items():
            links.append(LinkSpec(
                path=resolve(path),
                source=resolve(source) if source else None,
            ))
        return links

    for i, item in enumerate(section.links):
        entry = f"{where}.links[{i}]"
        if "path" not in item:
            raise ConfigError(f"{entry}: missing 'path'")
        present = _parse_state(item.get("state"), entry)
        source = item.get("source")
        if present and not source:
            raise ConfigError(f"{entry}: a present link needs a 'source'")
        links.append(LinkSpec(
            path=resolve(str(item["path"])),
            source=resolve(str(source)) if present else None,
        ))
    return links


def _section_services(section: _Section, where: str) -> list[ServiceSpec]:
    services: list[ServiceSpec] = []
    for i, item in enumerate(section.services):
        entry = f"{where}.services[{i}]"
        if isinstance(item, str):
            services.append(ServiceSpec(unit=item))
            continue
        if "unit" not in item:
            raise ConfigError(f"{entry}: missing 'unit'")
        try:
            services.append(ServiceSpec(
                unit=str(item["unit"]),
                present=_parse_state(item.get("state"), entry),
                enabled=item.get("enabled", True),
                running=item.get("running", True),
            ))
        except ValidationError as e:
            raise ConfigError(f"{entry}: {e}") from e
    return services


def _dedupe(items: list, key: str, label: str) -> list:
    """Keep the first declaration of each name, warning about the rest."""
    seen: set[str] = set()
    unique = []
    for item in items:
        name = getattr(item, key)
        if name in seen:
            logger.warning("%s %r is declared more than once; keeping the first", label, name)
            continue
        seen.add(name)
        unique.append(item)
    return unique


def merge_sections(
    raw: dict[str, Any],
    hostname: str,
    base_dir: Path,
    home: Path,
) -> Manifest:
    """Merge the common section with the section for ``hostname``.

    Args:
        raw: Parsed YAML mapping.
        hostname: Host whose section applies.
        base_dir: Directory relative paths are anchored at.
        home: Directory ``~`` expands to.

    Raises:
        ConfigError: If the structure is invalid.
    """
    if "common" not in raw and "hosts" not in raw:
        raw = {"common": raw}

    try:
        parsed = _RawManifest.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid manifest structure: {e}") from e

    resolve = _PathResolver(base_dir, home)
    sections = [("common", parsed.common)]
    host_section = parsed.hosts.get(hostname)
    if host_section is not None:
        sections.append((f"hosts.{hostname}", host_section))
    else:
        logger.debug("No host section for %r", hostname)

    packages: list[PackageSpec] = []
    groups: list[str] = []
    services: list[ServiceSpec] = []
    links: dict[str, LinkSpec] = {}
    for where, section in sections:
        _flatten_packages(section.packages, f"{where}.packages", packages)
        groups.extend(section.package_groups)
        services.extend(_section_services(section, where))
        for link in _section_links(section, where, resolve):
            # later sections (the host) override earlier ones (common)
            links[link.path] = link

    return Manifest(
        packages=_dedupe(packages, "name", "Package"),
        package_groups=list(dict.fromkeys(groups)),
        links=list(links.values()),
        services=_dedupe(services, "unit", "Service"),
    )


def load_manifest(
    path: Path | None = None,
    hostname: str | None = None,
    home: Path | None = None,
) -> Manifest:
    """Load and merge the manifest for this host.

    Args:
        path: Explicit manifest path. If None, uses default_manifest_path().
        hostname: Host section to apply (default: this machine's hostname).
        home: Home directory for ``~`` expansion (default: $HOME).

    Returns:
        Manifest with paths resolved.

    Raises:
        ConfigError: If the file is missing or invalid.
    """
    if path is None:
        path = default_manifest_path()

    if not path.is_file():
        raise ConfigError(f"Manifest not found: {path}")

    logger.debug("Loading manifest from %s", path)

    try:
        raw_text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw_text)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    manifest = merge_sections(
        data,
        hostname=hostname or socket.gethostname(),
        base_dir=path.parent.resolve(),
        home=home or Path.home(),
    )
    logger.info(
        "Loaded manifest %s: %d packages, %d links, %d services",
        path, len(manifest.packages), len(manifest.links), len(manifest.services),
    )
    return manifest
