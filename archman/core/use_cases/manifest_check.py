"""
Manifest check use case — validate archman.yml and report issues.
"""

from __future__ import annotations

import socket
from dataclasses import dataclass, field
from pathlib import Path

from archman.adapters.packages.pacman import AurHelperBackend
from archman.core.config.loader import ConfigError, default_manifest_path, load_manifest
from archman.core.engine.model import build_desired_model
from archman.core.errors import InvalidManifestError
from archman.core.models.manifest import Manifest


@dataclass
class ManifestCheckResult:
    """Result of manifest validation."""

    valid: bool = False
    manifest: Manifest | None = None
    manifest_path: Path | None = None
    host: str = ""
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        m = self.manifest
        return {
            "valid": self.valid,
            "manifest": str(self.manifest_path) if self.manifest_path else None,
            "host": self.host,
            "errors": self.errors,
            "warnings": self.warnings,
            "packages": len(m.packages) if m else 0,
            "links": len(m.links) if m else 0,
            "services": len(m.services) if m else 0,
            "package_groups": list(m.package_groups) if m else [],
        }


def check_manifest(
    config_path: Path | None = None,
    hostname: str | None = None,
) -> ManifestCheckResult:
    """Load and validate the manifest without querying any backend."""
    result = ManifestCheckResult(host=hostname or socket.gethostname())
    result.manifest_path = config_path or default_manifest_path()

    try:
        manifest = load_manifest(result.manifest_path, hostname=result.host)
    except ConfigError as e:
        result.errors.append(str(e))
        return result
    result.manifest = manifest

    try:
        build_desired_model(manifest)
    except InvalidManifestError as e:
        result.errors.extend(e.errors)
        return result

    if manifest.total == 0 and not manifest.package_groups:
        result.warnings.append("The manifest declares nothing. archman has nothing to manage.")

    aur_packages = [p.name for p in manifest.packages if p.aur and p.present]
    if aur_packages and AurHelperBackend.detect() is None:
        result.warnings.append(
            f"{len(aur_packages)} AUR package(s) need paru or yay installed: "
            + ", ".join(aur_packages)
        )

    result.valid = True
    return result
