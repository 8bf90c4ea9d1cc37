"""
Sync use case — reconcile the host with its manifest.

This is the top-level orchestrator: it loads the manifest, builds
the desired model, observes the host, diffs, plans, executes and
audits. The full vertical slice from manifest to audited change.
"""

from __future__ import annotations

import logging
import socket
import time
from dataclasses import dataclass, field
from pathlib import Path

from archman.adapters.mock import MockFileBackend, MockPackageBackend, MockServiceBackend
from archman.adapters.registry import BackendRegistry
from archman.core.config.loader import ConfigError, default_manifest_path, load_manifest
from archman.core.engine.differ import diff
from archman.core.engine.executor import ReconciliationReport, execute_plan, write_audit_entry
from archman.core.engine.model import DesiredModel, build_desired_model
from archman.core.engine.observer import ObservedSnapshot, observe
from archman.core.engine.planner import Plan, build_plan
from archman.core.errors import ArchmanError, CyclicDependencyError, InvalidManifestError
from archman.core.models.manifest import Manifest, PackageSpec
from archman.core.models.run import RunConfig
from archman.core.persistence.audit import AuditWriter

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """Result of one reconciliation run."""

    report: ReconciliationReport | None = None
    plan: Plan | None = None
    snapshot: ObservedSnapshot | None = None
    manifest_path: Path | None = None
    host: str = ""
    resources: int = 0
    error: str | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None and self.report is not None and self.report.all_ok

    def to_dict(self) -> dict:
        result: dict = {}
        if self.error:
            result["error"] = self.error
            if self.errors:
                result["errors"] = self.errors
            return result

        result["manifest"] = str(self.manifest_path) if self.manifest_path else None
        result["host"] = self.host
        result["resources"] = self.resources
        if self.snapshot is not None:
            result["unknown"] = [str(rid) for rid in self.snapshot.unknown]
            result["conflicts"] = [str(rid) for rid in self.snapshot.conflicts]
        if self.plan is not None:
            result["plan"] = self.plan.to_dict()
        if self.report is not None:
            result["report"] = self.report.to_dict()
        return result


def default_registry(mock_mode: bool = False) -> BackendRegistry:
    """Build the registry for this machine.

    In mock mode every backend is in-memory and starts empty.
    """
    if mock_mode:
        return BackendRegistry(
            packages=MockPackageBackend("mock-pacman"),
            aur=MockPackageBackend("mock-aur"),
            files=MockFileBackend(),
            services=MockServiceBackend(),
        )

    from archman.adapters.packages.pacman import AurHelperBackend, PacmanBackend
    from archman.adapters.services.systemd import SystemctlBackend
    from archman.adapters.shell.filesystem import SymlinkBackend

    aur = AurHelperBackend.detect()
    if aur is None:
        logger.info("No AUR helper found; AUR packages cannot be installed")
    return BackendRegistry(
        packages=PacmanBackend(),
        aur=aur,
        files=SymlinkBackend(),
        services=SystemctlBackend(),
    )


def expand_package_groups(manifest: Manifest, registry: BackendRegistry) -> Manifest:
    """Replace ``package_groups`` with the packages each group contains.

    Group members are declared present after the individually declared
    packages. A package declared on its own keeps that declaration even
    when a group also contains it.

    Raises:
        InvalidManifestError: If any group cannot be resolved.
    """
    if not manifest.package_groups:
        return manifest

    individual = {p.name for p in manifest.packages}
    seen = set(individual)
    packages = list(manifest.packages)
    errors: list[str] = []
    for group in manifest.package_groups:
        try:
            members = registry.group_members(group)
        except (ArchmanError, OSError) as e:
            errors.append(f"package group {group}: {e}")
            continue
        for name in members:
            if name in individual:
                logger.warning(
                    "Declared package %s is also a member of the declared group %s", name, group,
                )
            if name not in seen:
                seen.add(name)
                packages.append(PackageSpec(name=name))
    if errors:
        raise InvalidManifestError(errors)

    logger.debug(
        "Expanded %d package group(s) into %d package(s)",
        len(manifest.package_groups), len(packages) - len(manifest.packages),
    )
    return manifest.model_copy(update={"packages": packages, "package_groups": []})


def plan_changes(
    manifest: Manifest,
    registry: BackendRegistry,
    operation_id: str | None = None,
) -> tuple[DesiredModel, ObservedSnapshot, Plan]:
    """Validate, observe, diff and plan — everything short of executing.

    Raises:
        InvalidManifestError: Before any backend is changed or observed;
            only package group lookups may have run.
        CyclicDependencyError: If kinds cannot be ordered.
    """
    model = build_desired_model(expand_package_groups(manifest, registry))
    snapshot = observe(model.keys(), registry)
    actions = diff(model, snapshot)
    plan = build_plan(actions, operation_id=operation_id)
    return model, snapshot, plan


def reconcile(
    manifest: Manifest,
    registry: BackendRegistry,
    config: RunConfig | None = None,
    audit_writer: AuditWriter | None = None,
    host: str = "",
) -> SyncResult:
    """Run the whole pipeline for an already-loaded manifest.

    Validation and ordering errors are reported in the result, never
    raised; no backend is touched when they occur.
    """
    config = config or RunConfig()
    result = SyncResult(host=host)
    start = time.monotonic()

    try:
        model, snapshot, plan = plan_changes(manifest, registry)
    except InvalidManifestError as e:
        result.error = str(e)
        result.errors = e.errors
        return result
    except CyclicDependencyError as e:
        result.error = str(e)
        return result

    result.resources = len(model)
    result.snapshot = snapshot
    result.plan = plan

    if plan.is_empty:
        logger.info("Host already matches the manifest")

    report = execute_plan(plan, registry, config)
    result.report = report

    if audit_writer is not None and not config.dry_run:
        duration_ms = int((time.monotonic() - start) * 1000)
        write_audit_entry(report, audit_writer, host=host, duration_ms=duration_ms)

    return result


def run_sync(
    config_path: Path | None = None,
    run_config: RunConfig | None = None,
    hostname: str | None = None,
    mock_mode: bool = False,
    registry: BackendRegistry | None = None,
    audit_writer: AuditWriter | None = None,
) -> SyncResult:
    """Load the manifest for this host and reconcile it.

    Args:
        config_path: Optional explicit manifest path.
        run_config: Execution mode and dry-run flag.
        hostname: Override the host section to apply.
        mock_mode: If True, reconcile in-memory backends instead of the host.
        registry: Optional pre-configured backend registry.
        audit_writer: Optional ledger writer (default: state dir ledger,
            none in mock mode).

    Returns:
        SyncResult with the plan and execution report.
    """
    host = hostname or socket.gethostname()
    path = config_path or default_manifest_path()

    try:
        manifest = load_manifest(path, hostname=host)
    except ConfigError as e:
        return SyncResult(manifest_path=path, host=host, error=str(e))

    if registry is None:
        registry = default_registry(mock_mode)
    if audit_writer is None and not mock_mode:
        audit_writer = AuditWriter()

    result = reconcile(manifest, registry, run_config, audit_writer=audit_writer, host=host)
    result.manifest_path = path
    return result
