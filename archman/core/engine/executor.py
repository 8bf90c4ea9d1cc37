"""
Engine executor — apply a plan and build the reconciliation report.

Actions are applied strictly one at a time, in plan order, through
the backend registry. The report records exactly one result per
action, in plan order, whatever the execution mode.

Flow:
    plan → (dry-run? skip all) → apply each → stop or continue on failure → report
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from archman.adapters.registry import BackendRegistry
from archman.core.errors import ErrorKind
from archman.core.engine.planner import Plan
from archman.core.models.action import ExecutionResult
from archman.core.models.run import ExecutionMode, RunConfig
from archman.core.persistence.audit import AuditEntry, AuditWriter

logger = logging.getLogger(__name__)

SKIP_ABORTED = "aborted"
SKIP_DRY_RUN = "dry-run"


class ReportStatus(str, Enum):
    """Terminal status of a reconciliation run."""

    COMPLETE = "complete"
    COMPLETED_WITH_FAILURES = "completed_with_failures"
    ABORTED = "aborted"


@dataclass
class ReconciliationReport:
    """Result of executing a plan — the audit log of one run."""

    operation_id: str = ""
    mode: ExecutionMode = ExecutionMode.FAIL_FAST
    dry_run: bool = False
    results: list[ExecutionResult] = field(default_factory=list)
    status: ReportStatus = ReportStatus.COMPLETE

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def applied(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.failed)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.results if r.skipped)

    @property
    def all_ok(self) -> bool:
        return self.failed == 0

    @property
    def conflicts(self) -> list[ExecutionResult]:
        """Failed results caused by a non-symlink occupying a link target."""
        return [r for r in self.results if r.error_kind == ErrorKind.LINK_CONFLICT]

    def to_dict(self) -> dict:
        return {
            "operation_id": self.operation_id,
            "mode": self.mode.value,
            "dry_run": self.dry_run,
            "status": self.status.value,
            "total": self.total,
            "applied": self.applied,
            "failed": self.failed,
            "skipped": self.skipped,
            "results": [r.model_dump(mode="json") for r in self.results],
        }


def execute_plan(
    plan: Plan,
    registry: BackendRegistry,
    config: RunConfig | None = None,
) -> ReconciliationReport:
    """Apply every action in a plan through the backend registry.

    Args:
        plan: The ordered plan.
        registry: Backend registry for dispatch.
        config: Execution mode and dry-run flag (defaults: fail-fast, live).

    Returns:
        ReconciliationReport with one result per planned action.
    """
    config = config or RunConfig()
    report = ReconciliationReport(
        operation_id=plan.operation_id,
        mode=config.mode,
        dry_run=config.dry_run,
    )

    if config.dry_run:
        for action in plan:
            report.results.append(ExecutionResult.skip(action, SKIP_DRY_RUN))
            logger.info("⊘ [dry-run] %s", action.describe())
        return report

    aborted = False
    for action in plan:
        if aborted:
            report.results.append(ExecutionResult.skip(action, SKIP_ABORTED))
            continue

        result = registry.apply(action)
        report.results.append(result)

        if result.ok:
            logger.info("✓ %s (%dms)", action.describe(), result.duration_ms)
        else:
            kind = result.error_kind.value if result.error_kind else "failed"
            logger.warning("✗ %s → %s: %s", action.describe(), kind, result.error)

        if result.failed and config.mode == ExecutionMode.FAIL_FAST:
            logger.error("Aborting after failed action: %s", action.describe())
            aborted = True

    if aborted:
        report.status = ReportStatus.ABORTED
    elif report.failed:
        report.status = ReportStatus.COMPLETED_WITH_FAILURES
    else:
        report.status = ReportStatus.COMPLETE
    return report


def write_audit_entry(
    report: ReconciliationReport,
    audit_writer: AuditWriter,
    host: str = "",
    duration_ms: int = 0,
) -> None:
    """Write a run summary to the audit ledger.

    Args:
        report: Reconciliation report to audit.
        audit_writer: The audit writer instance.
        host: Hostname the run reconciled.
        duration_ms: Wall time of the whole run.
    """
    failures = [r for r in report.results if r.failed]
    entry = AuditEntry(
        operation_id=report.operation_id,
        operation_type="sync",
        host=host,
        mode=report.mode.value,
        status=report.status.value,
        actions_total=report.total,
        actions_applied=report.applied,
        actions_failed=report.failed,
        actions_skipped=report.skipped,
        duration_ms=duration_ms,
        resources_failed=[str(r.action.resource) for r in failures],
        errors=[r.error or "" for r in failures],
    )
    audit_writer.write(entry)
