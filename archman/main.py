"""
archman — CLI entrypoint.

Usage:
    archman --help
    archman plan
    archman sync --best-effort
    archman manifest check
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import click

from archman import __version__
from archman.core.observability.logging_config import configure_cli_logging

if TYPE_CHECKING:
    from archman.core.use_cases.sync import SyncResult

_STATUS_COLORS = {
    "complete": "green",
    "completed_with_failures": "yellow",
    "aborted": "red",
}


@click.group()
@click.version_option(version=__version__, prog_name="archman")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to archman.yml (default: $ARCHMAN_MANIFEST or ~/.config/archman/archman.yml).",
)
@click.option("--host", "hostname", default=None, help="Apply this host's section (default: hostname).")
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
    hostname: str | None,
) -> None:
    """archman — reconcile this host with its manifest."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None
    ctx.obj["hostname"] = hostname

    configure_cli_logging(debug=debug, verbose=verbose, quiet=quiet)


def _print_sync_result(ctx: click.Context, result: SyncResult, dry_run: bool, mock: bool) -> None:
    """Render a SyncResult for humans."""
    if result.errors:
        click.secho("❌ Invalid manifest:", fg="red")
        for err in result.errors:
            click.echo(f"   • {err}")
        sys.exit(1)
    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    plan = result.plan
    report = result.report
    assert plan is not None and report is not None

    mode_label = "[dry-run] " if dry_run else "[mock] " if mock else ""
    if not ctx.obj.get("quiet"):
        click.secho(f"\n⚡ {mode_label}sync — {result.host}", fg="cyan", bold=True)
        click.echo(f"   Resources: {result.resources} | Actions: {plan.total_actions}")
        for rid in result.snapshot.unknown if result.snapshot else []:
            click.secho(f"   ? {rid} could not be observed", fg="yellow")
        click.echo()

    if plan.is_empty:
        click.secho("   ✓ Nothing to do, host matches the manifest", fg="green")
        click.echo()
        return

    for r in report.results:
        line = r.action.describe()
        if r.ok:
            click.secho(f"   ✓ {line}", fg="green", nl=False)
            click.echo(f" ({r.duration_ms}ms)" if r.duration_ms else "")
        elif r.failed:
            click.secho(f"   ✗ {line}", fg="red")
            kind = r.error_kind.value if r.error_kind else "error"
            for err_line in (r.error or "").split("\n")[:5]:
                click.echo(f"     │ {kind}: {err_line}")
        else:
            click.secho(f"   ⊘ {line} ", fg="yellow", nl=False)
            click.echo(f"({r.reason})")

    click.echo()
    status = report.status.value
    click.secho(
        f"   Result: {status} — {report.applied}/{report.total} applied",
        fg=_STATUS_COLORS.get(status, "white"),
        bold=True,
    )
    click.echo()

    if not report.all_ok:
        sys.exit(1)


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option(
    "--best-effort/--fail-fast",
    default=False,
    help="Keep going after a failed action (default: stop at the first failure).",
)
@click.option("--dry-run", is_flag=True, help="Plan but don't execute.")
@click.option("--mock", is_flag=True, help="Use in-memory backends (no real changes).")
@click.pass_context
def sync(ctx: click.Context, as_json: bool, best_effort: bool, dry_run: bool, mock: bool) -> None:
    """Reconcile packages, links and services with the manifest.

    Examples:

        archman sync

        archman sync --best-effort

        archman sync --dry-run
    """
    from archman.core.models.run import ExecutionMode, RunConfig
    from archman.core.use_cases.sync import run_sync

    run_config = RunConfig(
        mode=ExecutionMode.BEST_EFFORT if best_effort else ExecutionMode.FAIL_FAST,
        dry_run=dry_run,
    )
    result = run_sync(
        config_path=ctx.obj.get("config_path"),
        run_config=run_config,
        hostname=ctx.obj.get("hostname"),
        mock_mode=mock,
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if not result.ok:
            sys.exit(1)
        return

    _print_sync_result(ctx, result, dry_run, mock)


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--mock", is_flag=True, help="Use in-memory backends.")
@click.pass_context
def plan(ctx: click.Context, as_json: bool, mock: bool) -> None:
    """Show the actions sync would apply (same as sync --dry-run)."""
    ctx.invoke(sync, as_json=as_json, best_effort=False, dry_run=True, mock=mock)


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--mock", is_flag=True, help="Use in-memory backends.")
@click.pass_context
def show(ctx: click.Context, as_json: bool, mock: bool) -> None:
    """Summarize declared vs. installed packages and pending changes."""
    from archman.core.use_cases.show import show_status

    result = show_status(
        config_path=ctx.obj.get("config_path"),
        hostname=ctx.obj.get("hostname"),
        mock_mode=mock,
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(1 if result.error else 0)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    rows = result.summary_rows()
    what_width = max(len(what) for what, _ in rows)
    n_width = max(len(str(n)) for _, n in rows)

    click.secho(f"\n📦 {result.host}", fg="cyan", bold=True)
    for what, n in rows:
        click.echo(f"   {what:<{what_width}} : {n:>{n_width}}")

    if ctx.obj.get("verbose"):
        for name in result.to_install:
            click.secho(f"     + {name}", fg="green")
        for name in result.to_remove:
            click.secho(f"     - {name}", fg="red")
        for name in result.unneeded or []:
            click.secho(f"     ~ {name} (unneeded)", fg="yellow")
    for rid in result.conflicts:
        click.secho(f"   ⚠️  {rid} is occupied by a non-symlink", fg="yellow")
    click.echo()


@cli.group()
def manifest() -> None:
    """Manifest commands."""


@manifest.command("check")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def manifest_check(ctx: click.Context, as_json: bool) -> None:
    """Validate archman.yml without touching the host."""
    from archman.core.use_cases.manifest_check import check_manifest

    result = check_manifest(
        config_path=ctx.obj.get("config_path"),
        hostname=ctx.obj.get("hostname"),
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.valid else 1)

    if result.valid:
        assert result.manifest is not None  # guaranteed when valid
        click.secho("✅ Manifest is valid", fg="green", bold=True)
        click.echo(f"   Host: {result.host}")
        click.echo(f"   Packages: {len(result.manifest.packages)}")
        click.echo(f"   Links: {len(result.manifest.links)}")
        click.echo(f"   Services: {len(result.manifest.services)}")
        if result.manifest.package_groups:
            click.echo(f"   Groups: {', '.join(result.manifest.package_groups)}")
    else:
        click.secho("❌ Manifest errors:", fg="red", bold=True)
        for err in result.errors:
            click.echo(f"   • {err}")

    if result.warnings:
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        for warn in result.warnings:
            click.echo(f"   • {warn}")

    click.echo()
    if not result.valid:
        sys.exit(1)


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("-n", "count", default=10, show_default=True, help="Number of runs to show.")
def history(as_json: bool, count: int) -> None:
    """Show recent reconciliation runs from the audit ledger."""
    from archman.core.persistence.audit import AuditWriter

    entries = AuditWriter().read_recent(count)

    if as_json:
        click.echo(json.dumps([e.model_dump(mode="json") for e in entries], indent=2))
        return

    if not entries:
        click.echo("No reconciliation runs recorded yet.")
        return

    for entry in entries:
        click.echo(f"{entry.timestamp}  {entry.operation_id}  ", nl=False)
        click.secho(entry.status, fg=_STATUS_COLORS.get(entry.status, "white"), nl=False)
        click.echo(f"  {entry.actions_applied}/{entry.actions_total} applied")
        for resource, error in zip(entry.resources_failed, entry.errors):
            click.echo(f"    ✗ {resource}: {error}")


if __name__ == "__main__":
    cli()
