"""CLI commands for the rollback guardian.

Provides:
- warden snapshot take: Capture the self-configuration and metrics
- warden snapshot list: Show stored snapshots
- warden snapshot check: Compare metrics and roll back on degradation
- warden snapshot rollback: Restore a specific snapshot
- warden snapshot clear: Drop all snapshots
"""

import click
from rich.table import Table

from warden.cli.helpers import console, get_system, print_json, readiness_label
from warden.guardrails.types import RollbackResult


@click.group()
def snapshot() -> None:
    """Rollback Guardian: revert harmful self-modification.

    \b
    Examples:

        warden snapshot take "enable web actions"
        warden snapshot check
        warden snapshot rollback 0
    """


@snapshot.command()
@click.argument("reason")
@click.pass_context
def take(ctx, reason: str) -> None:
    """Snapshot the self-configuration before changing it."""
    result = get_system(ctx).snapshot(reason)
    if result.taken:
        console.print(f"📸 Snapshot {result.index} taken: {reason}")
    else:
        console.print(f"[yellow]No snapshot taken: {result.reason}[/yellow]")


@snapshot.command(name="list")
@click.option("--json", "json_output", is_flag=True, help="Machine-readable output")
@click.pass_context
def list_snapshots(ctx, json_output: bool) -> None:
    """Show stored snapshots, oldest first."""
    snapshots = get_system(ctx).guardian.list_snapshots()

    if json_output:
        print_json([s.to_dict() for s in snapshots])
        return

    if not snapshots:
        console.print("📋 No snapshots")
        return

    table = Table(title="Rollback Snapshots")
    table.add_column("#", justify="right", style="cyan")
    table.add_column("Taken")
    table.add_column("Reason")
    table.add_column("Trust", justify="right")
    table.add_column("C_eff", justify="right")
    table.add_column("Stability", justify="right")
    table.add_column("Readiness")

    for i, s in enumerate(snapshots):
        table.add_row(
            str(i),
            s.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            s.reason,
            f"{s.derived.trust:.3f}",
            f"{s.derived.c_effective:.3f}",
            f"{s.derived.stability:.3f}",
            readiness_label(s.derived.readiness),
        )

    console.print(table)


@snapshot.command()
@click.pass_context
def check(ctx) -> None:
    """Compare metrics with the latest snapshot and roll back on degradation."""
    _print_result(get_system(ctx).check_and_rollback())


@snapshot.command()
@click.argument("index", type=int)
@click.pass_context
def rollback(ctx, index: int) -> None:
    """Restore the self-configuration from snapshot INDEX."""
    result = get_system(ctx).guardian.rollback_to(index)
    if not result.rolled_back:
        console.print(f"[red]✗ {result.reason}[/red]")
        ctx.exit(1)
    _print_result(result)


@snapshot.command()
@click.option("--yes", is_flag=True, help="Skip confirmation")
@click.pass_context
def clear(ctx, yes: bool) -> None:
    """Drop all snapshots."""
    if not yes:
        click.confirm("Delete all rollback snapshots?", abort=True)
    get_system(ctx).guardian.clear_snapshots()
    console.print("✅ Snapshots cleared")


def _print_result(result: RollbackResult) -> None:
    if result.rolled_back:
        console.print(f"↩️  [yellow]Rolled back[/yellow]: {result.reason}")
    else:
        console.print(f"✅ {result.reason}")
    for reason in result.reasons:
        console.print(f"  [dim]- {reason}[/dim]")
