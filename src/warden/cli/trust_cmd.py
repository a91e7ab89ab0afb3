"""CLI commands for the trust ledger.

Provides:
- warden trust show: Counters and derived metrics
- warden trust record: Record an executed operation's outcome
- warden trust tests: Record a test run
- warden trust reset: Start a fresh trust window
"""

import click
from rich.table import Table

from warden.cli.helpers import (
    console,
    get_system,
    parse_params,
    print_json,
    readiness_label,
    tier_label,
)
from warden.guardrails.types import OperationOutcome, RiskTier


@click.group()
def trust() -> None:
    """Trust Ledger: autonomy earned from evidence.

    \b
    Examples:

        warden trust show
        warden trust record write_file -p path=src/app.py
        warden trust record run_command -p command=make -o other_error
    """


@trust.command()
@click.option("--json", "json_output", is_flag=True, help="Machine-readable output")
@click.pass_context
def show(ctx, json_output: bool) -> None:
    """Show counters and derived metrics."""
    system = get_system(ctx)
    metrics = system.ledger.metrics()
    derived = system.ledger.derive(metrics)

    if json_output:
        print_json({"metrics": metrics.to_dict(), "derived": derived.to_dict()})
        return

    console.print("\n🛡️ [bold]Trust Ledger[/bold]\n")

    if not derived.has_minimum_data:
        needed = system.ledger.policy.min_operations - metrics.calls_total
        console.print(f"[yellow]Cold start: {needed} more operation(s) before trust is extended[/yellow]\n")

    summary = Table(show_header=False, box=None, padding=(0, 2))
    summary.add_column("Metric", style="dim")
    summary.add_column("Value", justify="right")
    summary.add_row("Trust", f"{derived.trust:.3f}")
    summary.add_row("C_effective", f"{derived.c_effective:.3f}")
    summary.add_row("Stability", f"{derived.stability:.3f}")
    summary.add_row("Readiness", readiness_label(derived.readiness))
    summary.add_row("Validity", f"{metrics.validity_rate:.0%}")
    summary.add_row("Loops detected", str(metrics.loop_detections))
    summary.add_row("Errors", str(metrics.total_errors))
    summary.add_row("Error-free steps", str(metrics.error_free_steps))
    console.print(summary)

    table = Table(title="Per-tier outcomes")
    table.add_column("Tier")
    table.add_column("Valid", justify="right")
    table.add_column("Invalid", justify="right")
    table.add_column("Success", justify="right")
    for tier in RiskTier:
        counters = metrics.tier(tier)
        table.add_row(
            tier_label(tier),
            str(counters.calls_valid),
            str(counters.calls_invalid),
            f"{counters.success_ratio:.0%}",
        )
    console.print()
    console.print(table)


@trust.command()
@click.argument("name")
@click.option("--param", "-p", "params", multiple=True, help="Operation parameter as key=value")
@click.option(
    "--outcome",
    "-o",
    type=click.Choice([o.value for o in OperationOutcome]),
    default=OperationOutcome.SUCCESS.value,
    show_default=True,
)
@click.pass_context
def record(ctx, name: str, params: tuple[str, ...], outcome: str) -> None:
    """Record an executed operation's outcome."""
    system = get_system(ctx)
    parameters = parse_params(params)
    result = OperationOutcome(outcome)
    tier = system.classifier.classify(name, parameters)

    metrics = system.record(name, parameters, result)
    derived = system.ledger.derive(metrics)

    console.print(f"Recorded {name} ({tier_label(tier)}) → {result.value}")
    console.print(f"  Trust {derived.trust:.3f}, readiness {readiness_label(derived.readiness)}")
    if not result.is_valid and system.loops.detect(name, parameters, result):
        console.print("  [yellow]⚠ Operational loop detected[/yellow]")


@trust.command()
@click.argument("passed", type=click.IntRange(min=0))
@click.argument("failed", type=click.IntRange(min=0))
@click.pass_context
def tests(ctx, passed: int, failed: int) -> None:
    """Record a test run (PASSED FAILED)."""
    system = get_system(ctx)
    metrics = system.ledger.record_test_results(passed, failed)
    console.print(f"Test pass rate: {metrics.test_pass_rate:.0%}")


@trust.command()
@click.option("--yes", is_flag=True, help="Skip confirmation")
@click.pass_context
def reset(ctx, yes: bool) -> None:
    """Start a fresh trust window (clears counters and loop history)."""
    if not yes:
        click.confirm("Reset all trust counters and loop history?", abort=True)
    get_system(ctx).ledger.reset()
    console.print("✅ Trust ledger reset")
