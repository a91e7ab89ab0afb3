"""CLI commands for operation classification.

Provides:
- warden classify: Risk tier and approval verdict for one operation
- warden rules: The active risk rule table
- warden loops: Failing operations repeating in the current window
"""

import click
from rich.table import Table

from warden.cli.helpers import console, get_system, parse_params, print_json, tier_label


@click.command()
@click.argument("name")
@click.option("--param", "-p", "params", multiple=True, help="Operation parameter as key=value")
@click.option("--json", "json_output", is_flag=True, help="Machine-readable output")
@click.pass_context
def classify(ctx, name: str, params: tuple[str, ...], json_output: bool) -> None:
    """Classify an operation and report whether it needs approval.

    \b
    Examples:

        warden classify read_file -p path=src/app.py
        warden classify run_command -p command="rm -rf build"
    """
    system = get_system(ctx)
    auth = system.authorize(name, parse_params(params))

    if json_output:
        print_json({
            "operation": name,
            "parameters": auth.operation.parameters,
            "tier": auth.tier.value,
            "rule_id": auth.rule_id,
            "trust": auth.trust,
            "requires_approval": auth.requires_approval,
            "loop_detected": auth.loop_detected,
            "reason": auth.reason,
        })
        return

    console.print(f"\n[bold]{name}[/bold] → {tier_label(auth.tier)}")
    console.print(f"  Rule: [cyan]{auth.rule_id}[/cyan]")
    console.print(f"  {auth.reason}")
    approval = "[red]required[/red]" if auth.requires_approval else "[green]not required[/green]"
    console.print(f"  Approval: {approval} (trust {auth.trust:.2f})")
    if auth.loop_detected:
        console.print("  [yellow]⚠ This operation is looping[/yellow]")


@click.command()
@click.option("--json", "json_output", is_flag=True, help="Machine-readable output")
@click.pass_context
def rules(ctx, json_output: bool) -> None:
    """Show the active risk rule table."""
    system = get_system(ctx)
    ruleset = system.classifier.ruleset

    if json_output:
        print_json({
            "version": ruleset.version,
            "command_keys": list(ruleset.command_keys),
            "content_keys": list(ruleset.content_keys),
            "rules": [rule.to_dict() for rule in ruleset.rules],
        })
        return

    table = Table(title=f"Risk Rules (v{ruleset.version})")
    table.add_column("ID", style="cyan")
    table.add_column("Kind", style="dim")
    table.add_column("Tier", justify="center")
    table.add_column("Reason")

    for rule in ruleset.rules:
        table.add_row(rule.id, rule.kind.value, tier_label(rule.tier), rule.reason)

    console.print(table)


@click.command()
@click.option("--json", "json_output", is_flag=True, help="Machine-readable output")
@click.pass_context
def loops(ctx, json_output: bool) -> None:
    """Show failing operations repeating in the current window."""
    system = get_system(ctx)
    reports = system.loops.find_loops()

    if json_output:
        print_json([
            {
                "tool_name": r.tool_name,
                "parameter_digest": r.parameter_digest,
                "outcome": r.outcome.value,
                "count": r.count,
            }
            for r in reports
        ])
        return

    if not reports:
        console.print("✅ No operational loops")
        return

    table = Table(title="Operational Loops")
    table.add_column("Operation", style="cyan")
    table.add_column("Parameters", style="dim")
    table.add_column("Outcome")
    table.add_column("Count", justify="right")

    for r in reports:
        table.add_row(r.tool_name, r.parameter_digest[:12], r.outcome.value, str(r.count))

    console.print(table)
    policy = system.loops.policy
    console.print(f"\n[dim]Window: last {policy.window} attempts, threshold {policy.threshold}[/dim]")
