"""CLI command for the quality gate.

Exit status: 0 for PASS and REVIEW, 1 for REJECT.
"""

import click
from rich.markdown import Markdown
from rich.table import Table

from warden.cli.helpers import console, print_json
from warden.gate.gate import (
    DepsDelta,
    GateDecision,
    QualityGateInput,
    RiskContext,
    TestSignal,
    classify_patch,
)

DECISION_STYLES = {
    GateDecision.PASS: "green",
    GateDecision.REVIEW: "yellow",
    GateDecision.REJECT: "red",
}


@click.command()
@click.argument("diff_file", type=click.File("r", encoding="utf-8"))
@click.option("--file", "files", multiple=True, help="Path touched by the change (repeatable)")
@click.option("--coverage-delta", type=float, default=None, help="Coverage change in points")
@click.option("--dep-added", multiple=True, help="Dependency added (repeatable)")
@click.option("--dep-removed", multiple=True, help="Dependency removed (repeatable)")
@click.option("--core", is_flag=True, help="Change touches the agent core")
@click.option("--gates", is_flag=True, help="Change touches guardrail code")
@click.option("--critical", is_flag=True, help="Change touches critical files")
@click.option("--json", "json_output", is_flag=True, help="Machine-readable output")
@click.option("--justification", is_flag=True, help="Print the full justification")
@click.pass_context
def gate(
    ctx,
    diff_file,
    files: tuple[str, ...],
    coverage_delta: float | None,
    dep_added: tuple[str, ...],
    dep_removed: tuple[str, ...],
    core: bool,
    gates: bool,
    critical: bool,
    json_output: bool,
    justification: bool,
) -> None:
    """Run the quality gate on a unified diff (use - for stdin).

    \b
    Examples:

        git diff | warden gate -
        warden gate change.diff --coverage-delta 7.5
    """
    gate_input = QualityGateInput(
        diff_text=diff_file.read(),
        files_touched=files,
        deps_delta=DepsDelta(added=dep_added, removed=dep_removed) if dep_added or dep_removed else None,
        risk_context=RiskContext(touches_core=core, touches_gates=gates, touches_critical_files=critical),
        test_signal=TestSignal(coverage_delta=coverage_delta) if coverage_delta is not None else None,
    )
    result = classify_patch(gate_input)

    if json_output:
        print_json(result.to_dict())
    elif justification:
        console.print(Markdown(result.justification))
    else:
        style = DECISION_STYLES[result.decision]
        codes = ", ".join(code.value for code in result.reason_codes)
        console.print(f"\n[bold {style}]{result.decision.value}[/bold {style}] ({codes})\n")

        table = Table(show_header=False, box=None, padding=(0, 2))
        table.add_column("Metric", style="dim")
        table.add_column("Value", justify="right")
        table.add_row("M1 surface area", f"{result.metrics.surface_area:+.2f}")
        table.add_row("M2 risk", f"{result.metrics.risk:+.2f}")
        table.add_row("M3 cognitive load", f"{result.metrics.cognitive_load:+.2f}")
        table.add_row("Lines", f"+{result.analysis.lines_added} / -{result.analysis.lines_removed}")
        console.print(table)

        for rule in result.rules:
            mark = "[red]✗[/red]" if rule.is_violation else "[green]✓[/green]"
            console.print(f"  {mark} {rule.code.value}: {rule.message}")

        for question in result.review_questions:
            console.print(f"  [yellow]?[/yellow] {question}")

    if result.decision is GateDecision.REJECT:
        ctx.exit(1)
