"""Markdown justification for quality gate decisions."""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from warden.gate.diff import DiffAnalysis
    from warden.gate.gate import (
        BenefitEvidence,
        GateDecision,
        GateMetrics,
        ReasonCode,
        RuleEvaluation,
    )

_RATIONALE = {
    "PASS": "No blocking rule triggered, or a structural improvement outweighs the violations.",
    "REJECT": "A structural or maintainability violation triggered without enough benefit evidence.",
    "REVIEW": "The change needs a human decision before it is applied.",
}


def _fmt(value: float | int | None) -> str:
    if value is None:
        return "n/a"
    if isinstance(value, float):
        return f"{value:+.2f}"
    return f"{value:+d}"


def render_justification(
    decision: "GateDecision",
    codes: tuple["ReasonCode", ...],
    rules: tuple["RuleEvaluation", ...],
    metrics: "GateMetrics",
    evidence: "BenefitEvidence",
    analysis: "DiffAnalysis",
) -> str:
    """Render the justification document for one decision.

    The three free-text sections are left for the author of the change to
    fill in before review.
    """
    lines = [
        f"## Quality Gate: {decision.value}",
        "",
        f"**Reason codes:** {', '.join(code.value for code in codes)}",
        "",
        "### Metrics",
        "",
        "| Metric | Value |",
        "|---|---|",
        f"| M1 surface area | {_fmt(metrics.surface_area)} |",
        f"| M2 risk | {_fmt(metrics.risk)} |",
        f"| M3 cognitive load | {_fmt(metrics.cognitive_load)} |",
        f"| Lines | +{analysis.lines_added} / -{analysis.lines_removed} |",
        f"| Largest function | {analysis.max_function_size} lines |",
        "",
        "### Triggered rules",
        "",
    ]

    if rules:
        for rule in rules:
            mark = "✗" if rule.is_violation else "✓"
            lines.append(f"- {mark} **{rule.code.value}** ({rule.severity.value}): {rule.message}")
    else:
        lines.append("- none")

    lines += [
        "",
        "### Benefit evidence",
        "",
        f"- E1 test coverage: {_fmt(evidence.test_coverage)}",
        f"- E2 dependencies: {_fmt(evidence.dependencies)}",
        f"- E3 cognitive load: {_fmt(evidence.cognitive_load)}",
        f"- E5 risk: {_fmt(evidence.risk)}",
        f"- E6 maintenance: {_fmt(evidence.maintenance)}",
        f"- Strong benefit: {'yes' if evidence.strong else 'no'}",
        "",
        "### Rationale",
        "",
        _RATIONALE[decision.value],
        "",
        "### Alternative considered",
        "",
        "_To be completed by the author._",
        "",
        "### Why benefit exceeds cost",
        "",
        "_To be completed by the author._",
        "",
        "### Why this change is non-trivial",
        "",
        "_To be completed by the author._",
        "",
    ]
    return "\n".join(lines)
