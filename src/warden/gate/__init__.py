"""Quality gate for proposed code changes.

Pure, deterministic evaluation of unified diffs:

- diff: structural counts from a unified diff
- gate: metrics, rules and the PASS/REJECT/REVIEW decision
- report: Markdown justification
- integration: gate inputs for file-writing operations
"""

from warden.gate.diff import DiffAnalysis, analyze_diff
from warden.gate.gate import (
    BenefitEvidence,
    DepsDelta,
    Direction,
    ExportsDelta,
    GateDecision,
    GateMetrics,
    QualityGateInput,
    QualityGateResult,
    ReasonCode,
    RiskContext,
    RuleEvaluation,
    Severity,
    TestSignal,
    classify_patch,
)
from warden.gate.integration import (
    GateCheck,
    diff_for_write,
    gate_input_for_operation,
    should_run_gate,
)

__all__ = [
    "BenefitEvidence",
    "DepsDelta",
    "DiffAnalysis",
    "Direction",
    "ExportsDelta",
    "GateCheck",
    "GateDecision",
    "GateMetrics",
    "QualityGateInput",
    "QualityGateResult",
    "ReasonCode",
    "RiskContext",
    "RuleEvaluation",
    "Severity",
    "TestSignal",
    "analyze_diff",
    "classify_patch",
    "diff_for_write",
    "gate_input_for_operation",
    "should_run_gate",
]
