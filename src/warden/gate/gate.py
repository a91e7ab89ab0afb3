"""Quality Gate - deterministic accept/reject/review for proposed code changes.

The gate scores a patch on three metrics, collects benefit evidence, runs a
fixed rule table and resolves the triggered rules into a single decision.
No model inference and no I/O: identical input always yields identical
output.

Metrics:
- M1 surface area: public exports and functions added
- M2 risk: what the change touches and what it does
- M3 cognitive load: function size, churn, coupling and duplication

Rules:
- Hard stops (HS1, HS2) block unless a structural improvement overrides them
- Structural rules (R6 duplication, R7 function size, R8 coupling)
- Maintainability rules (R9 thresholds, R10 tests)
- Tie-breakers (R1 confirmation, R2 param-aware risk, R5 dependencies)
"""

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from warden.gate.diff import DiffAnalysis, analyze_diff, as_text
from warden.gate.report import render_justification
from warden.guardrails.rules import DEFAULT_RULESET, RuleKind

logger = logging.getLogger(__name__)


# =============================================================================
# Input
# =============================================================================


@dataclass(frozen=True, slots=True)
class ExportsDelta:
    """Caller-supplied public API change, overriding the diff heuristics for M1."""

    added: int = 0
    removed: int = 0
    changed: int = 0


@dataclass(frozen=True, slots=True)
class DepsDelta:
    """Dependencies added and removed by the change."""

    added: tuple[str, ...] = ()
    removed: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class RiskContext:
    touches_core: bool = False
    touches_gates: bool = False
    touches_critical_files: bool = False


@dataclass(frozen=True, slots=True)
class TestSignal:
    __test__ = False

    new_tests: int = 0
    fixed_failing_test: bool = False
    coverage_delta: float | None = None
    """Coverage change in percentage points."""


@dataclass(frozen=True, slots=True)
class QualityGateInput:
    """A proposed change."""

    diff_text: str
    files_touched: tuple[str, ...] = ()
    exports_delta: ExportsDelta | None = None
    deps_delta: DepsDelta | None = None
    risk_context: RiskContext | None = None
    test_signal: TestSignal | None = None


# =============================================================================
# Output
# =============================================================================


class GateDecision(Enum):
    PASS = "PASS"
    REJECT = "REJECT"
    REVIEW = "REVIEW"


class ReasonCode(Enum):
    """Rule identifiers, in reporting order."""

    HS1 = "HS1"
    """Surface area increased without benefit."""

    HS2 = "HS2"
    """Coupling increase that makes testing harder."""

    R6 = "R6"
    R7 = "R7"
    R8 = "R8"
    R1 = "R1"
    R2 = "R2"
    R5 = "R5"
    R9 = "R9"
    R10 = "R10"
    TRADE_OFF = "TRADE_OFF"
    LARGE_CHANGE = "LARGE_CHANGE"
    NO_VIOLATIONS = "NO_VIOLATIONS"


class Direction(Enum):
    IMPROVEMENT = "improvement"
    VIOLATION = "violation"


class Severity(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


HARD_STOPS = frozenset({ReasonCode.HS1, ReasonCode.HS2})
STRUCTURAL = frozenset({ReasonCode.R6, ReasonCode.R7, ReasonCode.R8})
MAINTAINABILITY = frozenset({ReasonCode.R9, ReasonCode.R10})
TIE_BREAKERS = frozenset({ReasonCode.R1, ReasonCode.R2, ReasonCode.R5})

_ORDER = {code: i for i, code in enumerate(ReasonCode)}


@dataclass(frozen=True, slots=True)
class RuleEvaluation:
    """One triggered rule."""

    code: ReasonCode
    direction: Direction
    severity: Severity
    message: str

    @property
    def is_violation(self) -> bool:
        return self.direction is Direction.VIOLATION

    def to_dict(self) -> dict[str, str]:
        return {
            "code": self.code.value,
            "direction": self.direction.value,
            "severity": self.severity.value,
            "message": self.message,
        }


@dataclass(frozen=True, slots=True)
class GateMetrics:
    surface_area: float
    """M1."""

    risk: float
    """M2."""

    cognitive_load: float
    """M3."""

    def to_dict(self) -> dict[str, float]:
        return {"m1": self.surface_area, "m2": self.risk, "m3": self.cognitive_load}


@dataclass(frozen=True, slots=True)
class BenefitEvidence:
    test_coverage: float | None
    """E1: coverage delta, when the caller supplied one."""

    dependencies: int | None
    """E2: dependencies removed minus added, when the caller supplied a delta."""

    cognitive_load: float
    """E3: −M3."""

    risk: float
    """E5: −M2."""

    maintenance: int
    """E6: lines removed net of duplication and coupling added."""

    @property
    def strong(self) -> bool:
        return (
            (self.test_coverage is not None and self.test_coverage > 5)
            or (self.dependencies is not None and self.dependencies > 10)
            or self.maintenance > 20
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "e1_test_coverage": self.test_coverage,
            "e2_dependencies": self.dependencies,
            "e3_cognitive_load": self.cognitive_load,
            "e5_risk": self.risk,
            "e6_maintenance": self.maintenance,
            "strong": self.strong,
        }


@dataclass(frozen=True, slots=True)
class QualityGateResult:
    decision: GateDecision
    reason_codes: tuple[ReasonCode, ...]
    metrics: GateMetrics
    evidence: BenefitEvidence
    analysis: DiffAnalysis
    rules: tuple[RuleEvaluation, ...] = ()
    justification: str = ""
    review_questions: tuple[str, ...] = field(default=())

    @property
    def passed(self) -> bool:
        return self.decision is GateDecision.PASS

    def to_dict(self) -> dict[str, Any]:
        return {
            "decision": self.decision.value,
            "reason_codes": [code.value for code in self.reason_codes],
            "metrics": self.metrics.to_dict(),
            "evidence": self.evidence.to_dict(),
            "analysis": self.analysis.to_dict(),
            "rules": [rule.to_dict() for rule in self.rules],
            "justification": self.justification,
            "review_questions": list(self.review_questions),
        }


# =============================================================================
# Patterns
# =============================================================================

_DANGEROUS_EXTRA = re.compile(r"\.rm\(.*recursive.*true", re.IGNORECASE)
_GATE_BYPASS = re.compile(r"bypass(?:es|ing)?\b.*\bgates?\b|(?:#|//)\s*skip\b.*\bgates?\b", re.IGNORECASE)

_CONFIRMATION = re.compile(r"two[-_ ]step|confirmation|high_risk_token|setHighRiskToken", re.IGNORECASE)
_DANGEROUS_OPERATION = re.compile(
    r"case\s+['\"]delete_|shutil\.rmtree\s*\(|\.rm\(.*recursive.*true|\bos\.remove\s*\("
    r"|without\s+(?:a\s+)?gate|bypass(?:es|ing)?\b.*\bgate",
    re.IGNORECASE,
)
_GATE_CHECK = re.compile(
    r"check_(?:operational_)?gate|check(?:Operational)?Gate|\bauthorize\s*\(", re.IGNORECASE
)
_PARAM_AWARE = re.compile(r"params?\w*.*risk|classify\w*\(.*param", re.IGNORECASE)

_PRIVATE_IMPORT = re.compile(
    r"^\s*from\s+[\w.]*\._\w+[\w.]*\s+import\b"
    r"|^\s*import\s+[\w.]*\._\w+"
    r"|\bfrom\s+['\"][^'\"]*/(?:_[\w-]+|[\w-]+_v\d+)['\"]"
)
_CONFIG_THRESHOLD = re.compile(r"config.*threshold", re.IGNORECASE)
_CONFIG_FILE = re.compile(r"(?:^|/)config/[^/]+\.(?:json|ya?ml|toml)$")
_IDENTICAL_REMOVED = re.compile(r"identical.*removed", re.IGNORECASE)

_DENYLIST = tuple(re.compile(r.pattern, re.IGNORECASE) for r in DEFAULT_RULESET.of_kind(RuleKind.DENYLIST))

OVERSIZED_FUNCTION = 150
LONG_FUNCTION = 100


# =============================================================================
# Classification
# =============================================================================


def classify_patch(gate_input: QualityGateInput) -> QualityGateResult:
    """Decide PASS, REJECT or REVIEW for a proposed change."""
    text = as_text(gate_input.diff_text)
    analysis = analyze_diff(text)
    added, removed = _changed_lines(text)

    metrics = _compute_metrics(gate_input, analysis, added)
    evidence = _collect_evidence(gate_input, analysis, metrics)
    rules = tuple(_evaluate_rules(gate_input, text, analysis, metrics, evidence, added, removed))

    decision, codes = _decide(rules, metrics, evidence)
    questions = _review_questions(codes, metrics)
    justification = render_justification(decision, codes, rules, metrics, evidence, analysis)

    logger.debug(
        "Quality gate %s (%s): M1=%.2f M2=%.2f M3=%.2f",
        decision.value,
        ", ".join(code.value for code in codes),
        metrics.surface_area,
        metrics.risk,
        metrics.cognitive_load,
    )
    return QualityGateResult(
        decision=decision,
        reason_codes=codes,
        metrics=metrics,
        evidence=evidence,
        analysis=analysis,
        rules=rules,
        justification=justification,
        review_questions=questions,
    )


def _changed_lines(diff_text: str) -> tuple[list[str], list[str]]:
    """Added and removed line contents, headers excluded."""
    added: list[str] = []
    removed: list[str] = []
    for line in diff_text.splitlines():
        if line.startswith(("+++ ", "--- ")):
            continue
        if line.startswith("+"):
            added.append(line[1:])
        elif line.startswith("-"):
            removed.append(line[1:])
    return added, removed


def _any_match(pattern: re.Pattern[str], lines: Iterable[str]) -> bool:
    return any(pattern.search(line) for line in lines)


def _compute_metrics(
    gate_input: QualityGateInput,
    analysis: DiffAnalysis,
    added: list[str],
) -> GateMetrics:
    if gate_input.exports_delta is not None:
        delta = gate_input.exports_delta
        m1 = float(delta.added - delta.removed + delta.changed)
    else:
        m1 = float(analysis.exports_net + analysis.functions_net)

    ctx = gate_input.risk_context or RiskContext()
    m2 = 0.0
    if ctx.touches_core:
        m2 += 0.5
    if ctx.touches_gates:
        m2 += 0.3
    if ctx.touches_critical_files:
        m2 += 0.4
    if analysis.duplication_signals:
        m2 += 0.5
    if any(p.search(line) for p in _DENYLIST for line in added) or _any_match(_DANGEROUS_EXTRA, added):
        m2 += 3.0
    if _any_match(_GATE_BYPASS, added):
        m2 += 2.0
    if analysis.lines_net < 0:
        m2 -= 0.1

    m3 = 0.0
    if analysis.max_function_size > OVERSIZED_FUNCTION:
        m3 += 2.0
    elif analysis.max_function_size > LONG_FUNCTION:
        m3 += 1.0
    m3 += analysis.lines_net / 1000
    m3 += 0.1 * analysis.imports_added
    m3 += 0.4 * len(analysis.duplication_signals)
    if analysis.lines_net < 0:
        m3 += analysis.lines_net / 500
    m3 += 0.15 * analysis.exports_added

    return GateMetrics(surface_area=m1, risk=round(m2, 6), cognitive_load=round(m3, 6))


def _collect_evidence(
    gate_input: QualityGateInput,
    analysis: DiffAnalysis,
    metrics: GateMetrics,
) -> BenefitEvidence:
    signal = gate_input.test_signal
    deps = gate_input.deps_delta
    maintenance = (analysis.lines_removed - analysis.lines_added) - (
        20 * len(analysis.duplication_signals) + 5 * analysis.imports_added
    )
    return BenefitEvidence(
        test_coverage=signal.coverage_delta if signal is not None else None,
        dependencies=len(deps.removed) - len(deps.added) if deps is not None else None,
        cognitive_load=-metrics.cognitive_load,
        risk=-metrics.risk,
        maintenance=maintenance,
    )


def _evaluate_rules(
    gate_input: QualityGateInput,
    text: str,
    analysis: DiffAnalysis,
    metrics: GateMetrics,
    evidence: BenefitEvidence,
    added: list[str],
    removed: list[str],
):
    """Yield every triggered rule."""
    improve, violate = Direction.IMPROVEMENT, Direction.VIOLATION
    high, medium, low = Severity.HIGH, Severity.MEDIUM, Severity.LOW

    # Hard stops
    if metrics.surface_area > 0 and metrics.risk >= 0 and metrics.cognitive_load > 0 and not evidence.strong:
        yield RuleEvaluation(
            ReasonCode.HS1, violate, high,
            f"Surface area +{metrics.surface_area:g} with no benefit evidence",
        )
    if analysis.imports_added > analysis.imports_removed and analysis.imports_added > 2:
        yield RuleEvaluation(
            ReasonCode.HS2, violate, high,
            f"{analysis.imports_added} imports added; coupling makes testing harder",
        )

    # R6 duplication
    if analysis.lines_removed > 20 and (analysis.duplication_removed or _IDENTICAL_REMOVED.search(text)):
        yield RuleEvaluation(
            ReasonCode.R6, improve, medium,
            f"Removes {analysis.lines_removed} lines of duplicated code",
        )
    elif analysis.duplication_signals:
        yield RuleEvaluation(
            ReasonCode.R6, violate, medium,
            f"Adds duplication ({len(analysis.duplication_signals)} signal(s))",
        )

    # R7 function size
    if analysis.functions_added > analysis.functions_removed and analysis.lines_net < 0:
        yield RuleEvaluation(
            ReasonCode.R7, improve, medium,
            f"Decomposes into {analysis.functions_added} functions while shrinking by {-analysis.lines_net} lines",
        )
    elif analysis.max_function_size > OVERSIZED_FUNCTION:
        yield RuleEvaluation(
            ReasonCode.R7, violate, medium,
            f"Adds a {analysis.max_function_size}-line function (limit {OVERSIZED_FUNCTION})",
        )
    elif analysis.functions_removed >= 2 and analysis.functions_added == 0 and analysis.lines_net > 0:
        yield RuleEvaluation(
            ReasonCode.R7, violate, medium,
            f"Inlines {analysis.functions_removed} helpers into their callers",
        )

    # R8 coupling
    if analysis.imports_removed > analysis.imports_added:
        yield RuleEvaluation(
            ReasonCode.R8, improve, medium,
            f"Removes {analysis.imports_removed - analysis.imports_added} net imports",
        )
    elif analysis.imports_added > analysis.imports_removed + 2:
        yield RuleEvaluation(
            ReasonCode.R8, violate, medium,
            f"Adds {analysis.imports_added - analysis.imports_removed} net imports",
        )
    elif _any_match(_PRIVATE_IMPORT, added):
        yield RuleEvaluation(ReasonCode.R8, violate, medium, "Imports a private module directly")

    # R9 thresholds
    files = set(gate_input.files_touched) | set(analysis.files)
    if _any_match(_CONFIG_THRESHOLD, added) or any(_CONFIG_FILE.search(f) for f in files):
        yield RuleEvaluation(ReasonCode.R9, improve, low, "Moves thresholds into configuration")
    elif analysis.thresholds_added > 0 and analysis.thresholds_removed == 0:
        yield RuleEvaluation(
            ReasonCode.R9, violate, low,
            f"Hard-codes {analysis.thresholds_added} threshold value(s)",
        )

    # R10 tests
    if analysis.source_tests_removed > 0 and analysis.assertions_added > 0:
        yield RuleEvaluation(
            ReasonCode.R10, improve, low,
            "Replaces source-inspecting tests with behavioral assertions",
        )
    elif analysis.source_tests_added > 0:
        yield RuleEvaluation(
            ReasonCode.R10, violate, low,
            f"Adds {analysis.source_tests_added} test line(s) that read source text",
        )

    # Tie-breakers
    if _any_match(_DANGEROUS_OPERATION, added) and not _GATE_CHECK.search(text):
        yield RuleEvaluation(ReasonCode.R1, violate, high, "Dangerous operation added without a gate check")
    elif _any_match(_CONFIRMATION, added):
        yield RuleEvaluation(ReasonCode.R1, improve, low, "Adds two-step confirmation")

    if _any_match(_PARAM_AWARE, added):
        yield RuleEvaluation(ReasonCode.R2, improve, low, "Classifies risk from parameters")

    deps = gate_input.deps_delta
    if deps is not None and len(deps.removed) > len(deps.added):
        yield RuleEvaluation(
            ReasonCode.R5, improve, low,
            f"Removes {len(deps.removed) - len(deps.added)} net dependencies",
        )


def _decide(
    rules: tuple[RuleEvaluation, ...],
    metrics: GateMetrics,
    evidence: BenefitEvidence,
) -> tuple[GateDecision, tuple[ReasonCode, ...]]:
    def codes(selected: Iterable[RuleEvaluation]) -> tuple[ReasonCode, ...]:
        return tuple(sorted({r.code for r in selected}, key=_ORDER.__getitem__))

    structural_improvements = [r for r in rules if r.code in STRUCTURAL and not r.is_violation]
    if structural_improvements:
        return GateDecision.PASS, codes(structural_improvements)

    structural_violations = [
        r
        for r in rules
        if r.is_violation
        and (
            r.code in STRUCTURAL
            or r.code in HARD_STOPS
            or (r.code in TIE_BREAKERS and r.severity is Severity.HIGH)
        )
    ]

    maintainability_improvements = [r for r in rules if r.code in MAINTAINABILITY and not r.is_violation]
    if maintainability_improvements and not structural_violations:
        return GateDecision.PASS, codes(maintainability_improvements)

    if structural_violations:
        if evidence.strong:
            return GateDecision.REVIEW, codes(structural_violations) + (ReasonCode.TRADE_OFF,)
        return GateDecision.REJECT, codes(structural_violations)

    maintainability_violations = [r for r in rules if r.code in MAINTAINABILITY and r.is_violation]
    if maintainability_violations:
        return GateDecision.REJECT, codes(maintainability_violations)

    if metrics.surface_area > 50 and metrics.cognitive_load > 1.0 and not evidence.strong:
        return GateDecision.REVIEW, (ReasonCode.LARGE_CHANGE,)

    return GateDecision.PASS, (ReasonCode.NO_VIOLATIONS,)


def _review_questions(codes: tuple[ReasonCode, ...], metrics: GateMetrics) -> tuple[str, ...]:
    if ReasonCode.TRADE_OFF in codes:
        return (
            "Does the benefit evidence outweigh the structural cost?",
            "Can the violation be removed without losing the benefit?",
            "Is there a smaller change that delivers the same benefit?",
        )
    if ReasonCode.LARGE_CHANGE in codes:
        return (
            f"Surface area grows by {metrics.surface_area:g}. Can this be split into smaller changes?",
            f"Cognitive load is {metrics.cognitive_load:.0%} of the review budget. Is it justified?",
            "Were smaller alternatives considered?",
        )
    return ()
