"""Tests for the quality gate.

Covers:
- Decision precedence (structural override, trade-off review, large change)
- Each rule family on a representative diff
- Purity and malformed input
- Justification and review questions
"""

import pytest

from warden.gate.gate import (
    DepsDelta,
    Direction,
    ExportsDelta,
    GateDecision,
    QualityGateInput,
    ReasonCode,
    RiskContext,
    Severity,
    TestSignal,
    classify_patch,
)


def _diff(path: str, added: list[str] = (), removed: list[str] = (), context: list[str] = ()) -> str:
    lines = [f"--- a/{path}", f"+++ b/{path}", "@@ -1,1 +1,1 @@"]
    lines += [" " + line for line in context]
    lines += ["-" + line for line in removed]
    lines += ["+" + line for line in added]
    return "\n".join(lines) + "\n"


def _big_function(lines: int = 200) -> list[str]:
    return ["def handle(request):"] + [
        f"    value_{i} = request.get('key_{i}')" for i in range(lines - 1)
    ]


BLOCK = [
    "    total += row.amount",
    "    total -= row.discount",
    "    count += 1",
    "    seen.add(row.key)",
    "    log.debug(row)",
]

# No public surface change, so M1 stays at zero
NEUTRAL = ExportsDelta()

DECOMPOSITION = _diff(
    "src/pipeline.py",
    added=[
        "def process(items):",
        "    prepare(items)",
        "    finish(items)",
        "",
        "def prepare(items):",
        *[f"    step_{i}(items)" for i in range(10)],
        "",
        "def finish(items):",
        *[f"    step_{i}(items)" for i in range(10, 20)],
    ],
    removed=["def process(items):"] + [f"    step_{i}(items)" for i in range(40)],
)


class TestNoChange:
    def test_empty_diff_passes(self) -> None:
        """No lines changed: PASS with NO_VIOLATIONS."""
        result = classify_patch(QualityGateInput(diff_text=""))

        assert result.decision is GateDecision.PASS
        assert result.reason_codes == (ReasonCode.NO_VIOLATIONS,)
        assert result.analysis.lines_added == 0
        assert result.analysis.lines_removed == 0
        assert result.rules == ()

    def test_context_only_diff_passes(self) -> None:
        result = classify_patch(QualityGateInput(diff_text=_diff("src/app.py", context=["x = 1"])))
        assert result.reason_codes == (ReasonCode.NO_VIOLATIONS,)

    @pytest.mark.parametrize("value", [None, 17, b"\xff\xfe"])
    def test_malformed_diff_is_neutral(self, value) -> None:
        """Malformed input never raises."""
        result = classify_patch(QualityGateInput(diff_text=value))  # type: ignore[arg-type]

        assert result.decision is GateDecision.PASS
        assert result.metrics.surface_area == 0
        assert result.metrics.risk == 0
        assert result.metrics.cognitive_load == 0


class TestPurity:
    def test_identical_input_identical_output(self) -> None:
        """classify_patch is a pure function of its input."""
        gate_input = QualityGateInput(
            diff_text=_diff("src/app.py", added=_big_function(160), removed=["import os"]),
            files_touched=("src/app.py",),
            risk_context=RiskContext(touches_core=True),
            test_signal=TestSignal(coverage_delta=2.0),
        )

        first = classify_patch(gate_input)
        second = classify_patch(gate_input)

        assert first == second
        assert first.to_dict() == second.to_dict()


class TestDuplicationRule:
    def test_removing_duplicated_block_passes(self) -> None:
        """25 removed lines duplicating surviving code: PASS with R6, M2 and M3 not positive."""
        removed: list[str] = []
        for k in range(3):
            removed += [f"def summarize_{k}(rows):", "    total = 0", *BLOCK, "    return total"]
        removed.append("")
        assert len(removed) == 25

        diff = _diff(
            "src/report.py",
            context=["def summarize(rows):", "    total = 0", *BLOCK, "    return total"],
            removed=removed,
        )
        result = classify_patch(QualityGateInput(diff_text=diff))

        assert result.decision is GateDecision.PASS
        assert ReasonCode.R6 in result.reason_codes
        assert result.metrics.risk <= 0
        assert result.metrics.cognitive_load <= 0

    def test_adding_duplicated_block_rejects(self) -> None:
        diff = _diff("src/report.py", added=["def merge(rows):", *BLOCK, *BLOCK])
        result = classify_patch(QualityGateInput(diff_text=diff))

        assert result.decision is GateDecision.REJECT
        assert ReasonCode.R6 in result.reason_codes
        assert result.metrics.risk >= 0.5


class TestFunctionSizeRule:
    def test_oversized_function_rejects(self) -> None:
        """A new 200-line function with no benefit evidence is rejected with R7."""
        result = classify_patch(QualityGateInput(diff_text=_diff("src/big.py", added=_big_function())))

        assert result.analysis.max_function_size == 200
        assert result.decision is GateDecision.REJECT
        assert ReasonCode.R7 in result.reason_codes
        r7 = next(r for r in result.rules if r.code is ReasonCode.R7)
        assert r7.direction is Direction.VIOLATION

    def test_strong_evidence_turns_reject_into_review(self) -> None:
        """Coverage gains above 5 points make it a trade-off for a human."""
        result = classify_patch(
            QualityGateInput(
                diff_text=_diff("src/big.py", added=_big_function()),
                test_signal=TestSignal(new_tests=4, coverage_delta=12.0),
            )
        )

        assert result.decision is GateDecision.REVIEW
        assert result.reason_codes[-1] is ReasonCode.TRADE_OFF
        assert ReasonCode.R7 in result.reason_codes
        assert ReasonCode.HS1 not in result.reason_codes
        assert len(result.review_questions) == 3

    def test_decomposition_passes(self) -> None:
        """Splitting into more, smaller functions while shrinking is a structural improvement."""
        result = classify_patch(QualityGateInput(diff_text=DECOMPOSITION))

        assert result.decision is GateDecision.PASS
        assert result.reason_codes == (ReasonCode.R7,)


class TestStructuralOverride:
    def test_structural_improvement_overrides_hard_stop(self) -> None:
        """A positive structural rule wins even when a hard stop triggered."""
        result = classify_patch(
            QualityGateInput(diff_text=DECOMPOSITION, risk_context=RiskContext(touches_core=True))
        )

        triggered = {r.code for r in result.rules}
        assert ReasonCode.HS1 in triggered
        assert result.decision is GateDecision.PASS
        assert result.reason_codes == (ReasonCode.R7,)


class TestCouplingRule:
    def test_many_new_imports_reject(self) -> None:
        added = ["import json", "import os", "import re", "import sys"]
        result = classify_patch(QualityGateInput(diff_text=_diff("src/app.py", added=added)))

        assert result.decision is GateDecision.REJECT
        assert ReasonCode.HS2 in result.reason_codes
        assert ReasonCode.R8 in result.reason_codes

    def test_private_module_import_rejects(self) -> None:
        added = ["from warden.gate._internal import helper"]
        result = classify_patch(
            QualityGateInput(diff_text=_diff("src/app.py", added=added), exports_delta=NEUTRAL)
        )

        assert result.decision is GateDecision.REJECT
        assert result.reason_codes == (ReasonCode.R8,)


class TestMaintainabilityRules:
    def test_hardcoded_threshold_rejects(self) -> None:
        result = classify_patch(
            QualityGateInput(
                diff_text=_diff("src/retry.py", added=["RETRY_THRESHOLD = 0.75"]),
                exports_delta=NEUTRAL,
            )
        )

        assert result.decision is GateDecision.REJECT
        assert result.reason_codes == (ReasonCode.R9,)

    def test_threshold_moved_to_config_passes(self) -> None:
        diff = _diff(
            "src/retry.py",
            added=["threshold = config.retry_threshold"],
            removed=["threshold = 0.75"],
        )
        result = classify_patch(QualityGateInput(diff_text=diff, exports_delta=NEUTRAL))

        assert result.decision is GateDecision.PASS
        assert result.reason_codes == (ReasonCode.R9,)

    def test_source_inspecting_test_rejects(self) -> None:
        added = [
            "def test_store_uses_lock():",
            "    source = inspect.getsource(GuardrailStore._write)",
            "    assert 'with self._lock' in source",
        ]
        result = classify_patch(
            QualityGateInput(diff_text=_diff("tests/test_store.py", added=added), exports_delta=NEUTRAL)
        )

        assert result.decision is GateDecision.REJECT
        assert result.reason_codes == (ReasonCode.R10,)

    def test_behavioral_test_replacement_passes(self) -> None:
        diff = _diff(
            "tests/test_store.py",
            removed=["    source = inspect.getsource(GuardrailStore._write)"],
            added=["    store.save_metrics(metrics)", "    assert store.load_metrics() == metrics"],
        )
        result = classify_patch(QualityGateInput(diff_text=diff, exports_delta=NEUTRAL))

        assert result.decision is GateDecision.PASS
        assert result.reason_codes == (ReasonCode.R10,)


class TestTieBreakers:
    def test_dangerous_operation_without_gate_rejects(self) -> None:
        added = ["    shutil.rmtree(workspace)"]
        result = classify_patch(
            QualityGateInput(diff_text=_diff("src/cleanup.py", added=added), exports_delta=NEUTRAL)
        )

        assert result.decision is GateDecision.REJECT
        assert result.reason_codes == (ReasonCode.R1,)
        r1 = result.rules[-1]
        assert r1.severity is Severity.HIGH
        assert result.metrics.risk >= 3.0

    def test_dangerous_operation_behind_gate_passes(self) -> None:
        added = [
            "    if guardrails.authorize('delete_tree', {'path': workspace}).requires_approval:",
            "        return",
            "    shutil.rmtree(workspace)",
        ]
        result = classify_patch(
            QualityGateInput(diff_text=_diff("src/cleanup.py", added=added), exports_delta=NEUTRAL)
        )

        assert result.decision is GateDecision.PASS
        assert ReasonCode.R1 not in {r.code for r in result.rules}

    def test_bytes_diff_gets_the_same_text_checks(self) -> None:
        """A bytes diff is scored exactly like its decoded text."""
        diff = _diff("src/cleanup.py", added=["    shutil.rmtree(workspace)"])
        from_text = classify_patch(QualityGateInput(diff_text=diff, exports_delta=NEUTRAL))
        from_bytes = classify_patch(QualityGateInput(diff_text=diff.encode(), exports_delta=NEUTRAL))

        assert from_bytes.decision is GateDecision.REJECT
        assert from_bytes.reason_codes == from_text.reason_codes
        assert from_bytes.metrics.risk == from_text.metrics.risk >= 3.0

    def test_dependency_reduction_is_recorded(self) -> None:
        result = classify_patch(
            QualityGateInput(
                diff_text=_diff("src/app.py", added=["x = 1"]),
                exports_delta=NEUTRAL,
                deps_delta=DepsDelta(removed=("requests", "six")),
            )
        )

        r5 = [r for r in result.rules if r.code is ReasonCode.R5]
        assert r5 and r5[0].direction is Direction.IMPROVEMENT
        assert result.evidence.dependencies == 2


class TestLargeChange:
    def test_large_surface_goes_to_review(self) -> None:
        """Large surface and load without violations or strong benefit: REVIEW."""
        added = ["def process(batch):"] + [f"    step_{i} = transform(batch, {i})" for i in range(119)]
        removed = (
            ["def legacy_a(batch):"] + [f"    old_a_{i} = legacy(batch, {i})" for i in range(64)]
            + ["def legacy_b(batch):"] + [f"    old_b_{i} = legacy(batch, {i})" for i in range(64)]
        )
        result = classify_patch(
            QualityGateInput(
                diff_text=_diff("src/batch.py", added=added, removed=removed),
                exports_delta=ExportsDelta(added=60),
            )
        )

        assert result.metrics.surface_area == 60
        assert result.metrics.cognitive_load > 1.0
        assert result.decision is GateDecision.REVIEW
        assert result.reason_codes == (ReasonCode.LARGE_CHANGE,)
        assert len(result.review_questions) == 3


class TestMetricsAndEvidence:
    def test_risk_context_weights(self) -> None:
        result = classify_patch(
            QualityGateInput(
                diff_text="",
                risk_context=RiskContext(touches_core=True, touches_gates=True, touches_critical_files=True),
            )
        )
        assert result.metrics.risk == pytest.approx(1.2)

    def test_gate_bypass_text(self) -> None:
        result = classify_patch(
            QualityGateInput(diff_text=_diff("src/a.py", added=["# skip the quality gate for now"]))
        )
        assert result.metrics.risk == pytest.approx(2.0)

    def test_caller_exports_delta_overrides_heuristics(self) -> None:
        result = classify_patch(
            QualityGateInput(
                diff_text=_diff("src/a.py", added=["def a():", "def b():"]),
                exports_delta=ExportsDelta(added=1, removed=3, changed=1),
            )
        )
        assert result.metrics.surface_area == -1

    def test_strong_benefit_from_maintenance(self) -> None:
        removed = [f"legacy_{i} = compute({i})" for i in range(30)]
        result = classify_patch(QualityGateInput(diff_text=_diff("src/a.py", removed=removed)))

        assert result.evidence.maintenance == 30
        assert result.evidence.strong


class TestJustification:
    def test_sections_present(self) -> None:
        result = classify_patch(QualityGateInput(diff_text=_diff("src/big.py", added=_big_function())))
        text = result.justification

        assert text.startswith("## Quality Gate: REJECT")
        assert "### Metrics" in text
        assert "### Triggered rules" in text
        assert "### Benefit evidence" in text
        assert "### Rationale" in text
        assert "### Alternative considered" in text
        assert "### Why benefit exceeds cost" in text
        assert "### Why this change is non-trivial" in text
        assert "**R7**" in text

    def test_to_dict_is_serializable(self) -> None:
        import json

        result = classify_patch(QualityGateInput(diff_text=_diff("src/big.py", added=_big_function())))
        data = json.loads(json.dumps(result.to_dict()))

        assert data["decision"] == "REJECT"
        assert "R7" in data["reason_codes"]
