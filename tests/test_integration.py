"""Tests for wiring the quality gate into tool execution."""

import pytest

from warden.gate.diff import analyze_diff
from warden.gate.gate import GateDecision
from warden.gate.integration import (
    diff_for_self_config,
    diff_for_write,
    gate_input_for_operation,
    risk_context_for,
    should_run_gate,
)
from warden.guardrails.system import GuardrailSystem


class TestShouldRunGate:
    @pytest.mark.parametrize(
        "path",
        ["src/app.py", "/abs/src/app.ts", "package.json", "web/tsconfig.json", "README.md"],
    )
    def test_source_writes_are_gated(self, path: str) -> None:
        assert should_run_gate("write_file", {"path": path}).should_check

    @pytest.mark.parametrize(
        "path",
        [
            "data/rows.csv",
            "logs/agent.txt",
            "tmp/scratch.py",
            "sandbox/repo/main.py",
            "run.log",
            "config/settings.json",
            "DATA/Report.CSV",
        ],
    )
    def test_data_and_log_files_are_not_gated(self, path: str) -> None:
        check = should_run_gate("write_file", {"path": path})
        assert not check.should_check
        assert "data or log" in check.reason

    @pytest.mark.parametrize("name", ["read_file", "run_command", "search"])
    def test_non_modifying_operations(self, name: str) -> None:
        assert not should_run_gate(name, {"path": "src/app.py"}).should_check

    def test_self_config_is_always_gated(self) -> None:
        assert should_run_gate("modify_self_config", {"target": "c_potential"}).should_check


class TestDiffs:
    def test_new_file(self) -> None:
        diff = diff_for_write("src/app.py", None, "x = 1\ny = 2")

        assert diff.startswith("--- /dev/null\n+++ b/src/app.py\n")
        analysis = analyze_diff(diff)
        assert analysis.lines_added == 2
        assert analysis.files == ("src/app.py",)

    def test_modified_file(self) -> None:
        diff = diff_for_write("src/app.py", "x = 1\n", "x = 2\n")
        analysis = analyze_diff(diff)

        assert analysis.lines_added == 1
        assert analysis.lines_removed == 1

    def test_deleted_file(self) -> None:
        diff = diff_for_write("src/app.py", "a = 1\nb = 2\n", None)

        assert "+++ /dev/null" in diff
        assert analyze_diff(diff).lines_removed == 2

    def test_unchanged_file_is_empty(self) -> None:
        assert diff_for_write("src/app.py", "x = 1\n", "x = 1\n") == ""

    def test_self_config_diff(self) -> None:
        diff = diff_for_self_config({"action": "set", "target": "c_potential", "value": 0.9, "reason": "tune"})

        assert "+++ b/config/self.json" in diff
        assert "+Value: 0.9" in diff
        assert analyze_diff(diff).lines_added == 4


class TestRiskContext:
    def test_critical_file(self) -> None:
        ctx = risk_context_for("write_file", "pyproject.toml")
        assert ctx.touches_critical_files
        assert not ctx.touches_core

    def test_gate_code(self) -> None:
        assert risk_context_for("write_file", "src/gates/policy.py").touches_gates

    def test_plain_source(self) -> None:
        ctx = risk_context_for("write_file", "src/app.py")
        assert not (ctx.touches_core or ctx.touches_gates or ctx.touches_critical_files)


class TestGateInputForOperation:
    def test_not_gated_returns_none(self) -> None:
        assert gate_input_for_operation("delete_file", {"path": "logs/old.log"}) is None
        assert gate_input_for_operation("read_file", {"path": "src/app.py"}) is None

    def test_self_modification(self) -> None:
        gate_input = gate_input_for_operation("modify_self_config", {"target": "c_potential", "value": 0.9})

        assert gate_input is not None
        assert gate_input.files_touched == ("config/self.json",)
        assert gate_input.risk_context.touches_core
        assert gate_input.risk_context.touches_critical_files

    def test_write_carries_path(self) -> None:
        gate_input = gate_input_for_operation("write_file", {"path": "src/app.py", "content": "x = 1\n"})

        assert gate_input is not None
        assert gate_input.files_touched == ("src/app.py",)


class TestSystemReview:
    def test_oversized_write_is_rejected(self, system: GuardrailSystem) -> None:
        body = ["def handle(request):"] + [f"    value_{i} = request.get('key_{i}')" for i in range(199)]
        result = system.review_operation("write_file", {"path": "src/big.py", "content": "\n".join(body)})

        assert result is not None
        assert result.decision is GateDecision.REJECT

    def test_small_edit_passes(self, system: GuardrailSystem) -> None:
        result = system.review_operation(
            "write_file",
            {"path": "src/app.py", "content": "x = 2\n"},
            before="x = 1\n",
        )

        assert result is not None
        assert result.passed

    def test_ungated_operation(self, system: GuardrailSystem) -> None:
        assert system.review_operation("read_file", {"path": "src/app.py"}) is None
