"""Tests for the warden command line."""

import json
import logging
from pathlib import Path

import pytest
from click.testing import CliRunner

from warden import __version__
from warden.cli import main
from warden.guardrails.selfconfig import SelfConfigStore

BIG_FUNCTION = "\n".join(
    ["--- /dev/null", "+++ b/src/big.py", "@@ -0,0 +1,200 @@", "+def handle(request):"]
    + [f"+    value_{i} = request.get('key_{i}')" for i in range(199)]
) + "\n"

SMALL_EDIT = "--- a/src/app.py\n+++ b/src/app.py\n@@ -1 +1 @@\n-x = 1\n+x = 2\n"


@pytest.fixture(autouse=True)
def _restore_root_logger():
    """The CLI reconfigures logging; undo it after each test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def invoke(runner: CliRunner, tmp_path: Path):
    """Invoke warden against a temporary workspace."""

    def _invoke(*args: str, input: str | None = None):
        return runner.invoke(main, ["-w", str(tmp_path), *args], input=input)

    return _invoke


class TestMain:
    def test_version(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help_lists_commands(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["--help"])

        assert result.exit_code == 0
        for command in ("classify", "gate", "trust", "snapshot", "config", "loops", "rules"):
            assert command in result.output

    def test_corrupt_state_is_reported(self, invoke, tmp_path: Path) -> None:
        """Persistence failures exit 1 with the error id and hints, no traceback."""
        state = tmp_path / ".warden"
        state.mkdir()
        (state / "metrics.json").write_text("{broken")

        result = invoke("trust", "show")

        assert result.exit_code == 1
        assert "WD-6001" in result.output
        assert "Traceback" not in result.output

    def test_unusable_state_dir_is_reported(self, invoke, tmp_path: Path) -> None:
        (tmp_path / ".warden").write_text("not a directory")

        result = invoke("trust", "show")

        assert result.exit_code == 1
        assert "WD-7005" in result.output
        assert "WARDEN_STATE_DIR" in result.output
        assert "Traceback" not in result.output


class TestClassify:
    def test_self_config_write_is_core(self, invoke) -> None:
        result = invoke("classify", "write_file", "-p", "path=config/self.json", "--json")

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["tier"] == "core"
        assert data["requires_approval"] is True
        assert data["parameters"] == {"path": "config/self.json"}

    def test_readonly_command(self, invoke) -> None:
        result = invoke("classify", "run_command", "-p", "command=git status")

        assert result.exit_code == 0
        assert "READONLY" in result.output
        assert "not required" in result.output

    def test_bad_parameter(self, invoke) -> None:
        result = invoke("classify", "write_file", "-p", "no-equals-sign")

        assert result.exit_code == 2
        assert "key=value" in result.output


class TestRulesAndLoops:
    def test_rules_json(self, invoke) -> None:
        result = invoke("rules", "--json")

        data = json.loads(result.output)
        assert data["version"] == 1
        assert any(rule["id"] == "deny.rm-recursive" for rule in data["rules"])

    def test_no_loops(self, invoke) -> None:
        result = invoke("loops")
        assert "No operational loops" in result.output

    def test_recorded_failures_show_as_loop(self, invoke) -> None:
        for _ in range(3):
            result = invoke("trust", "record", "run_command", "-p", "command=make", "-o", "other_error")
            assert result.exit_code == 0

        data = json.loads(invoke("loops", "--json").output)
        assert len(data) == 1
        assert data[0]["count"] == 3
        assert data[0]["outcome"] == "other_error"

    def test_third_failure_warns(self, invoke) -> None:
        for _ in range(2):
            invoke("trust", "record", "run_command", "-p", "command=make", "-o", "other_error")

        result = invoke("trust", "record", "run_command", "-p", "command=make", "-o", "other_error")
        assert "Operational loop detected" in result.output

    def test_repeated_successes_do_not_warn(self, invoke) -> None:
        """Identical successful calls are not a loop."""
        for _ in range(3):
            result = invoke("trust", "record", "read_file", "-p", "path=a.py")
            assert result.exit_code == 0
            assert "Operational loop detected" not in result.output

        assert "No operational loops" in invoke("loops").output


class TestGate:
    def test_reject_exits_nonzero(self, invoke, tmp_path: Path) -> None:
        diff = tmp_path / "change.diff"
        diff.write_text(BIG_FUNCTION)

        result = invoke("gate", str(diff))

        assert result.exit_code == 1
        assert "REJECT" in result.output
        assert "R7" in result.output

    def test_pass_from_stdin(self, invoke) -> None:
        result = invoke("gate", "-", input=SMALL_EDIT)

        assert result.exit_code == 0
        assert "PASS" in result.output

    def test_json_output(self, invoke) -> None:
        result = invoke("gate", "-", "--json", input=SMALL_EDIT)

        data = json.loads(result.output)
        assert data["decision"] == "PASS"
        assert data["reason_codes"] == ["NO_VIOLATIONS"]
        assert data["analysis"]["lines_added"] == 1

    def test_coverage_turns_reject_into_review(self, invoke) -> None:
        result = invoke("gate", "-", "--coverage-delta", "12", "--json", input=BIG_FUNCTION)

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["decision"] == "REVIEW"
        assert "TRADE_OFF" in data["reason_codes"]
        assert len(data["review_questions"]) == 3

    def test_justification(self, invoke) -> None:
        result = invoke("gate", "-", "--justification", input=SMALL_EDIT)
        assert "Quality Gate: PASS" in result.output


class TestTrust:
    def test_show_cold_start(self, invoke) -> None:
        result = invoke("trust", "show", "--json")

        data = json.loads(result.output)
        assert data["derived"]["trust"] == 0.0
        assert data["derived"]["readiness"] == "degraded"
        assert data["metrics"]["readonly"] == {"calls_valid": 0, "calls_invalid": 0}

    def test_show_table(self, invoke) -> None:
        result = invoke("trust", "show")

        assert result.exit_code == 0
        assert "Cold start" in result.output

    def test_record(self, invoke) -> None:
        result = invoke("trust", "record", "write_file", "-p", "path=src/app.py")

        assert result.exit_code == 0
        assert "Recorded write_file" in result.output

        data = json.loads(invoke("trust", "show", "--json").output)
        assert data["metrics"]["write"]["calls_valid"] == 1

    def test_tests(self, invoke) -> None:
        result = invoke("trust", "tests", "9", "1")
        assert "Test pass rate: 90%" in result.output

    def test_reset(self, invoke) -> None:
        invoke("trust", "record", "read_file", "-p", "path=a.py")

        result = invoke("trust", "reset", "--yes")
        assert result.exit_code == 0
        assert "Trust ledger reset" in result.output

        data = json.loads(invoke("trust", "show", "--json").output)
        assert data["metrics"]["readonly"]["calls_valid"] == 0

    def test_reset_requires_confirmation(self, invoke) -> None:
        result = invoke("trust", "reset", input="n\n")
        assert result.exit_code == 1


class TestSnapshot:
    def test_take_without_self_config(self, invoke) -> None:
        result = invoke("snapshot", "take", "change")

        assert result.exit_code == 0
        assert "No snapshot taken" in result.output

    def test_take_list_check(self, invoke, tmp_path: Path) -> None:
        SelfConfigStore(tmp_path / "config" / "self.json").load_or_default()

        assert "Snapshot 0 taken" in invoke("snapshot", "take", "tune").output

        snapshots = json.loads(invoke("snapshot", "list", "--json").output)
        assert [s["reason"] for s in snapshots] == ["tune"]

        result = invoke("snapshot", "check")
        assert result.exit_code == 0
        assert "Metrics within thresholds" in result.output

    def test_rollback_invalid_index(self, invoke) -> None:
        result = invoke("snapshot", "rollback", "3")

        assert result.exit_code == 1
        assert "Invalid snapshot index" in result.output

    def test_clear(self, invoke, tmp_path: Path) -> None:
        SelfConfigStore(tmp_path / "config" / "self.json").load_or_default()
        invoke("snapshot", "take", "tune")

        assert invoke("snapshot", "clear", "--yes").exit_code == 0
        assert "No snapshots" in invoke("snapshot", "list").output


class TestConfig:
    def test_show_json(self, invoke, tmp_path: Path) -> None:
        data = json.loads(invoke("config", "show", "--json").output)

        assert data["resolved_state_dir"] == str(tmp_path.resolve() / ".warden")
        assert data["trust"]["min_operations"] == 30

    def test_init(self, invoke, tmp_path: Path) -> None:
        result = invoke("config", "init")

        assert result.exit_code == 0
        assert (tmp_path / "warden.yaml").exists()

        again = invoke("config", "init")
        assert again.exit_code == 1
        assert "already exists" in again.output

        assert invoke("config", "init", "--force").exit_code == 0
