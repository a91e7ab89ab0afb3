"""Tests for guardrail configuration loading."""

from pathlib import Path

import pytest

from warden.foundation.errors import ConfigError, ErrorCode
from warden.guardrails.config import GuardrailConfig, load_config, save_config
from warden.guardrails.rules import DEFAULT_RULESET
from warden.guardrails.system import GuardrailSystem
from warden.guardrails.types import LoopPolicy, TrustPolicy


class TestLoadConfig:
    def test_defaults_without_files(self, tmp_path: Path) -> None:
        assert load_config(tmp_path) == GuardrailConfig()

    def test_pyproject(self, tmp_path: Path) -> None:
        (tmp_path / "pyproject.toml").write_text(
            "[project]\n"
            'name = "agent"\n'
            "\n"
            "[tool.warden.guardrails]\n"
            'state_dir = "var/guard"\n'
            "\n"
            "[tool.warden.guardrails.trust]\n"
            "min_operations = 10\n"
            "ema_alpha = 0.5\n"
            "\n"
            "[tool.warden.guardrails.loops]\n"
            "threshold = 5\n"
        )

        config = load_config(tmp_path)

        assert config.state_dir == "var/guard"
        assert config.trust.min_operations == 10
        assert config.trust.ema_alpha == 0.5
        assert config.trust.write_cap == TrustPolicy().write_cap
        assert config.loops == LoopPolicy(threshold=5)

    def test_yaml(self, tmp_path: Path) -> None:
        (tmp_path / "warden.yaml").write_text(
            "guardrails:\n"
            "  rollback:\n"
            "    max_snapshots: 3\n"
            "  self_config_path: agent/self.json\n"
        )

        config = load_config(tmp_path)

        assert config.rollback.max_snapshots == 3
        assert config.self_config_path == "agent/self.json"

    def test_pyproject_without_section_falls_through_to_yaml(self, tmp_path: Path) -> None:
        (tmp_path / "pyproject.toml").write_text('[project]\nname = "agent"\n')
        (tmp_path / "warden.yaml").write_text("guardrails:\n  loops:\n    window: 50\n")

        assert load_config(tmp_path).loops.window == 50

    def test_save_roundtrip(self, tmp_path: Path) -> None:
        config = GuardrailConfig(
            trust=TrustPolicy(min_operations=12),
            state_dir="state",
            rules_file="rules.yaml",
        )
        save_config(config, tmp_path / "warden.yaml")

        assert load_config(tmp_path) == config

    @pytest.mark.parametrize(
        "body",
        [
            "guardrails:\n  trust:\n    ema_alpha: 0\n",
            "guardrails:\n  trust:\n    ema_alpha: 1.5\n",
            "guardrails:\n  loops:\n    threshold: 0\n",
            "guardrails:\n  loops:\n    bogus: 1\n",
            "guardrails:\n  trust:\n    min_operations: many\n",
            "guardrails:\n  trust:\n    min_write_ops: 2.9\n",
            "guardrails:\n  loops:\n    window: true\n",
            "guardrails:\n  trust: 3\n",
            "guardrails:\n  state_dir: 7\n",
            "guardrails: [\n",
        ],
    )
    def test_invalid_yaml_raises(self, tmp_path: Path, body: str) -> None:
        (tmp_path / "warden.yaml").write_text(body)

        with pytest.raises(ConfigError) as exc_info:
            load_config(tmp_path)
        assert exc_info.value.code is ErrorCode.CONFIG_INVALID

    def test_integral_float_is_accepted(self, tmp_path: Path) -> None:
        (tmp_path / "warden.yaml").write_text("guardrails:\n  trust:\n    min_write_ops: 4.0\n")

        policy = load_config(tmp_path).trust
        assert policy.min_write_ops == 4
        assert isinstance(policy.min_write_ops, int)

    def test_unreadable_pyproject_raises(self, tmp_path: Path) -> None:
        (tmp_path / "pyproject.toml").write_text("[tool.warden\n")

        with pytest.raises(ConfigError):
            load_config(tmp_path)


class TestRulesFile:
    def test_default_ruleset(self, tmp_path: Path) -> None:
        assert GuardrailConfig().load_ruleset(tmp_path) is DEFAULT_RULESET

    def test_relative_rules_file(self, tmp_path: Path) -> None:
        (tmp_path / "rules.yaml").write_text(
            "version: 9\n"
            "extends_default: true\n"
            "rules: []\n"
        )
        ruleset = GuardrailConfig(rules_file="rules.yaml").load_ruleset(tmp_path)
        assert ruleset.version == 9

    def test_missing_rules_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError):
            GuardrailConfig(rules_file="absent.yaml").load_ruleset(tmp_path)


class TestStateDirectory:
    def test_default_under_workspace(self, tmp_path: Path) -> None:
        system = GuardrailSystem(tmp_path, GuardrailConfig())
        assert system.state_dir == tmp_path.resolve() / ".warden"
        assert system.state_dir.is_dir()

    def test_configured_relative(self, tmp_path: Path) -> None:
        system = GuardrailSystem(tmp_path, GuardrailConfig(state_dir="var/guard"))
        assert system.state_dir == (tmp_path / "var" / "guard").resolve()

    def test_environment_wins(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("WARDEN_STATE_DIR", str(tmp_path / "elsewhere"))
        system = GuardrailSystem(tmp_path, GuardrailConfig(state_dir="var/guard"))
        assert system.state_dir == (tmp_path / "elsewhere").resolve()

    def test_loaded_from_workspace(self, tmp_path: Path) -> None:
        (tmp_path / "warden.yaml").write_text("guardrails:\n  loops:\n    threshold: 2\n")
        system = GuardrailSystem(tmp_path)
        assert system.loops.policy.threshold == 2
