"""Configuration for the guardrail core.

Loads guardrail configuration from pyproject.toml or warden.yaml.
"""

import logging
import tomllib
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, TypeVar

import yaml

from warden.foundation.errors import config_error
from warden.guardrails.rules import DEFAULT_RULESET, RuleSet, load_ruleset
from warden.guardrails.types import LoopPolicy, RollbackThresholds, TrustPolicy

logger = logging.getLogger(__name__)

YAML_CONFIG_NAME = "warden.yaml"


@dataclass
class GuardrailConfig:
    """Configuration for the guardrail system.

    Can be loaded from:
    - pyproject.toml [tool.warden.guardrails]
    - warden.yaml guardrails section
    - Programmatic configuration
    """

    trust: TrustPolicy = field(default_factory=TrustPolicy)
    """Trust weights, evidence gates, smoothing and approval thresholds."""

    loops: LoopPolicy = field(default_factory=LoopPolicy)
    """Loop history bound, window and repeat threshold."""

    rollback: RollbackThresholds = field(default_factory=RollbackThresholds)
    """Snapshot limit and degradation ratios."""

    state_dir: str | None = None
    """Where durable state lives (relative to the workspace). WARDEN_STATE_DIR wins."""

    self_config_path: str = "config/self.json"
    """Agent self-configuration file, relative to the workspace."""

    rules_file: str | None = None
    """Optional YAML risk rule table, relative to the workspace."""

    def load_ruleset(self, workspace: Path) -> RuleSet:
        """Resolve the risk rule table for this configuration."""
        if not self.rules_file:
            return DEFAULT_RULESET
        path = Path(self.rules_file)
        if not path.is_absolute():
            path = workspace / path
        return load_ruleset(path)

    def to_dict(self) -> dict[str, Any]:
        return {
            "trust": _policy_dict(self.trust),
            "loops": _policy_dict(self.loops),
            "rollback": _policy_dict(self.rollback),
            "state_dir": self.state_dir,
            "self_config_path": self.self_config_path,
            "rules_file": self.rules_file,
        }


def load_config(project_root: Path | None = None) -> GuardrailConfig:
    """Load guardrail configuration from project files.

    Looks for configuration in order:
    1. pyproject.toml [tool.warden.guardrails]
    2. warden.yaml guardrails section
    3. Default configuration

    Args:
        project_root: Project root directory (defaults to cwd)

    Returns:
        GuardrailConfig instance

    Raises:
        ConfigError: If a configuration source exists but is invalid
    """
    if project_root is None:
        project_root = Path.cwd()

    pyproject_path = project_root / "pyproject.toml"
    if pyproject_path.exists():
        config = _load_from_pyproject(pyproject_path)
        if config:
            logger.debug("Guardrail config from %s", pyproject_path)
            return config

    yaml_path = project_root / YAML_CONFIG_NAME
    if yaml_path.exists():
        config = _load_from_yaml(yaml_path)
        if config:
            logger.debug("Guardrail config from %s", yaml_path)
            return config

    return GuardrailConfig()


def _load_from_pyproject(path: Path) -> GuardrailConfig | None:
    """Load config from pyproject.toml."""
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise config_error(str(path), f"unreadable pyproject.toml ({e})", e) from e

    guardrails_config = data.get("tool", {}).get("warden", {}).get("guardrails", {})
    if not guardrails_config:
        return None

    return _parse_config(guardrails_config)


def _load_from_yaml(path: Path) -> GuardrailConfig | None:
    """Load config from warden.yaml."""
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise config_error(str(path), f"unreadable YAML ({e})", e) from e

    if not isinstance(data, dict):
        return None

    guardrails_config = data.get("guardrails", {})
    if not guardrails_config:
        return None

    return _parse_config(guardrails_config)


def _parse_config(data: dict[str, Any]) -> GuardrailConfig:
    """Parse configuration dictionary into GuardrailConfig."""
    if not isinstance(data, dict):
        raise config_error("guardrails", "expected a table")

    trust = _parse_policy(TrustPolicy, data.get("trust", {}), "trust")
    loops = _parse_policy(LoopPolicy, data.get("loops", {}), "loops")
    rollback = _parse_policy(RollbackThresholds, data.get("rollback", {}), "rollback")

    if not 0.0 < trust.ema_alpha <= 1.0:
        raise config_error("trust.ema_alpha", f"must be in (0, 1], got {trust.ema_alpha}")
    if loops.history_size < 1 or loops.window < 1 or loops.threshold < 1:
        raise config_error("loops", "history_size, window and threshold must be positive")
    if rollback.max_snapshots < 1:
        raise config_error("rollback.max_snapshots", "must be positive")

    return GuardrailConfig(
        trust=trust,
        loops=loops,
        rollback=rollback,
        state_dir=_optional_str(data, "state_dir"),
        self_config_path=_optional_str(data, "self_config_path") or "config/self.json",
        rules_file=_optional_str(data, "rules_file"),
    )


P = TypeVar("P")


def _parse_policy(cls: type[P], raw: Any, section: str) -> P:
    if not isinstance(raw, dict):
        raise config_error(section, "expected a table")

    known = {f.name: f for f in fields(cls)}
    kwargs: dict[str, Any] = {}
    for key, value in raw.items():
        if key not in known:
            raise config_error(f"{section}.{key}", "unknown setting")
        default = known[key].default
        if isinstance(value, bool) or (
            isinstance(default, int) and isinstance(value, float) and not value.is_integer()
        ):
            raise config_error(f"{section}.{key}", f"expected {type(default).__name__}")
        try:
            kwargs[key] = type(default)(value)
        except (TypeError, ValueError) as e:
            raise config_error(f"{section}.{key}", f"expected {type(default).__name__}", e) from e
    return cls(**kwargs)


def _optional_str(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise config_error(key, "expected a string")
    return value


def _policy_dict(policy: Any) -> dict[str, Any]:
    return {f.name: getattr(policy, f.name) for f in fields(policy)}


def save_config(config: GuardrailConfig, path: Path) -> None:
    """Save configuration to a YAML file.

    Args:
        config: Configuration to save
        path: Path to save to
    """
    data = {"guardrails": config.to_dict()}
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
