"""Pytest fixtures for Warden tests."""

from pathlib import Path

import pytest

from warden.guardrails.config import GuardrailConfig
from warden.guardrails.selfconfig import SelfConfigStore
from warden.guardrails.store import GuardrailStore
from warden.guardrails.system import GuardrailSystem
from warden.guardrails.trust import TrustLedger
from warden.guardrails.types import TrustPolicy


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep developer environment overrides out of every test."""
    for var in ("WARDEN_STATE_DIR", "WARDEN_LOG_LEVEL", "WARDEN_DEBUG"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def store(tmp_path: Path) -> GuardrailStore:
    """Store rooted in a temporary state directory."""
    return GuardrailStore(tmp_path / ".warden")


@pytest.fixture
def self_config(tmp_path: Path) -> SelfConfigStore:
    """Self-configuration store with the default configuration written."""
    config = SelfConfigStore(tmp_path / "config" / "self.json")
    config.load_or_default()
    return config


@pytest.fixture
def instant_policy() -> TrustPolicy:
    """Trust policy without smoothing: trust equals the latest sample."""
    return TrustPolicy(ema_alpha=1.0)


@pytest.fixture
def ledger(store: GuardrailStore, self_config: SelfConfigStore, instant_policy: TrustPolicy) -> TrustLedger:
    return TrustLedger(store, instant_policy, c_potential=self_config.c_potential)


@pytest.fixture
def system(tmp_path: Path, instant_policy: TrustPolicy) -> GuardrailSystem:
    """Guardrail system over a temporary workspace."""
    return GuardrailSystem(workspace=tmp_path, config=GuardrailConfig(trust=instant_policy))
