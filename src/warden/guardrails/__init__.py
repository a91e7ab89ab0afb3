"""Autonomy guardrails.

Safe self-modifying operation through layered checks:

1. **Risk Classification**: READONLY, WRITE or CORE per operation
2. **Loop Detection**: spot repeated identical failures
3. **Trust Ledger**: autonomy earned from evidence, not volume
4. **Rollback Guardian**: revert self-configuration changes that hurt

Example:
    >>> from warden.guardrails import GuardrailSystem
    >>>
    >>> guardrails = GuardrailSystem(workspace=Path.cwd())
    >>> auth = guardrails.authorize("write_file", {"path": "src/app.py", "content": "..."})
    >>> if auth.requires_approval:
    ...     ask_operator(auth)
    >>>
    >>> with guardrails.self_modification("enable web actions"):
    ...     apply_change()

Trust gates:
    - No trust before 30 recorded operations
    - At most 0.30 without 5 valid WRITE operations
    - At most 0.60 without 3 valid CORE operations
"""

from warden.guardrails.classifier import RiskClassifier
from warden.guardrails.config import GuardrailConfig, load_config, save_config
from warden.guardrails.loops import LoopDetector, parameter_digest
from warden.guardrails.recovery import RollbackGuardian, degradation_reasons
from warden.guardrails.rules import DEFAULT_RULESET, RiskRule, RuleKind, RuleSet, load_ruleset
from warden.guardrails.selfconfig import DEFAULT_SELF_CONFIG, SelfConfigStore
from warden.guardrails.store import GuardrailStore
from warden.guardrails.system import GuardrailSystem
from warden.guardrails.trust import TrustLedger
from warden.guardrails.types import (
    Authorization,
    DerivedMetrics,
    GuardianState,
    LoopHistoryEntry,
    LoopPolicy,
    LoopReport,
    Operation,
    OperationOutcome,
    PerformanceMetrics,
    Readiness,
    RiskClassification,
    RiskTier,
    RollbackResult,
    RollbackSnapshot,
    RollbackThresholds,
    SnapshotResult,
    TierCounters,
    TrustBreakdown,
    TrustPolicy,
)

__all__ = [
    # System
    "GuardrailSystem",
    "GuardrailConfig",
    "load_config",
    "save_config",
    # Classification
    "RiskClassifier",
    "RiskTier",
    "RiskClassification",
    "Operation",
    "Authorization",
    "RiskRule",
    "RuleKind",
    "RuleSet",
    "DEFAULT_RULESET",
    "load_ruleset",
    # Loops
    "LoopDetector",
    "LoopHistoryEntry",
    "LoopPolicy",
    "LoopReport",
    "parameter_digest",
    # Trust
    "TrustLedger",
    "TrustPolicy",
    "TrustBreakdown",
    "TierCounters",
    "PerformanceMetrics",
    "DerivedMetrics",
    "Readiness",
    "OperationOutcome",
    # Recovery
    "RollbackGuardian",
    "RollbackSnapshot",
    "RollbackThresholds",
    "RollbackResult",
    "SnapshotResult",
    "GuardianState",
    "degradation_reasons",
    # State
    "GuardrailStore",
    "SelfConfigStore",
    "DEFAULT_SELF_CONFIG",
]
