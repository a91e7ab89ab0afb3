"""Guardrail System orchestrator.

Ties the components together for one agent workspace:

    authorize ──► classify + loop check ──► approval from trust
    review    ──► quality gate on the proposed change
    record    ──► loop history + trust ledger
    self-modification ──► snapshot, apply, compare, roll back on degradation
"""

import logging
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from warden.foundation.state import ensure_state_dir
from warden.gate.gate import QualityGateInput, QualityGateResult, classify_patch
from warden.gate.integration import gate_input_for_operation
from warden.guardrails.classifier import RiskClassifier
from warden.guardrails.config import GuardrailConfig, load_config
from warden.guardrails.loops import LoopDetector
from warden.guardrails.recovery import RollbackGuardian
from warden.guardrails.selfconfig import SelfConfigStore
from warden.guardrails.store import GuardrailStore
from warden.guardrails.trust import TrustLedger
from warden.guardrails.types import (
    Authorization,
    DerivedMetrics,
    Operation,
    OperationOutcome,
    PerformanceMetrics,
    RiskTier,
    RollbackResult,
    SnapshotResult,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class GuardrailSystem:
    """Main guardrail system orchestrator.

    Coordinates all guardrail components over one durable state directory:
    - RiskClassifier: risk tier per operation
    - LoopDetector: repeated failing operations
    - TrustLedger: earned trust and derived metrics
    - RollbackGuardian: snapshot and restore of the self-configuration
    - Quality gate: verdicts on proposed code changes

    Example:
        >>> guardrails = GuardrailSystem(workspace=Path.cwd())
        >>> auth = guardrails.authorize("run_command", {"command": "pytest -q"})
        >>> if not auth.requires_approval:
        ...     outcome = execute(auth.operation)
        ...     guardrails.record("run_command", {"command": "pytest -q"}, outcome)
    """

    workspace: Path
    """Agent workspace root."""

    config: GuardrailConfig | None = None
    """Guardrail configuration (loads from the workspace if None)."""

    # Components (initialized in __post_init__)
    state_dir: Path = field(init=False)
    store: GuardrailStore = field(init=False)
    self_config: SelfConfigStore = field(init=False)
    classifier: RiskClassifier = field(init=False)
    loops: LoopDetector = field(init=False)
    ledger: TrustLedger = field(init=False)
    guardian: RollbackGuardian = field(init=False)

    def __post_init__(self) -> None:
        self.workspace = Path(self.workspace).resolve()
        if self.config is None:
            self.config = load_config(self.workspace)

        self.state_dir = ensure_state_dir(self.workspace, self.config.state_dir)
        self.store = GuardrailStore(self.state_dir)
        self.self_config = SelfConfigStore(self.workspace / self.config.self_config_path)

        self.classifier = RiskClassifier(self.config.load_ruleset(self.workspace))
        self.loops = LoopDetector(self.store, self.config.loops)
        self.ledger = TrustLedger(
            self.store,
            self.config.trust,
            c_potential=self.self_config.c_potential,
        )
        self.guardian = RollbackGuardian(
            self.store,
            self.self_config,
            self.ledger,
            self.config.rollback,
        )

    # -------------------------------------------------------------------------
    # Before execution
    # -------------------------------------------------------------------------

    def authorize(self, name: str, parameters: Mapping[str, Any] | None = None) -> Authorization:
        """Decide whether an operation may run without human approval.

        Loop detection is advisory: it is reported, never enforced.
        """
        params = dict(parameters or {})
        classification = self.classifier.explain(name, params)
        looping = self.loops.is_looping(name, params)
        trust = self.ledger.derive().trust
        policy = self.config.trust

        match classification.tier:
            case RiskTier.READONLY:
                requires_approval = False
                reason = "Read-only operation"
            case RiskTier.WRITE:
                requires_approval = trust < policy.approval_write
                reason = (
                    f"Write operation, trust {trust:.2f} below {policy.approval_write:.2f}"
                    if requires_approval
                    else "Write operation within earned trust"
                )
            case RiskTier.CORE:
                requires_approval = trust < policy.approval_core
                reason = (
                    f"Core operation, trust {trust:.2f} below {policy.approval_core:.2f}"
                    if requires_approval
                    else "Core operation within earned trust"
                )

        if looping:
            logger.info("Authorizing %s while it is looping", name)

        return Authorization(
            operation=Operation(name=name, parameters=params),
            tier=classification.tier,
            trust=trust,
            requires_approval=requires_approval,
            loop_detected=looping,
            reason=f"{reason}: {classification.reason}",
            rule_id=classification.rule_id,
        )

    def review(self, gate_input: QualityGateInput) -> QualityGateResult:
        """Run the quality gate on a proposed change."""
        return classify_patch(gate_input)

    def review_operation(
        self,
        name: str,
        parameters: Mapping[str, Any],
        before: str | None = None,
    ) -> QualityGateResult | None:
        """Run the quality gate on a code-modifying operation, or None when not gated."""
        gate_input = gate_input_for_operation(name, parameters, before, self.classifier.ruleset)
        if gate_input is None:
            return None
        return classify_patch(gate_input)

    # -------------------------------------------------------------------------
    # After execution
    # -------------------------------------------------------------------------

    def record(
        self,
        name: str,
        parameters: Mapping[str, Any] | None,
        outcome: OperationOutcome,
    ) -> PerformanceMetrics:
        """Record an executed operation's outcome in loop history and the ledger."""
        tier = self.classifier.classify(name, parameters)
        looping = self.loops.record(name, parameters, outcome)
        return self.ledger.record(tier, outcome, loop_detected=looping)

    def derived(self) -> DerivedMetrics:
        return self.ledger.derive()

    # -------------------------------------------------------------------------
    # Self-modification
    # -------------------------------------------------------------------------

    def snapshot(self, reason: str) -> SnapshotResult:
        return self.guardian.take_snapshot(reason)

    def check_and_rollback(self) -> RollbackResult:
        return self.guardian.check_and_rollback_if_needed()

    @contextmanager
    def self_modification(self, reason: str) -> Iterator[SnapshotResult]:
        """Snapshot before a self-modification and verify it afterwards.

        The comparison runs only when the block completes; an exception
        propagates with the snapshot left in place for a manual rollback.

        Example:
            >>> with guardrails.self_modification("raise c_potential"):
            ...     apply_change()
            ...     run_trial_operations()
        """
        snapshot = self.snapshot(reason)
        yield snapshot
        if snapshot.taken:
            result = self.check_and_rollback()
            if result.rolled_back:
                logger.warning("Self-modification %r reverted: %s", reason, result.reason)
