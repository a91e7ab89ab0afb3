"""Rollback Guardian - automatic recovery from harmful self-modification.

Strategy:
1. Snapshot the self-configuration and metrics before a risky change
2. After the change, recompute metrics and compare against the snapshot
3. If any degradation test fails, restore the snapshot's configuration

Only the self-configuration is restored. Performance metrics and loop
history are left as they are, so a bad attempt still costs trust after
the configuration reverts.
"""

import copy
import logging
from datetime import datetime

from warden.guardrails.selfconfig import SelfConfigStore
from warden.guardrails.store import GuardrailStore
from warden.guardrails.trust import TrustLedger
from warden.guardrails.types import (
    DerivedMetrics,
    GuardianState,
    Readiness,
    RollbackResult,
    RollbackSnapshot,
    RollbackThresholds,
    SnapshotResult,
)

logger = logging.getLogger(__name__)


def degradation_reasons(
    before: DerivedMetrics,
    after: DerivedMetrics,
    thresholds: RollbackThresholds | None = None,
) -> list[str]:
    """Compare two metric sets. Each failing test yields one reason."""
    t = thresholds or RollbackThresholds()
    reasons: list[str] = []

    if after.trust < before.trust * t.trust_ratio:
        reasons.append(f"Trust dropped {_drop(before.trust, after.trust):.0%}")

    if after.c_effective < before.c_effective * t.c_effective_ratio:
        reasons.append(f"C_effective dropped {_drop(before.c_effective, after.c_effective):.0%}")

    if after.stability < before.stability * t.stability_ratio:
        reasons.append(f"Stability dropped {_drop(before.stability, after.stability):.0%}")

    if before.readiness is not Readiness.DEGRADED and after.readiness is Readiness.DEGRADED:
        reasons.append(f"Readiness degraded from {before.readiness.value}")

    return reasons


def _drop(before: float, after: float) -> float:
    return 1 - after / before if before else 0.0


class RollbackGuardian:
    """Snapshot store with automatic, metric-driven restoration.

    State machine: STABLE → SNAPSHOT_TAKEN → (STABLE | ROLLED_BACK)

    Example:
        >>> guardian = RollbackGuardian(store, self_config, ledger)
        >>> guardian.take_snapshot("raise c_potential")
        >>> apply_change()
        >>> result = guardian.check_and_rollback_if_needed()
        >>> if result.rolled_back:
        ...     print(result.reason)
    """

    def __init__(
        self,
        store: GuardrailStore,
        self_config: SelfConfigStore,
        ledger: TrustLedger,
        thresholds: RollbackThresholds | None = None,
    ) -> None:
        self.store = store
        self.self_config = self_config
        self.ledger = ledger
        self.thresholds = thresholds or RollbackThresholds()
        self._state = GuardianState.STABLE

    @property
    def state(self) -> GuardianState:
        return self._state

    def take_snapshot(self, reason: str) -> SnapshotResult:
        """Capture the self-configuration and current metrics.

        Returns a no-op result when there is no self-configuration to capture.
        """
        config = self.self_config.load()
        if config is None:
            return SnapshotResult(
                taken=False,
                reason=f"No self-configuration at {self.self_config.path}",
            )

        metrics = self.ledger.metrics()
        snapshot = RollbackSnapshot(
            timestamp=datetime.now(),
            self_config=copy.deepcopy(config),
            metrics=metrics.copy(),
            derived=self.ledger.derive(metrics),
            reason=reason,
        )

        snapshots = self.store.load_snapshots()
        snapshots.append(snapshot)
        if len(snapshots) > self.thresholds.max_snapshots:
            del snapshots[: len(snapshots) - self.thresholds.max_snapshots]
        self.store.save_snapshots(snapshots)

        self._state = GuardianState.SNAPSHOT_TAKEN
        logger.info("Rollback snapshot taken: %s", reason)
        return SnapshotResult(
            taken=True,
            reason=reason,
            snapshot=snapshot,
            index=len(snapshots) - 1,
        )

    def check_and_rollback_if_needed(self) -> RollbackResult:
        """Compare current metrics with the latest snapshot and restore on degradation."""
        snapshots = self.store.load_snapshots()
        if not snapshots:
            return RollbackResult(rolled_back=False, reason="No snapshot to compare against")

        index = len(snapshots) - 1
        latest = snapshots[index]
        current = self.ledger.derive()
        reasons = degradation_reasons(latest.derived, current, self.thresholds)

        if not reasons:
            self._state = GuardianState.STABLE
            logger.debug("No degradation since snapshot %d (%s)", index, latest.reason)
            return RollbackResult(
                rolled_back=False,
                reason="Metrics within thresholds",
                snapshot_index=index,
                derived_after=current,
            )

        derived_after = self._restore(latest)
        logger.warning(
            "Automatic rollback to snapshot %d after %r: %s",
            index,
            latest.reason,
            "; ".join(reasons),
        )
        return RollbackResult(
            rolled_back=True,
            reason=f"Metrics degraded: {'; '.join(reasons)}",
            reasons=tuple(reasons),
            snapshot_index=index,
            derived_after=derived_after,
        )

    def rollback_to(self, index: int) -> RollbackResult:
        """Restore a specific snapshot's configuration unconditionally."""
        snapshots = self.store.load_snapshots()
        if not 0 <= index < len(snapshots):
            available = f"0-{len(snapshots) - 1}" if snapshots else "none"
            return RollbackResult(
                rolled_back=False,
                reason=f"Invalid snapshot index {index} (available: {available})",
            )

        snapshot = snapshots[index]
        derived_after = self._restore(snapshot)
        logger.warning("Manual rollback to snapshot %d (%s)", index, snapshot.reason)
        return RollbackResult(
            rolled_back=True,
            reason=f"Restored snapshot {index}: {snapshot.reason}",
            snapshot_index=index,
            derived_after=derived_after,
        )

    def list_snapshots(self) -> list[RollbackSnapshot]:
        return self.store.load_snapshots()

    def clear_snapshots(self) -> None:
        self.store.clear_snapshots()
        self._state = GuardianState.STABLE
        logger.info("Rollback snapshots cleared")

    def _restore(self, snapshot: RollbackSnapshot) -> DerivedMetrics:
        self.self_config.save(copy.deepcopy(snapshot.self_config))
        self._state = GuardianState.ROLLED_BACK
        return self.ledger.derive()
