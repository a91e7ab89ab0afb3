"""Trust Ledger - evidence-gated trust accounting.

Trust is earned from classified operation outcomes:

1. Per-tier success ratios weighted ``readonly×0.2 + write×0.3 + core×0.5``
2. Multiplied by a loop penalty, an error penalty and a stability bonus
3. Clamped by evidence gates: no more than 0.30 without 5 valid WRITE
   operations, no more than 0.60 without 3 valid CORE operations
4. Folded into an exponential moving average on every recorded outcome

Nothing is extended before the minimum number of operations is recorded.
The gates stop an agent from farming trust with volumes of easy reads.
"""

import logging
from collections.abc import Callable
from datetime import datetime

from warden.guardrails.selfconfig import DEFAULT_C_POTENTIAL
from warden.guardrails.store import GuardrailStore
from warden.guardrails.types import (
    DerivedMetrics,
    OperationOutcome,
    PerformanceMetrics,
    Readiness,
    RiskTier,
    TrustBreakdown,
    TrustPolicy,
)

logger = logging.getLogger(__name__)

# Penalty and bonus scales
LOOP_PENALTY_SCALE = 10
ERROR_PENALTY_SCALE = 20
STABILITY_BONUS_STEPS = 100

# Stability factor targets
VALIDITY_TARGET = 0.95
ERROR_FREE_TARGET = 20
TEST_PASS_TARGET = 0.90

C_BASE = 0.3


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


class TrustLedger:
    """Record outcomes and derive trust, C_effective, stability and readiness.

    Args:
        store: Shared durable store
        policy: Weights, gates and smoothing
        c_potential: Callable returning the current closure potential
            (normally read from the self-configuration)
    """

    def __init__(
        self,
        store: GuardrailStore,
        policy: TrustPolicy | None = None,
        c_potential: Callable[[], float] | None = None,
    ) -> None:
        self.store = store
        self.policy = policy or TrustPolicy()
        self._c_potential = c_potential or (lambda: DEFAULT_C_POTENTIAL)

    def metrics(self) -> PerformanceMetrics:
        """Current running counters."""
        return self.store.load_metrics()

    # -------------------------------------------------------------------------
    # Recording
    # -------------------------------------------------------------------------

    def record(
        self,
        tier: RiskTier,
        outcome: OperationOutcome,
        *,
        loop_detected: bool = False,
    ) -> PerformanceMetrics:
        """Record one executed operation and update the smoothed trust."""
        metrics = self.store.load_metrics()
        counters = metrics.tier(tier)

        if outcome.is_valid:
            counters.calls_valid += 1
            metrics.error_free_steps += 1
            metrics.loop_free_steps += 1
        else:
            counters.calls_invalid += 1
            metrics.total_errors += 1
            metrics.error_free_steps = 0

        if loop_detected:
            metrics.loop_detections += 1
            metrics.total_errors += 1
            metrics.loop_free_steps = 0

        self._update_ema(metrics)
        self._save(metrics)

        logger.debug(
            "Recorded %s %s (total=%d, ema=%.3f)",
            tier.value,
            outcome.value,
            metrics.calls_total,
            metrics.trust_ema,
        )
        return metrics

    def record_test_results(self, passed: int, failed: int) -> PerformanceMetrics:
        """Add test run results to the counters."""
        metrics = self.store.load_metrics()
        metrics.tests_passed += max(0, passed)
        metrics.tests_failed += max(0, failed)
        self._save(metrics)
        return metrics

    def reset(self) -> PerformanceMetrics:
        """Start a fresh trust window. Operator action only.

        Also clears the loop history, which shares the same window.
        """
        metrics = PerformanceMetrics()
        self._save(metrics)
        self.store.save_loop_history([])
        logger.warning("Trust ledger reset; loop history cleared")
        return metrics

    # -------------------------------------------------------------------------
    # Derivation
    # -------------------------------------------------------------------------

    def derive(
        self,
        metrics: PerformanceMetrics | None = None,
        c_potential: float | None = None,
    ) -> DerivedMetrics:
        """Compute derived metrics. Pure read: never writes state."""
        if metrics is None:
            metrics = self.store.load_metrics()
        if c_potential is None:
            c_potential = self._c_potential()
        policy = self.policy

        if not self.has_minimum_data(metrics):
            return DerivedMetrics(
                trust=0.0,
                c_effective=min(policy.cold_start_c_effective, c_potential),
                stability=policy.cold_start_stability,
                readiness=Readiness.DEGRADED,
                breakdown=TrustBreakdown(),
                has_minimum_data=False,
            )

        breakdown = self.breakdown(metrics)
        trust = _clamp(self._apply_gates(metrics.trust_ema, metrics))

        score = self.stability_score(metrics)
        c_effective = _clamp(min(c_potential, C_BASE + (c_potential - C_BASE) * score))
        stability = _clamp((trust + score) / 2)

        if stability < 0.5 or metrics.loop_detections > 0 or metrics.total_errors > 5:
            readiness = Readiness.DEGRADED
        elif stability >= 0.8 and metrics.validity_rate >= VALIDITY_TARGET:
            readiness = Readiness.EXCELLENT
        else:
            readiness = Readiness.STABLE

        return DerivedMetrics(
            trust=trust,
            c_effective=c_effective,
            stability=stability,
            readiness=readiness,
            breakdown=breakdown,
            has_minimum_data=True,
        )

    def has_minimum_data(self, metrics: PerformanceMetrics) -> bool:
        return metrics.calls_total >= self.policy.min_operations

    def breakdown(self, metrics: PerformanceMetrics) -> TrustBreakdown:
        """Per-tier success ratios and their weighted sum."""
        policy = self.policy
        readonly = metrics.readonly.success_ratio
        write = metrics.write.success_ratio
        core = metrics.core.success_ratio
        return TrustBreakdown(
            readonly=readonly,
            write=write,
            core=core,
            overall=(
                readonly * policy.weight_readonly
                + write * policy.weight_write
                + core * policy.weight_core
            ),
        )

    def sample(self, metrics: PerformanceMetrics) -> float:
        """Unsmoothed trust for the current counters, after penalties and gates."""
        loop_penalty = 1 - min(1.0, metrics.loop_detections / LOOP_PENALTY_SCALE)
        error_penalty = 1 - min(1.0, metrics.total_errors / ERROR_PENALTY_SCALE)
        stability_bonus = min(1.0, metrics.loop_free_steps / STABILITY_BONUS_STEPS)

        raw = self.breakdown(metrics).overall * loop_penalty * error_penalty * stability_bonus
        return _clamp(self._apply_gates(raw, metrics))

    def stability_score(self, metrics: PerformanceMetrics) -> float:
        factors = (
            1.0 if metrics.validity_rate >= VALIDITY_TARGET else 0.5,
            1.0 if metrics.loop_detections == 0 else 0.0,
            min(1.0, metrics.error_free_steps / ERROR_FREE_TARGET),
            1.0 if metrics.test_pass_rate >= TEST_PASS_TARGET else 0.5,
        )
        return sum(factors) / len(factors)

    def _apply_gates(self, trust: float, metrics: PerformanceMetrics) -> float:
        policy = self.policy
        if trust > policy.write_cap and metrics.write.calls_valid < policy.min_write_ops:
            trust = policy.write_cap
        if trust > policy.core_cap and metrics.core.calls_valid < policy.min_core_ops:
            trust = policy.core_cap
        return trust

    def _update_ema(self, metrics: PerformanceMetrics) -> None:
        if not self.has_minimum_data(metrics):
            return
        alpha = self.policy.ema_alpha
        metrics.trust_ema = alpha * self.sample(metrics) + (1 - alpha) * metrics.trust_ema

    def _save(self, metrics: PerformanceMetrics) -> None:
        metrics.last_updated = datetime.now()
        self.store.save_metrics(metrics)
