"""Type definitions for the guardrail core.

Core types for risk classification, trust accounting, loop detection
and snapshot-based rollback.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

# =============================================================================
# Risk Classification
# =============================================================================


class RiskTier(Enum):
    """Authority required for an operation. Derived per call, never stored."""

    READONLY = "readonly"
    """Queries, reads, searches. Never needs approval."""

    WRITE = "write"
    """Ordinary mutations (file writes, commits, installs)."""

    CORE = "core"
    """Self-modification, critical build artifacts, destructive commands."""


class OperationOutcome(Enum):
    """Outcome of an executed operation."""

    SUCCESS = "success"
    SCHEMA_ERROR = "schema_error"
    GUARDRAIL_BLOCK = "guardrail_block"
    OTHER_ERROR = "other_error"

    @property
    def is_valid(self) -> bool:
        """Only a successful call counts as a valid call."""
        return self is OperationOutcome.SUCCESS


@dataclass(frozen=True, slots=True)
class Operation:
    """An operation the agent wants to run."""

    name: str
    """Tool or operation name (write_file, run_command, ...)."""

    parameters: dict[str, Any] = field(default_factory=dict)
    """Parameter map as passed to the tool."""


@dataclass(frozen=True, slots=True)
class RiskClassification:
    """Classification result with the rule that produced it."""

    tier: RiskTier
    """Assigned tier."""

    rule_id: str
    """Identifier of the matching rule, or a ``default.*`` id."""

    reason: str
    """Why this tier."""


# =============================================================================
# Loop History
# =============================================================================


@dataclass(frozen=True, slots=True)
class LoopHistoryEntry:
    """One recorded operation attempt."""

    tool_name: str
    parameter_digest: str
    outcome: OperationOutcome
    timestamp: datetime

    def matches(self, tool_name: str, parameter_digest: str, outcome: OperationOutcome) -> bool:
        return (
            self.tool_name == tool_name
            and self.parameter_digest == parameter_digest
            and self.outcome is outcome
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool_name": self.tool_name,
            "parameter_digest": self.parameter_digest,
            "outcome": self.outcome.value,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LoopHistoryEntry":
        return cls(
            tool_name=data["tool_name"],
            parameter_digest=data["parameter_digest"],
            outcome=OperationOutcome(data["outcome"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
        )


@dataclass(frozen=True, slots=True)
class LoopReport:
    """A failing (tool, parameters, outcome) triple repeated in the window."""

    tool_name: str
    parameter_digest: str
    outcome: OperationOutcome
    count: int


# =============================================================================
# Performance Metrics
# =============================================================================


@dataclass(slots=True)
class TierCounters:
    """Valid/invalid call counters for one risk tier."""

    calls_valid: int = 0
    calls_invalid: int = 0

    @property
    def calls_total(self) -> int:
        return self.calls_valid + self.calls_invalid

    @property
    def success_ratio(self) -> float:
        """Fraction of valid calls. No calls counts as a perfect record."""
        if self.calls_total == 0:
            return 1.0
        return self.calls_valid / self.calls_total

    def to_dict(self) -> dict[str, int]:
        return {"calls_valid": self.calls_valid, "calls_invalid": self.calls_invalid}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TierCounters":
        return cls(
            calls_valid=int(data.get("calls_valid", 0)),
            calls_invalid=int(data.get("calls_invalid", 0)),
        )


@dataclass(slots=True)
class PerformanceMetrics:
    """Running counters accumulated since the last reset.

    Mutated only by the TrustLedger.
    """

    readonly: TierCounters = field(default_factory=TierCounters)
    write: TierCounters = field(default_factory=TierCounters)
    core: TierCounters = field(default_factory=TierCounters)

    loop_detections: int = 0
    loop_free_steps: int = 0
    error_free_steps: int = 0
    total_errors: int = 0

    tests_passed: int = 0
    tests_failed: int = 0

    trust_ema: float = 0.0
    """Smoothed trust carried between recordings."""

    window_start: datetime = field(default_factory=datetime.now)
    last_updated: datetime = field(default_factory=datetime.now)

    def tier(self, tier: RiskTier) -> TierCounters:
        match tier:
            case RiskTier.READONLY:
                return self.readonly
            case RiskTier.WRITE:
                return self.write
            case RiskTier.CORE:
                return self.core

    @property
    def calls_valid(self) -> int:
        return self.readonly.calls_valid + self.write.calls_valid + self.core.calls_valid

    @property
    def calls_invalid(self) -> int:
        return self.readonly.calls_invalid + self.write.calls_invalid + self.core.calls_invalid

    @property
    def calls_total(self) -> int:
        return self.calls_valid + self.calls_invalid

    @property
    def validity_rate(self) -> float:
        if self.calls_total == 0:
            return 1.0
        return self.calls_valid / self.calls_total

    @property
    def test_pass_rate(self) -> float:
        ran = self.tests_passed + self.tests_failed
        if ran == 0:
            return 1.0
        return self.tests_passed / ran

    def copy(self) -> "PerformanceMetrics":
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "readonly": self.readonly.to_dict(),
            "write": self.write.to_dict(),
            "core": self.core.to_dict(),
            "loop_detections": self.loop_detections,
            "loop_free_steps": self.loop_free_steps,
            "error_free_steps": self.error_free_steps,
            "total_errors": self.total_errors,
            "tests_passed": self.tests_passed,
            "tests_failed": self.tests_failed,
            "trust_ema": self.trust_ema,
            "window_start": self.window_start.isoformat(),
            "last_updated": self.last_updated.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PerformanceMetrics":
        now = datetime.now()
        return cls(
            readonly=TierCounters.from_dict(data.get("readonly", {})),
            write=TierCounters.from_dict(data.get("write", {})),
            core=TierCounters.from_dict(data.get("core", {})),
            loop_detections=int(data.get("loop_detections", 0)),
            loop_free_steps=int(data.get("loop_free_steps", 0)),
            error_free_steps=int(data.get("error_free_steps", 0)),
            total_errors=int(data.get("total_errors", 0)),
            tests_passed=int(data.get("tests_passed", 0)),
            tests_failed=int(data.get("tests_failed", 0)),
            trust_ema=float(data.get("trust_ema", 0.0)),
            window_start=_parse_time(data.get("window_start"), now),
            last_updated=_parse_time(data.get("last_updated"), now),
        )


def _parse_time(value: str | None, default: datetime) -> datetime:
    if not value:
        return default
    return datetime.fromisoformat(value)


class Readiness(Enum):
    """Coarse health label derived from stability and error history."""

    EXCELLENT = "excellent"
    STABLE = "stable"
    DEGRADED = "degraded"


@dataclass(frozen=True, slots=True)
class TrustBreakdown:
    """Per-tier success ratios and their weighted combination."""

    readonly: float = 0.0
    write: float = 0.0
    core: float = 0.0
    overall: float = 0.0

    def to_dict(self) -> dict[str, float]:
        return {
            "readonly": self.readonly,
            "write": self.write,
            "core": self.core,
            "overall": self.overall,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TrustBreakdown":
        return cls(**{k: float(data.get(k, 0.0)) for k in ("readonly", "write", "core", "overall")})


@dataclass(frozen=True, slots=True)
class DerivedMetrics:
    """Metrics recomputed on demand from PerformanceMetrics and self-configuration."""

    trust: float
    """Evidence-gated, smoothed trust in [0, 1]."""

    c_effective: float
    """Effective closure: potential discounted by stability."""

    stability: float
    """Mean of trust and the stability score."""

    readiness: Readiness

    breakdown: TrustBreakdown = field(default_factory=TrustBreakdown)

    has_minimum_data: bool = False
    """False during cold start (fewer than the minimum recorded operations)."""

    def to_dict(self) -> dict[str, Any]:
        return {
            "trust": self.trust,
            "c_effective": self.c_effective,
            "stability": self.stability,
            "readiness": self.readiness.value,
            "breakdown": self.breakdown.to_dict(),
            "has_minimum_data": self.has_minimum_data,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DerivedMetrics":
        return cls(
            trust=float(data["trust"]),
            c_effective=float(data["c_effective"]),
            stability=float(data["stability"]),
            readiness=Readiness(data["readiness"]),
            breakdown=TrustBreakdown.from_dict(data.get("breakdown", {})),
            has_minimum_data=bool(data.get("has_minimum_data", False)),
        )


# =============================================================================
# Policies
# =============================================================================


@dataclass(frozen=True, slots=True)
class TrustPolicy:
    """Weights, gates and smoothing for trust accounting."""

    min_operations: int = 30
    """No trust is extended before this many recorded operations."""

    ema_alpha: float = 0.15
    """Smoothing factor. Lower adapts slower."""

    weight_readonly: float = 0.2
    weight_write: float = 0.3
    weight_core: float = 0.5

    min_write_ops: int = 5
    """Valid write operations required before trust may exceed write_cap."""

    write_cap: float = 0.30

    min_core_ops: int = 3
    """Valid core operations required before trust may exceed core_cap."""

    core_cap: float = 0.60

    approval_write: float = 0.30
    """Trust at or above which WRITE operations run without approval."""

    approval_core: float = 0.60
    """Trust at or above which CORE operations run without approval."""

    cold_start_c_effective: float = 0.65
    cold_start_stability: float = 0.35


@dataclass(frozen=True, slots=True)
class LoopPolicy:
    """Bounds for the shared loop history."""

    history_size: int = 200
    """Oldest entries are evicted beyond this size."""

    window: int = 20
    """Number of most recent entries examined."""

    threshold: int = 3
    """Repeats of one failing triple that constitute a loop."""


@dataclass(frozen=True, slots=True)
class RollbackThresholds:
    """Relative drops that count as degradation."""

    max_snapshots: int = 10
    trust_ratio: float = 0.80
    c_effective_ratio: float = 0.85
    stability_ratio: float = 0.75


# =============================================================================
# Rollback
# =============================================================================


class GuardianState(Enum):
    """Rollback guardian state machine."""

    STABLE = "stable"
    SNAPSHOT_TAKEN = "snapshot_taken"
    ROLLED_BACK = "rolled_back"


@dataclass(frozen=True, slots=True)
class RollbackSnapshot:
    """Captured configuration and metrics. Read-only after creation."""

    timestamp: datetime
    self_config: dict[str, Any]
    metrics: PerformanceMetrics
    derived: DerivedMetrics
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "self_config": self.self_config,
            "metrics": self.metrics.to_dict(),
            "derived": self.derived.to_dict(),
            "reason": self.reason,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RollbackSnapshot":
        return cls(
            timestamp=datetime.fromisoformat(data["timestamp"]),
            self_config=dict(data["self_config"]),
            metrics=PerformanceMetrics.from_dict(data["metrics"]),
            derived=DerivedMetrics.from_dict(data["derived"]),
            reason=str(data.get("reason", "")),
        )


@dataclass(frozen=True, slots=True)
class SnapshotResult:
    """Result of a snapshot request."""

    taken: bool
    reason: str
    snapshot: RollbackSnapshot | None = None
    index: int | None = None


@dataclass(frozen=True, slots=True)
class RollbackResult:
    """Result of a rollback check or manual rollback."""

    rolled_back: bool
    reason: str
    reasons: tuple[str, ...] = ()
    """Individual degradation findings, when any."""

    snapshot_index: int | None = None
    derived_after: DerivedMetrics | None = None
    """Metrics recomputed after restoration."""


# =============================================================================
# Authorization
# =============================================================================


@dataclass(frozen=True, slots=True)
class Authorization:
    """Pre-execution verdict for one operation."""

    operation: Operation
    tier: RiskTier
    trust: float
    requires_approval: bool
    loop_detected: bool
    """Advisory only. Never changes requires_approval."""

    reason: str
    rule_id: str = ""
