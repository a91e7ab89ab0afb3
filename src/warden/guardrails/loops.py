"""Operational loop detection.

Keeps a bounded history of operation attempts and flags when the same
(tool, parameters, outcome) triple repeats inside the most recent window.
Old entries are evicted FIFO so stale failures stop counting against the
agent. A detected loop is advisory: it never blocks or rolls back anything
by itself.
"""

import json
import logging
from collections import Counter
from collections.abc import Mapping
from datetime import datetime
from hashlib import sha256
from typing import Any

from warden.guardrails.store import GuardrailStore
from warden.guardrails.types import LoopHistoryEntry, LoopPolicy, LoopReport, OperationOutcome

logger = logging.getLogger(__name__)


def _canonicalize(obj: Any) -> Any:
    """Convert ``obj`` into a JSON-serializable structure with deterministic ordering."""
    if obj is None or isinstance(obj, (bool, int, float, str)):
        return obj
    if isinstance(obj, bytes):
        return {"__bytes__": sha256(obj).hexdigest()}
    if isinstance(obj, (list, tuple)):
        return [_canonicalize(x) for x in obj]
    if isinstance(obj, (set, frozenset)):
        return sorted((_canonicalize(x) for x in obj), key=str)
    if isinstance(obj, Mapping):
        items = [(str(k), _canonicalize(v)) for k, v in obj.items()]
        return dict(sorted(items, key=lambda kv: kv[0]))
    return str(obj)


def parameter_digest(parameters: Mapping[str, Any] | None) -> str:
    """Stable digest of a parameter map.

    Key order and container types do not affect the digest; values do.
    """
    canonical = json.dumps(
        _canonicalize(parameters or {}),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return sha256(canonical.encode("utf-8")).hexdigest()


class LoopDetector:
    """Detect repeated identical failing operations.

    Example:
        >>> detector = LoopDetector(store)
        >>> for _ in range(3):
        ...     looping = detector.record("run_command", {"command": "make"}, OperationOutcome.OTHER_ERROR)
        >>> looping
        True
    """

    def __init__(self, store: GuardrailStore, policy: LoopPolicy | None = None) -> None:
        self.store = store
        self.policy = policy or LoopPolicy()

    def history(self) -> list[LoopHistoryEntry]:
        """All retained entries, oldest first."""
        return self.store.load_loop_history()

    def record(
        self,
        tool_name: str,
        parameters: Mapping[str, Any] | None,
        outcome: OperationOutcome,
    ) -> bool:
        """Append an attempt to the history.

        Returns:
            True when the attempt failed and its triple now repeats at or
            above the threshold inside the window.
        """
        digest = parameter_digest(parameters)
        history = self.store.load_loop_history()
        history.append(
            LoopHistoryEntry(
                tool_name=tool_name,
                parameter_digest=digest,
                outcome=outcome,
                timestamp=datetime.now(),
            )
        )
        if len(history) > self.policy.history_size:
            del history[: len(history) - self.policy.history_size]
        self.store.save_loop_history(history)

        if outcome.is_valid:
            return False

        count = self._count(history, tool_name, digest, outcome)
        if count >= self.policy.threshold:
            logger.info(
                "Operational loop: %s failed with %s %d times in the last %d attempts",
                tool_name,
                outcome.value,
                count,
                self.policy.window,
            )
            return True
        return False

    def detect(
        self,
        tool_name: str,
        parameters: Mapping[str, Any] | None,
        outcome: OperationOutcome,
    ) -> bool:
        """Whether the window already holds this triple at or above the threshold."""
        history = self.store.load_loop_history()
        count = self._count(history, tool_name, parameter_digest(parameters), outcome)
        return count >= self.policy.threshold

    def is_looping(self, tool_name: str, parameters: Mapping[str, Any] | None) -> bool:
        """Whether any failing outcome of this call is currently looping."""
        history = self.store.load_loop_history()
        digest = parameter_digest(parameters)
        return any(
            self._count(history, tool_name, digest, outcome) >= self.policy.threshold
            for outcome in OperationOutcome
            if not outcome.is_valid
        )

    def find_loops(self) -> list[LoopReport]:
        """Every failing triple at or above the threshold in the current window."""
        window = self._window(self.store.load_loop_history())
        counts = Counter(
            (e.tool_name, e.parameter_digest, e.outcome)
            for e in window
            if not e.outcome.is_valid
        )
        return [
            LoopReport(tool_name=tool, parameter_digest=digest, outcome=outcome, count=count)
            for (tool, digest, outcome), count in counts.most_common()
            if count >= self.policy.threshold
        ]

    def clear(self) -> None:
        self.store.save_loop_history([])

    def _window(self, history: list[LoopHistoryEntry]) -> list[LoopHistoryEntry]:
        return history[-self.policy.window :]

    def _count(
        self,
        history: list[LoopHistoryEntry],
        tool_name: str,
        digest: str,
        outcome: OperationOutcome,
    ) -> int:
        return sum(1 for e in self._window(history) if e.matches(tool_name, digest, outcome))
