"""GuardrailStore - Durable state for trust, loop history and snapshots.

Stores three JSON documents in the state directory:
- ``metrics.json``: PerformanceMetrics running counters
- ``loop_history.json``: bounded list of LoopHistoryEntry records
- ``snapshots.json``: bounded list of RollbackSnapshot records

Every file is read fully and rewritten fully through a temp file and
``os.replace``, so a failed write leaves the previous state intact. A
missing file means "no state yet"; an unreadable or malformed file is a
PersistenceError, never a silent reset.
"""

import json
import logging
import os
import tempfile
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

from warden.foundation.errors import ErrorCode, persistence_error
from warden.guardrails.types import LoopHistoryEntry, PerformanceMetrics, RollbackSnapshot

logger = logging.getLogger(__name__)

T = TypeVar("T")

METRICS_FILE = "metrics.json"
LOOP_HISTORY_FILE = "loop_history.json"
SNAPSHOTS_FILE = "snapshots.json"


class GuardrailStore:
    """Persistent store shared by the ledger, loop detector and guardian.

    Thread-safe within one process. Across processes the last writer wins.

    Example:
        >>> store = GuardrailStore(Path(".warden"))
        >>> metrics = store.load_metrics()
        >>> metrics.tests_passed += 3
        >>> store.save_metrics(metrics)
    """

    def __init__(self, state_dir: Path) -> None:
        """Initialize store.

        Args:
            state_dir: Directory for state files (created on first write)
        """
        self._state_dir = Path(state_dir)
        self._lock = threading.Lock()

    @property
    def state_dir(self) -> Path:
        return self._state_dir

    @property
    def metrics_file(self) -> Path:
        return self._state_dir / METRICS_FILE

    @property
    def loop_history_file(self) -> Path:
        return self._state_dir / LOOP_HISTORY_FILE

    @property
    def snapshots_file(self) -> Path:
        return self._state_dir / SNAPSHOTS_FILE

    # -------------------------------------------------------------------------
    # Metrics
    # -------------------------------------------------------------------------

    def load_metrics(self) -> PerformanceMetrics:
        """Load running counters, or fresh ones if none are stored."""
        data = self._read(self.metrics_file)
        if data is None:
            return PerformanceMetrics()
        return self._decode(self.metrics_file, lambda: PerformanceMetrics.from_dict(data))

    def save_metrics(self, metrics: PerformanceMetrics) -> None:
        self._write(self.metrics_file, metrics.to_dict())

    # -------------------------------------------------------------------------
    # Loop history
    # -------------------------------------------------------------------------

    def load_loop_history(self) -> list[LoopHistoryEntry]:
        data = self._read(self.loop_history_file)
        if data is None:
            return []
        return self._decode(
            self.loop_history_file,
            lambda: [LoopHistoryEntry.from_dict(item) for item in data],
        )

    def save_loop_history(self, history: list[LoopHistoryEntry]) -> None:
        self._write(self.loop_history_file, [entry.to_dict() for entry in history])

    # -------------------------------------------------------------------------
    # Snapshots
    # -------------------------------------------------------------------------

    def load_snapshots(self) -> list[RollbackSnapshot]:
        data = self._read(self.snapshots_file)
        if data is None:
            return []
        return self._decode(
            self.snapshots_file,
            lambda: [RollbackSnapshot.from_dict(item) for item in data],
        )

    def save_snapshots(self, snapshots: list[RollbackSnapshot]) -> None:
        self._write(self.snapshots_file, [snap.to_dict() for snap in snapshots])

    def clear_snapshots(self) -> None:
        """Remove the snapshot file entirely."""
        with self._lock:
            try:
                self.snapshots_file.unlink(missing_ok=True)
            except OSError as e:
                raise persistence_error(ErrorCode.FILE_WRITE_FAILED, self.snapshots_file, e) from e

    # -------------------------------------------------------------------------
    # IO
    # -------------------------------------------------------------------------

    def _read(self, path: Path) -> Any:
        """Read and parse a JSON document. Returns None when the file is absent."""
        with self._lock:
            try:
                content = path.read_text(encoding="utf-8")
            except FileNotFoundError:
                return None
            except PermissionError as e:
                raise persistence_error(ErrorCode.FILE_PERMISSION_DENIED, path, e) from e
            except (OSError, UnicodeDecodeError) as e:
                raise persistence_error(ErrorCode.FILE_READ_FAILED, path, e) from e

        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            raise persistence_error(ErrorCode.STATE_CORRUPT, path, e) from e

    def _decode(self, path: Path, build: Callable[[], T]) -> T:
        try:
            return build()
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise persistence_error(
                ErrorCode.STATE_SCHEMA_INVALID, path, e, detail=f"{type(e).__name__}: {e}"
            ) from e

    def _write(self, path: Path, data: Any) -> None:
        with self._lock:
            write_json_atomic(path, data)


def write_json_atomic(path: Path, data: Any) -> None:
    """Atomically replace a JSON document.

    Raises:
        PersistenceError: If the directory or file cannot be written. The
            previous file, if any, is left untouched.
    """
    content = json.dumps(data, indent=2, sort_keys=True)

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            suffix=".tmp",
            prefix=f"{path.stem}_",
            dir=path.parent,
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.replace(tmp_path, path)
        except Exception:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
    except PermissionError as e:
        raise persistence_error(ErrorCode.FILE_PERMISSION_DENIED, path, e) from e
    except OSError as e:
        raise persistence_error(ErrorCode.FILE_WRITE_FAILED, path, e) from e

    logger.debug("Saved %s", path)
