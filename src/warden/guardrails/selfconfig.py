"""Agent self-configuration (architecture as data).

The agent's mutable configuration lives in a JSON file (``config/self.json``
by default) that the agent itself may modify. It is the only thing the
RollbackGuardian restores.
"""

import copy
import json
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Any

from warden.foundation.errors import ErrorCode, persistence_error
from warden.guardrails.store import write_json_atomic

logger = logging.getLogger(__name__)

DEFAULT_C_POTENTIAL = 0.8

DEFAULT_SELF_CONFIG: dict[str, Any] = {
    "version": "0.1.0",
    "autonomy": {
        "c_potential": DEFAULT_C_POTENTIAL,
    },
    "modules": {
        "memory": True,
        "actions": {"fs": True, "git": True, "shell": True, "web": False},
    },
    "capabilities": ["understand", "create_code", "modify_self", "use_tools"],
    "constraints": ["preserve_guardrails", "no_secret_access"],
    "approval": {
        "require_approval_for": ["core"],
    },
    "meta": {
        "created_at": None,
        "last_modified": None,
        "modification_count": 0,
    },
}


class SelfConfigStore:
    """Read and write the agent's self-configuration file.

    Example:
        >>> store = SelfConfigStore(Path("config/self.json"))
        >>> config = store.load_or_default()
        >>> config["autonomy"]["c_potential"] = 0.85
        >>> store.save(config, bump=True)
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.exists()

    def load(self) -> dict[str, Any] | None:
        """Load the configuration, or None when no file exists.

        Raises:
            PersistenceError: If the file exists but cannot be read or parsed.
        """
        with self._lock:
            try:
                content = self._path.read_text(encoding="utf-8")
            except FileNotFoundError:
                return None
            except PermissionError as e:
                raise persistence_error(ErrorCode.FILE_PERMISSION_DENIED, self._path, e) from e
            except (OSError, UnicodeDecodeError) as e:
                raise persistence_error(ErrorCode.FILE_READ_FAILED, self._path, e) from e

        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise persistence_error(ErrorCode.STATE_CORRUPT, self._path, e) from e

        if not isinstance(data, dict):
            raise persistence_error(
                ErrorCode.STATE_SCHEMA_INVALID, self._path, detail="expected a JSON object"
            )
        return data

    def load_or_default(self) -> dict[str, Any]:
        """Load the configuration, creating the default on first use."""
        data = self.load()
        if data is not None:
            return data

        data = copy.deepcopy(DEFAULT_SELF_CONFIG)
        now = datetime.now().isoformat()
        data["meta"]["created_at"] = now
        data["meta"]["last_modified"] = now
        self.save(data)
        logger.info("Created default self-configuration at %s", self._path)
        return data

    def save(self, config: dict[str, Any], *, bump: bool = False) -> None:
        """Atomically write the configuration.

        Args:
            config: Full configuration document
            bump: Record this as a self-modification (increments
                ``meta.modification_count`` and stamps ``meta.last_modified``)
        """
        data = copy.deepcopy(config)
        if bump:
            meta = data.setdefault("meta", {})
            meta["modification_count"] = int(meta.get("modification_count", 0)) + 1
            meta["last_modified"] = datetime.now().isoformat()

        with self._lock:
            write_json_atomic(self._path, data)

    def c_potential(self, default: float = DEFAULT_C_POTENTIAL) -> float:
        """Closure potential declared by the configuration."""
        data = self.load()
        if data is None:
            return default
        autonomy = data.get("autonomy")
        if not isinstance(autonomy, dict):
            return default
        value = autonomy.get("c_potential", default)
        try:
            return max(0.0, min(1.0, float(value)))
        except (TypeError, ValueError):
            logger.warning("Ignoring non-numeric autonomy.c_potential %r", value)
            return default
