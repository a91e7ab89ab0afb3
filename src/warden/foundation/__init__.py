"""Foundation utilities shared by every Warden subsystem."""

from warden.foundation.errors import (
    ERROR_MESSAGES,
    RECOVERY_HINTS,
    ConfigError,
    ErrorCode,
    PersistenceError,
    WardenError,
)
from warden.foundation.logging import configure_logging
from warden.foundation.state import ensure_state_dir, resolve_state_dir

__all__ = [
    "ERROR_MESSAGES",
    "RECOVERY_HINTS",
    "ConfigError",
    "ErrorCode",
    "PersistenceError",
    "WardenError",
    "configure_logging",
    "ensure_state_dir",
    "resolve_state_dir",
]
