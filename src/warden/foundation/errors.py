"""Warden Error System.

Provides structured error handling with:
- Numeric error codes for programmatic handling
- User-friendly messages
- Recovery hints for operators

Only two kinds of failure are ever raised to callers: invalid configuration
and durable-state failures. Malformed input and policy violations are
reported as results, never as exceptions.
"""


from enum import IntEnum
from pathlib import Path
from typing import Any


class ErrorCode(IntEnum):
    """Numeric error codes organized by category.

    Format: XYYY where X = category, YYY = specific error

    Categories:
        5xxx - Configuration errors
        6xxx - Runtime/state errors
        7xxx - IO errors
    """

    # 5xxx - Configuration Errors
    CONFIG_INVALID = 5002
    CONFIG_RULES_INVALID = 5004

    # 6xxx - Runtime Errors
    STATE_CORRUPT = 6001
    STATE_SCHEMA_INVALID = 6004

    # 7xxx - IO Errors
    FILE_READ_FAILED = 7003
    FILE_PERMISSION_DENIED = 7004
    FILE_WRITE_FAILED = 7005

    @property
    def category(self) -> str:
        """Get the error category name."""
        prefix = self.value // 1000
        return {
            5: "config",
            6: "state",
            7: "io",
        }.get(prefix, "unknown")

    @property
    def is_recoverable(self) -> bool:
        """Whether this error type is typically recoverable."""
        non_recoverable = {
            ErrorCode.CONFIG_INVALID,
            ErrorCode.CONFIG_RULES_INVALID,
            ErrorCode.STATE_CORRUPT,
        }
        return self not in non_recoverable


# Human-readable error messages
ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.CONFIG_INVALID: "Invalid configuration for '{key}': {detail}",
    ErrorCode.CONFIG_RULES_INVALID: "Invalid risk rule table '{path}': {detail}",
    ErrorCode.STATE_CORRUPT: "State file is corrupt: {path} ({detail})",
    ErrorCode.STATE_SCHEMA_INVALID: "State file has an unexpected shape: {path} ({detail})",
    ErrorCode.FILE_READ_FAILED: "Failed to read state file: {path} ({detail})",
    ErrorCode.FILE_PERMISSION_DENIED: "Permission denied: {path}",
    ErrorCode.FILE_WRITE_FAILED: "Failed to write state file: {path} ({detail})",
}


RECOVERY_HINTS: dict[ErrorCode, list[str]] = {
    ErrorCode.CONFIG_INVALID: [
        "Check [tool.warden.guardrails] in pyproject.toml or warden.yaml",
        "Run 'warden config show' to see the effective configuration",
    ],
    ErrorCode.CONFIG_RULES_INVALID: [
        "Every rule needs 'id', 'kind' and 'pattern'",
        "Remove 'rules_file' from the configuration to use the built-in table",
    ],
    ErrorCode.STATE_CORRUPT: [
        "Inspect or move aside {path}",
        "Run 'warden trust reset' to start a fresh trust window",
    ],
    ErrorCode.STATE_SCHEMA_INVALID: [
        "Inspect or move aside {path}",
    ],
    ErrorCode.FILE_PERMISSION_DENIED: [
        "Check ownership of the state directory",
        "Set WARDEN_STATE_DIR to a writable location",
    ],
    ErrorCode.FILE_WRITE_FAILED: [
        "Check free disk space",
        "Set WARDEN_STATE_DIR to a writable location",
    ],
}


class WardenError(Exception):
    """Base error type for all Warden errors.

    Example:
        >>> err = WardenError(
        ...     code=ErrorCode.FILE_WRITE_FAILED,
        ...     context={"path": ".warden/metrics.json", "detail": "disk full"},
        ... )
        >>> print(err)
        [WD-7005] Failed to write state file: .warden/metrics.json (disk full)
    """

    def __init__(
        self,
        code: ErrorCode,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ):
        self.code = code
        self.context = context or {}
        self.cause = cause
        super().__init__(str(self))

    @property
    def message(self) -> str:
        """Get the formatted user-friendly message."""
        template = ERROR_MESSAGES.get(self.code, "An error occurred: {detail}")
        try:
            return template.format(**self.context)
        except KeyError:
            return template

    @property
    def recovery_hints(self) -> list[str]:
        """Get recovery suggestions for this error."""
        formatted = []
        for hint in RECOVERY_HINTS.get(self.code, []):
            try:
                formatted.append(hint.format(**self.context))
            except KeyError:
                formatted.append(hint)
        return formatted

    @property
    def is_recoverable(self) -> bool:
        return self.code.is_recoverable

    @property
    def category(self) -> str:
        return self.code.category

    @property
    def error_id(self) -> str:
        """Get the error ID string (e.g., 'WD-7005')."""
        return f"WD-{self.code.value}"

    def __str__(self) -> str:
        return f"[{self.error_id}] {self.message}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, context={self.context!r})"

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dict for logging/JSON output."""
        return {
            "error_id": self.error_id,
            "code": self.code.value,
            "category": self.category,
            "message": self.message,
            "recoverable": self.is_recoverable,
            "recovery_hints": self.recovery_hints,
            "context": self.context,
        }


class PersistenceError(WardenError):
    """Durable guardrail state could not be read or written.

    Trust, loop history and snapshots are only meaningful if they survive
    between runs, so this is always raised to the caller.
    """


class ConfigError(WardenError):
    """Guardrail configuration or risk rule table is invalid."""


def persistence_error(
    code: ErrorCode,
    path: Path | str,
    cause: Exception | None = None,
    detail: str = "",
) -> PersistenceError:
    """Create a state read/write error."""
    return PersistenceError(
        code=code,
        context={"path": str(path), "detail": detail or (str(cause) if cause else "")},
        cause=cause,
    )


def config_error(
    key: str,
    detail: str,
    cause: Exception | None = None,
) -> ConfigError:
    """Create a CONFIG_INVALID error."""
    return ConfigError(
        code=ErrorCode.CONFIG_INVALID,
        context={"key": key, "detail": detail},
        cause=cause,
    )
