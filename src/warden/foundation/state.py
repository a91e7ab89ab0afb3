"""Central state directory resolution.

Every subsystem that needs to read/write durable guardrail state should call
``resolve_state_dir()`` instead of constructing ``.warden/`` paths inline.

Resolution precedence:
  1. ``WARDEN_STATE_DIR`` environment variable (absolute override)
  2. ``state_dir`` configured in ``GuardrailConfig``
  3. Default: ``{workspace}/.warden/``
"""

import logging
import os
from pathlib import Path

from warden.foundation.errors import ErrorCode, persistence_error

logger = logging.getLogger(__name__)

DEFAULT_STATE_DIRNAME = ".warden"


def resolve_state_dir(workspace: Path, configured: str | Path | None = None) -> Path:
    """Resolve the state directory for a workspace.

    Args:
        workspace: Path to the workspace root (where the agent's source lives).
        configured: Optional ``state_dir`` from configuration. Relative paths
            are resolved against the workspace.

    Returns:
        Absolute path to the directory where guardrail state is stored.
    """
    workspace = Path(workspace).resolve()

    env = os.environ.get("WARDEN_STATE_DIR", "").strip()
    if env:
        p = Path(env).resolve()
        logger.debug("State dir from WARDEN_STATE_DIR: %s", p)
        return p

    if configured:
        p = Path(configured)
        if not p.is_absolute():
            p = workspace / p
        p = p.resolve()
        logger.debug("State dir from config: %s", p)
        return p

    return workspace / DEFAULT_STATE_DIRNAME


def ensure_state_dir(workspace: Path, configured: str | Path | None = None) -> Path:
    """Resolve and create the state directory if it doesn't exist.

    Raises:
        PersistenceError: If the directory cannot be created.
    """
    state = resolve_state_dir(workspace, configured)
    try:
        state.mkdir(parents=True, exist_ok=True)
    except PermissionError as e:
        raise persistence_error(ErrorCode.FILE_PERMISSION_DENIED, state, e) from e
    except OSError as e:
        raise persistence_error(ErrorCode.FILE_WRITE_FAILED, state, e) from e
    return state
