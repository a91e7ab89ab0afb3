"""Wire the quality gate into tool execution.

Code-modifying operations (``write_file``, ``delete_file``,
``modify_self_config``) are gated; data, log and scratch files are not.
The caller supplies the file's previous content, since the gate itself
never touches the filesystem.
"""

import difflib
import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from warden.gate.gate import QualityGateInput, RiskContext
from warden.guardrails.rules import DEFAULT_RULESET, RuleKind, RuleSet

CODE_MODIFYING_OPERATIONS = frozenset({"write_file", "delete_file", "modify_self_config"})

SELF_CONFIG_PATH = "config/self.json"

_SKIPPED_DIRS = ("/data/", "/logs/", "/tmp/", "/sandbox/repo/")
_GATED_JSON = ("package.json", "tsconfig.json")


@dataclass(frozen=True, slots=True)
class GateCheck:
    should_check: bool
    reason: str


def should_run_gate(operation_name: str, parameters: Mapping[str, Any] | None = None) -> GateCheck:
    """Decide whether an operation modifies source code."""
    if operation_name not in CODE_MODIFYING_OPERATIONS:
        return GateCheck(False, f"Operation '{operation_name}' does not modify code")

    if operation_name in ("write_file", "delete_file"):
        path = "/" + str((parameters or {}).get("path", "")).lower().lstrip("/")
        if (
            any(d in path for d in _SKIPPED_DIRS)
            or path.endswith(".log")
            or (path.endswith(".json") and not path.endswith(_GATED_JSON))
        ):
            return GateCheck(False, "Modifies a data or log file, not source code")

    return GateCheck(True, "Operation modifies source code")


def diff_for_write(path: str, before: str | None, after: str | None) -> str:
    """Unified diff for a file write or delete.

    ``before=None`` is a new file, ``after=None`` a deletion.
    """
    old = (before or "").splitlines(keepends=True)
    new = (after or "").splitlines(keepends=True)
    fromfile = f"a/{path}" if before is not None else "/dev/null"
    tofile = f"b/{path}" if after is not None else "/dev/null"
    lines = difflib.unified_diff(old, new, fromfile=fromfile, tofile=tofile)
    # Terminate lines lacking a trailing newline so hunks stay line-aligned
    return "".join(line if line.endswith("\n") else line + "\n" for line in lines)


def diff_for_self_config(parameters: Mapping[str, Any]) -> str:
    """Semantic diff for a ``modify_self_config`` request."""
    body = [
        f"Action: {parameters.get('action', 'N/A')}",
        f"Target: {parameters.get('target', 'N/A')}",
        f"Value: {json.dumps(parameters.get('value'), sort_keys=True)}",
        f"Reason: {parameters.get('reason', 'N/A')}",
    ]
    header = [f"--- a/{SELF_CONFIG_PATH}", f"+++ b/{SELF_CONFIG_PATH}", "@@ self-modification @@"]
    return "\n".join(header + ["+" + line for line in body]) + "\n"


def risk_context_for(
    operation_name: str,
    path: str,
    ruleset: RuleSet = DEFAULT_RULESET,
) -> RiskContext:
    """Derive the gate's risk context from the operation and its target path."""
    return RiskContext(
        touches_core=ruleset.first_match(RuleKind.SELF_MODIFICATION, operation_name) is not None,
        touches_gates="gate" in path.lower(),
        touches_critical_files=bool(path) and ruleset.first_match(RuleKind.CRITICAL_PATH, path) is not None,
    )


def gate_input_for_operation(
    operation_name: str,
    parameters: Mapping[str, Any],
    before: str | None = None,
    ruleset: RuleSet = DEFAULT_RULESET,
) -> QualityGateInput | None:
    """Build gate input for a code-modifying operation, or None when it is not gated.

    Args:
        operation_name: Tool being executed
        parameters: Tool parameters (``path`` and ``content`` for file writes)
        before: File content before the operation, None for a new file
        ruleset: Rules used to recognize self-modification and critical files
    """
    if not should_run_gate(operation_name, parameters).should_check:
        return None

    match operation_name:
        case "modify_self_config":
            path = SELF_CONFIG_PATH
            diff = diff_for_self_config(parameters)
        case "delete_file":
            path = str(parameters.get("path", ""))
            diff = diff_for_write(path, before, None)
        case _:
            path = str(parameters.get("path", ""))
            diff = diff_for_write(path, before, str(parameters.get("content", "")))

    return QualityGateInput(
        diff_text=diff,
        files_touched=(path,) if path else (),
        risk_context=risk_context_for(operation_name, path, ruleset),
    )
