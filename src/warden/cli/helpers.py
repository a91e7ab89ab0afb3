"""Shared helper functions for CLI commands."""

import json
from pathlib import Path
from typing import Any

import click
from rich.console import Console
from rich.markup import escape

from warden.foundation.errors import WardenError
from warden.guardrails.system import GuardrailSystem
from warden.guardrails.types import Readiness, RiskTier

console = Console()
# Errors go to stderr so --json output stays parseable
stderr_console = Console(stderr=True)

TIER_STYLES = {
    RiskTier.READONLY: "green",
    RiskTier.WRITE: "yellow",
    RiskTier.CORE: "red",
}

READINESS_STYLES = {
    Readiness.EXCELLENT: "green",
    Readiness.STABLE: "yellow",
    Readiness.DEGRADED: "red",
}


def get_system(ctx: click.Context) -> GuardrailSystem:
    """Build (once per invocation) the guardrail system for the selected workspace."""
    obj = ctx.ensure_object(dict)
    if "system" not in obj:
        obj["system"] = GuardrailSystem(workspace=obj.get("workspace") or Path.cwd())
    return obj["system"]


def parse_params(pairs: tuple[str, ...]) -> dict[str, str]:
    """Parse repeated ``key=value`` options into a parameter map."""
    params: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected key=value, got {pair!r}", param_hint="-p/--param")
        params[key.strip()] = value
    return params


def print_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


def print_error(error: WardenError) -> None:
    """Render a structured error with its recovery hints."""
    stderr_console.print(f"[red bold]✗ {escape(str(error))}[/red bold]")
    for hint in error.recovery_hints:
        stderr_console.print(f"  [dim]→ {escape(hint)}[/dim]")


def tier_label(tier: RiskTier) -> str:
    style = TIER_STYLES[tier]
    return f"[{style}]{tier.value.upper()}[/{style}]"


def readiness_label(readiness: Readiness) -> str:
    style = READINESS_STYLES[readiness]
    return f"[{style}]{readiness.value}[/{style}]"
