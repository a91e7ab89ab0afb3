"""Config command - Inspect and initialize guardrail configuration."""

from pathlib import Path

import click
from rich.panel import Panel
from rich.table import Table

from warden.cli.helpers import console, get_system, print_json
from warden.guardrails.config import YAML_CONFIG_NAME, GuardrailConfig, save_config


@click.group()
def config() -> None:
    """Manage guardrail configuration.

    Configuration is loaded from (in priority order):
    1. pyproject.toml [tool.warden.guardrails]
    2. warden.yaml guardrails section
    3. Built-in defaults

    The state directory can always be overridden with WARDEN_STATE_DIR.
    """


@config.command()
@click.option("--json", "json_output", is_flag=True, help="Machine-readable output")
@click.pass_context
def show(ctx, json_output: bool) -> None:
    """Show the effective configuration."""
    system = get_system(ctx)
    data = system.config.to_dict()

    if json_output:
        print_json({**data, "resolved_state_dir": str(system.state_dir)})
        return

    console.print(Panel("[bold]Warden Configuration[/bold]", border_style="cyan"))
    console.print(f"\n  Workspace: {system.workspace}")
    console.print(f"  State dir: {system.state_dir}")
    console.print(f"  Self-config: {system.self_config.path}")
    console.print(f"  Rules: {system.config.rules_file or 'built-in'}")

    for section in ("trust", "loops", "rollback"):
        console.print(f"\n[cyan]{section.capitalize()}[/cyan]")
        table = Table(show_header=False, box=None, padding=(0, 2))
        table.add_column("Setting", style="dim")
        table.add_column("Value", justify="right")
        for key, value in data[section].items():
            table.add_row(key, str(value))
        console.print(table)


@config.command()
@click.option("--force", is_flag=True, help="Overwrite an existing file")
@click.pass_context
def init(ctx, force: bool) -> None:
    """Write the default configuration to warden.yaml."""
    workspace = ctx.ensure_object(dict).get("workspace") or Path.cwd()
    path = Path(workspace) / YAML_CONFIG_NAME
    if path.exists() and not force:
        raise click.ClickException(f"{path} already exists (use --force to overwrite)")

    save_config(GuardrailConfig(), path)
    console.print(f"[green]✓ Config file created:[/green] {path}")
