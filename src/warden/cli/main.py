"""Main CLI entry point.

    warden classify write_file -p path=config/self.json
    warden gate change.diff
    warden trust show
"""

from pathlib import Path

import click

from warden import __version__
from warden.cli.helpers import print_error
from warden.foundation.errors import WardenError
from warden.foundation.logging import configure_logging


class WardenGroup(click.Group):
    """Group that renders structured errors instead of tracebacks."""

    def invoke(self, ctx: click.Context):
        try:
            return super().invoke(ctx)
        except WardenError as e:
            print_error(e)
            ctx.exit(1)


@click.group(cls=WardenGroup)
@click.option(
    "--workspace",
    "-w",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Agent workspace (default: current directory)",
)
@click.option("--debug", is_flag=True, help="Verbose logging")
@click.version_option(version=__version__)
@click.pass_context
def main(ctx, workspace: Path | None, debug: bool) -> None:
    """Warden: guardrails for self-modifying agents.

    \b
    Classify an operation before running it:

        warden classify run_command -p command="git status"

    \b
    Gate a proposed change:

        warden gate change.diff

    \b
    Inspect earned trust and loops:

        warden trust show
        warden loops
    """
    configure_logging(debug=debug)
    ctx.ensure_object(dict)
    ctx.obj["workspace"] = workspace


from warden.cli import config_cmd, gate_cmd, guard_cmd, snapshot_cmd, trust_cmd  # noqa: E402

main.add_command(guard_cmd.classify)
main.add_command(guard_cmd.rules)
main.add_command(guard_cmd.loops)
main.add_command(gate_cmd.gate)
main.add_command(trust_cmd.trust)
main.add_command(snapshot_cmd.snapshot)
main.add_command(config_cmd.config)
