"""CLI subcommand registration."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register all subcommands on the CLI group."""
    from warden.cli_commands.policy import policy
    from warden.cli_commands.run import run
    from warden.cli_commands.runtimes import runtimes

    cli.add_command(run)
    cli.add_command(runtimes)
    cli.add_command(policy)
