"""``warden policy`` — print the nsjail config a configuration produces."""

from __future__ import annotations

import sys

import click
from rich.markup import escape

from warden.cli_commands._output import console


@click.command()
@click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="Sandbox config YAML.",
)
@click.option("--name", default="warden", show_default=True, help="Jail name in the policy.")
def policy(config_path: str | None, name: str) -> None:
    """Render the nsjail policy document for a sandbox config."""
    from warden.adapters.nsjail import build_policy
    from warden.errors import ConfigError
    from warden.models import SandboxConfig
    from warden.settings import load_config

    try:
        config = load_config(config_path) if config_path else SandboxConfig()
    except ConfigError as exc:
        console.print(f"[red]Validation error:[/red] {escape(str(exc))}")
        sys.exit(2)

    click.echo(build_policy(config, name).render(), nl=False)
