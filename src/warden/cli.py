"""warden CLI entrypoint."""

from __future__ import annotations

import click

from warden import __version__


@click.group()
@click.version_option(version=__version__, prog_name="warden")
def main() -> None:
    """warden — run commands inside isolation sandboxes."""


# Register subcommands
from warden.cli_commands import register_commands  # noqa: E402

register_commands(main)

if __name__ == "__main__":
    main()
