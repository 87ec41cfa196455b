"""``warden runtimes`` — show which isolation backends this host offers."""

from __future__ import annotations

import asyncio

import click

from warden.cli_commands._output import print_runtimes_json, print_runtimes_table


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of a table.")
def runtimes(as_json: bool) -> None:
    """Detect sandbox runtimes available on this host."""
    from warden.detect import detect_runtimes

    detected = asyncio.run(detect_runtimes())

    if as_json:
        print_runtimes_json(detected)
    else:
        print_runtimes_table(detected)
