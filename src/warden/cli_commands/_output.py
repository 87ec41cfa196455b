"""Shared CLI output formatters."""

from __future__ import annotations

import json

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from warden.models import ExecutionResult, SandboxRuntime  # noqa: TC001

console = Console()
err_console = Console(stderr=True)


def print_runtimes_table(runtimes: list[SandboxRuntime]) -> None:
    """Pretty-print detected runtimes as a table."""
    table = Table(title="Sandbox Runtimes")
    table.add_column("Runtime", style="cyan")
    table.add_column("Available")
    table.add_column("Version")

    for runtime in runtimes:
        table.add_row(
            runtime.name,
            "[green]yes[/green]" if runtime.available else "[dim]no[/dim]",
            escape(_truncate(runtime.version or "-")),
        )

    console.print(table)


def print_runtimes_json(runtimes: list[SandboxRuntime]) -> None:
    console.print_json(json.dumps([r.model_dump() for r in runtimes]))


def print_result(result: ExecutionResult, *, as_json: bool = False) -> None:
    """Relay the sandboxed command's output, then a status line on stderr."""
    if as_json:
        console.print_json(result.model_dump_json())
        return

    # Captured output is passed through verbatim, never as rich markup.
    if result.stdout:
        click.echo(result.stdout, nl=not result.stdout.endswith("\n"))
    if result.stderr:
        click.echo(result.stderr, nl=not result.stderr.endswith("\n"), err=True)

    if result.error:
        err_console.print(f"[red]Sandbox error:[/red] {escape(result.error)}")
    elif result.timed_out:
        err_console.print(f"[yellow]Timed out after {result.duration_ms:.0f} ms[/yellow]")
    elif result.killed:
        err_console.print(f"[red]Killed (signal {result.signal})[/red]")


def _truncate(text: str, max_len: int = 60) -> str:
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."
