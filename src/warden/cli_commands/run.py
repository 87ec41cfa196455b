"""``warden run`` — execute one command inside a sandbox."""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from typing import IO, TYPE_CHECKING

import click
from rich.markup import escape

from warden.cli_commands._output import console, print_result

if TYPE_CHECKING:
    from warden.models import ExecutionRequest, ExecutionResult, SandboxConfig

EXIT_TIMEOUT = 124
EXIT_SANDBOX_FAILURE = 125
EXIT_KILLED = 128 + signal.SIGKILL
EXIT_USAGE = 2


def _parse_env(
    ctx: click.Context, param: click.Parameter, values: tuple[str, ...]
) -> dict[str, str]:
    env: dict[str, str] = {}
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got {item!r}", ctx=ctx, param=param)
        env[key] = value
    return env


@click.command(context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False})
@click.argument("command")
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.option("--runtime", "-r", default="auto", show_default=True, help="Backend to use.")
@click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="Sandbox config YAML.",
)
@click.option("--memory", default=None, help="Memory limit, e.g. 256Mi.")
@click.option("--cpu", default=None, help="CPU limit in cores, e.g. 0.5.")
@click.option("--timeout-ms", type=int, default=None, help="Wall-clock limit in milliseconds.")
@click.option("--max-output-bytes", type=int, default=None, help="Cap per output stream.")
@click.option(
    "--network",
    type=click.Choice(["none", "host", "restricted"]),
    default=None,
    help="Network exposure.",
)
@click.option("--workdir", default=None, help="Working directory inside the sandbox.")
@click.option("--env", "-e", "env", multiple=True, callback=_parse_env, help="KEY=VALUE.")
@click.option("--stdin-file", type=click.File("r"), default=None, help="Feed FILE to stdin.")
@click.option("--no-fallback", is_flag=True, help="Fail if the requested runtime is missing.")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON.")
@click.option("--telemetry", is_flag=True, help="Enable telemetry.")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
def run(
    command: str,
    args: tuple[str, ...],
    runtime: str,
    config_path: str | None,
    memory: str | None,
    cpu: str | None,
    timeout_ms: int | None,
    max_output_bytes: int | None,
    network: str | None,
    workdir: str | None,
    env: dict[str, str],
    stdin_file: IO[str] | None,
    no_fallback: bool,
    as_json: bool,
    telemetry: bool,
    verbose: bool,
) -> None:
    """Run COMMAND [ARGS]... inside a sandbox.

    Exits with the command's own exit code, 124 on timeout, 137 when the
    command was killed and 125 when no sandbox could run it.
    """
    from pydantic import ValidationError

    from warden.errors import ConfigError, SandboxError
    from warden.models import ExecutionRequest, SandboxConfig
    from warden.settings import apply_overrides, load_config

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if telemetry:
        from warden.utils.telemetry import configure_telemetry

        try:
            configure_telemetry()
        except ImportError as exc:
            console.print(f"[red]Telemetry error:[/red] {escape(str(exc))}")
            sys.exit(EXIT_USAGE)

    try:
        base = load_config(config_path) if config_path else SandboxConfig()
        config = apply_overrides(
            base,
            memory=memory,
            cpu=cpu,
            timeout_ms=timeout_ms,
            max_output_bytes=max_output_bytes,
            network=network,
        )
    except ConfigError as exc:
        console.print(f"[red]Validation error:[/red] {escape(str(exc))}")
        sys.exit(EXIT_USAGE)

    try:
        request = ExecutionRequest(
            command=command,
            args=list(args),
            env=env,
            stdin=stdin_file.read() if stdin_file is not None else None,
            work_dir=workdir,
        )
    except ValidationError as exc:
        console.print(f"[red]Validation error:[/red] {escape(str(exc))}")
        sys.exit(EXIT_USAGE)

    if verbose:
        console.print(f"Runtime: {runtime}  memory={config.memory} cpu={config.cpu}")

    try:
        result = asyncio.run(_execute(config, request, runtime, fallback=not no_fallback))
    except SandboxError as exc:
        console.print(f"[red]Error:[/red] {escape(str(exc))}")
        sys.exit(EXIT_SANDBOX_FAILURE)

    print_result(result, as_json=as_json)
    sys.exit(exit_status(result))


async def _execute(
    config: SandboxConfig,
    request: ExecutionRequest,
    runtime: str,
    *,
    fallback: bool,
) -> ExecutionResult:
    from warden.selection import create_sandbox

    sandbox = await create_sandbox(config, runtime, fallback=fallback)
    async with sandbox:
        return await sandbox.execute(request)


def exit_status(result: ExecutionResult) -> int:
    """Shell exit status mirroring *result*."""
    from warden.models import ExecutionOutcome

    if result.outcome is ExecutionOutcome.SPAWN_FAILED:
        return EXIT_SANDBOX_FAILURE
    if result.timed_out:
        return EXIT_TIMEOUT
    if result.killed:
        return EXIT_KILLED
    if result.signal is not None:
        return 128 + result.signal
    return result.exit_code if result.exit_code is not None else EXIT_SANDBOX_FAILURE
