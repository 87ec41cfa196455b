"""Execution supervisor shared by every backend adapter.

Spawns the backend's wrapper process, writes stdin once, drains stdout and
stderr into bounded sinks and races process exit against the wall-clock
deadline.  Each wrapper runs in its own session, so a timeout kills its
whole process group, background children included.  Whatever happens, the caller gets an :class:`ExecutionResult`:
spawn failures, timeouts and kills are reported, never raised.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import time
from collections.abc import Awaitable, Callable, Mapping, Sequence

from warden.models import ExecutionOutcome, ExecutionResult
from warden.utils.telemetry import (
    ATTR_COMMAND,
    ATTR_DURATION_MS,
    ATTR_EXIT_CODE,
    ATTR_KILLED,
    ATTR_OUTCOME,
    ATTR_TIMED_OUT,
    ATTR_TIMEOUT_MS,
    get_tracer,
)

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

_READ_CHUNK = 64 * 1024

# After the process is reaped, grandchildren may still hold the pipes open.
_DRAIN_GRACE_SECONDS = 0.5

_STREAM_LIMIT = 64 * 1024

TimeoutHook = Callable[[], Awaitable[None]]


class _ExitAwareProtocol(asyncio.subprocess.SubprocessStreamProtocol):
    """Stream protocol that resolves :attr:`exited` as soon as the child is reaped.

    ``Process.wait()`` also waits for every pipe to close, which a background
    grandchild can postpone indefinitely.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        super().__init__(limit=_STREAM_LIMIT, loop=loop)
        self.exited: asyncio.Future[None] = loop.create_future()

    def process_exited(self) -> None:
        super().process_exited()
        if not self.exited.done():
            self.exited.set_result(None)


class BoundedSink:
    """Byte buffer that silently discards everything past *limit*."""

    __slots__ = ("_buffer", "_limit", "_dropped")

    def __init__(self, limit: int) -> None:
        if limit < 0:
            raise ValueError("limit must be >= 0")
        self._buffer = bytearray()
        self._limit = limit
        self._dropped = 0

    def write(self, data: bytes) -> int:
        """Accept up to the remaining capacity; return bytes kept."""
        room = self._limit - len(self._buffer)
        kept = data[:room] if room > 0 else b""
        self._buffer += kept
        self._dropped += len(data) - len(kept)
        return len(kept)

    @property
    def truncated(self) -> bool:
        return self._dropped > 0

    @property
    def dropped(self) -> int:
        return self._dropped

    def __len__(self) -> int:
        return len(self._buffer)

    def getvalue(self) -> bytes:
        return bytes(self._buffer)

    def text(self) -> str:
        return self._buffer.decode(errors="replace")


async def supervise(
    argv: Sequence[str],
    *,
    timeout_ms: int,
    max_output_bytes: int,
    stdin: str | None = None,
    env: Mapping[str, str] | None = None,
    cwd: str | None = None,
    on_timeout: TimeoutHook | None = None,
    runtime: str = "",
) -> ExecutionResult:
    """Run *argv* to completion or until *timeout_ms* expires.

    ``on_timeout`` runs before the wrapper process is force-killed, for
    backends whose workload outlives the client process (containers).
    """
    with _tracer.start_as_current_span("warden.sandbox.supervise") as span:
        span.set_attribute(ATTR_COMMAND, argv[0] if argv else "")
        span.set_attribute(ATTR_TIMEOUT_MS, timeout_ms)

        result = await _supervise(
            list(argv),
            timeout_ms=timeout_ms,
            max_output_bytes=max_output_bytes,
            stdin=stdin,
            env=dict(env) if env is not None else None,
            cwd=cwd,
            on_timeout=on_timeout,
            runtime=runtime,
        )

        if result.exit_code is not None:
            span.set_attribute(ATTR_EXIT_CODE, result.exit_code)
        span.set_attribute(ATTR_TIMED_OUT, result.timed_out)
        span.set_attribute(ATTR_KILLED, result.killed)
        span.set_attribute(ATTR_OUTCOME, result.outcome.value)
        span.set_attribute(ATTR_DURATION_MS, result.duration_ms)
        return result


async def _supervise(
    argv: list[str],
    *,
    timeout_ms: int,
    max_output_bytes: int,
    stdin: str | None,
    env: dict[str, str] | None,
    cwd: str | None,
    on_timeout: TimeoutHook | None,
    runtime: str,
) -> ExecutionResult:
    started = time.monotonic()
    stdout_sink = BoundedSink(max_output_bytes)
    stderr_sink = BoundedSink(max_output_bytes)
    loop = asyncio.get_running_loop()

    logger.debug("Spawning %s", argv)
    try:
        transport, protocol = await loop.subprocess_exec(
            lambda: _ExitAwareProtocol(loop),
            *argv,
            stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=env,
            cwd=cwd,
            start_new_session=True,
        )
    except (OSError, ValueError) as exc:
        logger.warning("Failed to spawn %s: %s", argv[0] if argv else "<empty>", exc)
        return ExecutionResult(
            success=False,
            exit_code=None,
            duration_ms=_elapsed_ms(started),
            error=str(exc) or type(exc).__name__,
            outcome=ExecutionOutcome.SPAWN_FAILED,
            runtime=runtime,
        )

    proc = asyncio.subprocess.Process(transport, protocol, loop)
    pumps = [
        asyncio.create_task(_pump(proc.stdout, stdout_sink)),
        asyncio.create_task(_pump(proc.stderr, stderr_sink)),
    ]
    feeder = asyncio.create_task(_feed(proc.stdin, stdin)) if stdin is not None else None

    timed_out = False
    try:
        done, _ = await asyncio.wait({protocol.exited}, timeout=timeout_ms / 1000)
        if not done:
            timed_out = True
            logger.warning("Execution of %s exceeded %d ms, terminating", argv[0], timeout_ms)
            if on_timeout is not None:
                await _run_timeout_hook(on_timeout)
            _force_kill(proc)
            await protocol.exited
    except asyncio.CancelledError:
        _force_kill(proc)
        raise
    finally:
        await _finish(pumps, feeder)
        transport.close()

    returncode = proc.returncode
    term_signal = -returncode if returncode is not None and returncode < 0 else None
    killed = term_signal == signal.SIGKILL and not timed_out

    if timed_out:
        outcome = ExecutionOutcome.TIMED_OUT
    elif killed:
        outcome = ExecutionOutcome.KILLED
    else:
        outcome = ExecutionOutcome.COMPLETED

    if timed_out or term_signal is not None or returncode is None:
        exit_code = -1
    else:
        exit_code = returncode
    return ExecutionResult(
        success=exit_code == 0 and not timed_out and not killed,
        exit_code=exit_code,
        stdout=stdout_sink.text(),
        stderr=stderr_sink.text(),
        timed_out=timed_out,
        killed=killed,
        duration_ms=_elapsed_ms(started),
        outcome=outcome,
        signal=term_signal,
        runtime=runtime,
    )


async def _pump(stream: asyncio.StreamReader | None, sink: BoundedSink) -> None:
    """Drain *stream* to EOF; bytes past the sink's cap are dropped."""
    if stream is None:
        return
    while True:
        chunk = await stream.read(_READ_CHUNK)
        if not chunk:
            return
        sink.write(chunk)


async def _feed(writer: asyncio.StreamWriter | None, payload: str) -> None:
    """Write *payload* to stdin and close it; a process that exits early is fine."""
    if writer is None:
        return
    try:
        writer.write(payload.encode())
        await writer.drain()
    except (BrokenPipeError, ConnectionResetError):
        logger.debug("Process closed stdin before the payload was written")
    finally:
        writer.close()


async def _finish(pumps: list[asyncio.Task[None]], feeder: asyncio.Task[None] | None) -> None:
    tasks: list[asyncio.Task[None]] = list(pumps)
    if feeder is not None:
        tasks.append(feeder)
    done, pending = await asyncio.wait(tasks, timeout=_DRAIN_GRACE_SECONDS)
    for task in done:
        if not task.cancelled() and task.exception() is not None:
            logger.warning("Stream task failed: %r", task.exception())
    for task in pending:
        task.cancel()
    if pending:
        logger.debug("Abandoned %d output stream(s) still held open after exit", len(pending))
        await asyncio.gather(*pending, return_exceptions=True)


async def _run_timeout_hook(hook: TimeoutHook) -> None:
    try:
        await hook()
    except Exception:
        logger.warning("Timeout hook failed", exc_info=True)


def _force_kill(proc: asyncio.subprocess.Process) -> None:
    """SIGKILL the child's whole process group, then the child itself."""
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        pass
    try:
        proc.kill()
    except ProcessLookupError:
        pass


def _elapsed_ms(started: float) -> float:
    return round((time.monotonic() - started) * 1000, 2)
