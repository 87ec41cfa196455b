"""Tests for the execution supervisor, run against real short-lived processes."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from warden.models import ExecutionOutcome
from warden.supervisor import BoundedSink, supervise


class TestBoundedSink:
    def test_keeps_up_to_limit(self) -> None:
        sink = BoundedSink(5)
        assert sink.write(b"abc") == 3
        assert sink.write(b"defg") == 2
        assert sink.getvalue() == b"abcde"
        assert len(sink) == 5
        assert sink.truncated
        assert sink.dropped == 2

    def test_drops_everything_when_full(self) -> None:
        sink = BoundedSink(2)
        sink.write(b"ab")
        assert sink.write(b"cd") == 0
        assert sink.getvalue() == b"ab"

    def test_not_truncated_under_limit(self) -> None:
        sink = BoundedSink(10)
        sink.write(b"hi")
        assert not sink.truncated
        assert sink.text() == "hi"

    def test_text_replaces_split_multibyte(self) -> None:
        sink = BoundedSink(1)
        sink.write("é".encode())
        assert sink.text() == "�"

    def test_negative_limit(self) -> None:
        with pytest.raises(ValueError):
            BoundedSink(-1)


class TestSupervise:
    async def test_echo_succeeds(self) -> None:
        result = await supervise(["echo", "hello"], timeout_ms=5000, max_output_bytes=1000)

        assert result.success is True
        assert result.exit_code == 0
        assert result.stdout == "hello\n"
        assert result.timed_out is False
        assert result.killed is False
        assert result.outcome is ExecutionOutcome.COMPLETED
        assert result.duration_ms > 0

    async def test_timeout(self) -> None:
        result = await supervise(["sleep", "5"], timeout_ms=100, max_output_bytes=1000)

        assert result.success is False
        assert result.timed_out is True
        assert result.killed is False
        assert result.exit_code == -1
        assert result.outcome is ExecutionOutcome.TIMED_OUT
        assert result.signal == signal.SIGKILL
        assert 100 <= result.duration_ms < 3000

    async def test_output_truncated_at_cap(self) -> None:
        result = await supervise(
            ["sh", "-c", "yes | head -c 100000"],
            timeout_ms=5000,
            max_output_bytes=1000,
        )

        assert result.success is True
        assert len(result.stdout) == 1000
        assert len(result.stdout.encode()) == 1000

    async def test_stderr_captured_and_capped(self) -> None:
        result = await supervise(
            ["sh", "-c", "echo out; yes err | head -c 5000 >&2"],
            timeout_ms=5000,
            max_output_bytes=10,
        )

        assert result.stdout == "out\n"
        assert len(result.stderr) == 10
        assert result.stderr.startswith("err\n")

    async def test_stdin_written_and_closed(self) -> None:
        result = await supervise(["cat"], timeout_ms=5000, max_output_bytes=1000, stdin="payload")

        assert result.success is True
        assert result.stdout == "payload"

    async def test_no_stdin_reads_eof(self) -> None:
        result = await supervise(["cat"], timeout_ms=5000, max_output_bytes=1000)

        assert result.success is True
        assert result.stdout == ""

    async def test_stdin_ignored_by_early_exit(self) -> None:
        result = await supervise(
            ["true"],
            timeout_ms=5000,
            max_output_bytes=1000,
            stdin="x" * 1_000_000,
        )

        assert result.success is True

    async def test_nonzero_exit(self) -> None:
        result = await supervise(["sh", "-c", "exit 3"], timeout_ms=5000, max_output_bytes=1000)

        assert result.success is False
        assert result.exit_code == 3
        assert result.outcome is ExecutionOutcome.COMPLETED

    async def test_spawn_failure_is_reported(self) -> None:
        result = await supervise(
            ["/nonexistent/warden-binary"],
            timeout_ms=5000,
            max_output_bytes=1000,
            runtime="test",
        )

        assert result.success is False
        assert result.exit_code is None
        assert result.error
        assert result.outcome is ExecutionOutcome.SPAWN_FAILED
        assert result.runtime == "test"

    async def test_external_sigkill_is_killed(self) -> None:
        result = await supervise(["sh", "-c", "kill -9 $$"], timeout_ms=5000, max_output_bytes=1000)

        assert result.success is False
        assert result.killed is True
        assert result.timed_out is False
        assert result.exit_code == -1
        assert result.signal == signal.SIGKILL
        assert result.outcome is ExecutionOutcome.KILLED

    async def test_other_signal_is_not_killed(self) -> None:
        result = await supervise(["sh", "-c", "kill -TERM $$"], timeout_ms=5000, max_output_bytes=1000)

        assert result.success is False
        assert result.killed is False
        assert result.exit_code == -1
        assert result.signal == signal.SIGTERM
        assert result.outcome is ExecutionOutcome.COMPLETED

    async def test_env_passed(self) -> None:
        env = {"PATH": os.environ.get("PATH", "/usr/bin:/bin"), "WARDEN_TEST": "value"}
        result = await supervise(
            ["sh", "-c", "echo $WARDEN_TEST"],
            timeout_ms=5000,
            max_output_bytes=1000,
            env=env,
        )

        assert result.stdout == "value\n"

    async def test_cwd(self, tmp_path: Path) -> None:
        result = await supervise(["pwd"], timeout_ms=5000, max_output_bytes=1000, cwd=str(tmp_path))

        assert Path(result.stdout.strip()).resolve() == tmp_path.resolve()

    async def test_timeout_hook_runs(self) -> None:
        hook = AsyncMock()
        result = await supervise(
            ["sleep", "5"],
            timeout_ms=100,
            max_output_bytes=1000,
            on_timeout=hook,
        )

        assert result.timed_out is True
        hook.assert_awaited_once()

    async def test_failing_timeout_hook_still_kills(self) -> None:
        hook = AsyncMock(side_effect=RuntimeError("container already gone"))
        result = await supervise(
            ["sleep", "5"],
            timeout_ms=100,
            max_output_bytes=1000,
            on_timeout=hook,
        )

        assert result.timed_out is True
        assert result.exit_code == -1

    async def test_hook_not_called_without_timeout(self) -> None:
        hook = AsyncMock()
        await supervise(["true"], timeout_ms=5000, max_output_bytes=1000, on_timeout=hook)
        hook.assert_not_awaited()

    async def test_background_child_does_not_hold_result(self) -> None:
        result = await supervise(
            ["sh", "-c", "sleep 5 & echo started"],
            timeout_ms=10_000,
            max_output_bytes=1000,
        )

        assert result.success is True
        assert result.stdout == "started\n"
        assert result.duration_ms < 4000

    async def test_timeout_kills_background_children(self) -> None:
        result = await supervise(
            ["sh", "-c", "sleep 6 & sleep 6"],
            timeout_ms=200,
            max_output_bytes=1000,
        )

        assert result.timed_out is True
        assert result.exit_code == -1
        assert result.duration_ms < 2000

    async def test_exit_during_timeout_hook_still_reports_timeout(self) -> None:
        async def slow_hook() -> None:
            await asyncio.sleep(0.6)

        result = await supervise(
            ["sh", "-c", "sleep 0.3; exit 137"],
            timeout_ms=100,
            max_output_bytes=1000,
            on_timeout=slow_hook,
        )

        assert result.timed_out is True
        assert result.exit_code == -1
        assert result.outcome is ExecutionOutcome.TIMED_OUT

    async def test_stdin_writer_failure_is_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        with (
            patch("warden.supervisor._feed", new_callable=AsyncMock, side_effect=OSError("boom")),
            caplog.at_level(logging.WARNING, logger="warden.supervisor"),
        ):
            result = await supervise(["true"], timeout_ms=5000, max_output_bytes=1000, stdin="x")

        assert result.success is True
        assert "boom" in caplog.text
