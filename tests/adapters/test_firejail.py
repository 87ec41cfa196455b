"""Tests for FirejailSandbox profile generation and invocation."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from warden.adapters.firejail import (
    PROFILE_FILENAME,
    FirejailSandbox,
    format_timeout,
    render_profile,
)
from warden.models import ExecutionRequest, NetworkMode, SandboxConfig

if TYPE_CHECKING:
    from pathlib import Path


class TestRenderProfile:
    def test_limits(self) -> None:
        text = render_profile(SandboxConfig(memory="256Mi", cpu="0.5", max_output_bytes=4096))
        lines = set(text.splitlines())

        assert "rlimit-as 268435456" in lines
        assert "rlimit-cpu 30" in lines
        assert "rlimit-fsize 4096" in lines
        assert "rlimit-nproc 64" in lines
        assert "rlimit-nofile 128" in lines

    def test_hardening(self) -> None:
        lines = set(render_profile(SandboxConfig()).splitlines())
        for rule in ("private", "private-tmp", "no-new-privs", "seccomp", "caps.drop all"):
            assert rule in lines
        assert "blacklist /root" in lines

    def test_network_none(self) -> None:
        lines = set(render_profile(SandboxConfig(network=NetworkMode.NONE)).splitlines())
        assert "net none" in lines
        assert "netfilter" not in lines

    def test_network_restricted_with_hosts(self) -> None:
        text = render_profile(
            SandboxConfig(network=NetworkMode.RESTRICTED, allowed_hosts=["pypi.org"])
        )
        lines = set(text.splitlines())
        assert "netfilter" in lines
        assert "net none" not in lines

    def test_network_host(self) -> None:
        lines = set(render_profile(SandboxConfig(network=NetworkMode.HOST)).splitlines())
        assert "net none" not in lines
        assert "netfilter" not in lines

    def test_allowed_paths(self) -> None:
        ro = set(render_profile(SandboxConfig(allowed_paths=["/data"])).splitlines())
        rw = set(
            render_profile(SandboxConfig(allowed_paths=["/data"], read_only=False)).splitlines()
        )
        assert "whitelist /data" in ro
        assert "read-only /data" in ro
        assert "whitelist /data" in rw
        assert "read-only /data" not in rw


class TestFormatTimeout:
    @pytest.mark.parametrize(
        ("timeout_ms", "expected"),
        [(2500, "00:00:03"), (30_000, "00:00:30"), (3_725_000, "01:02:05"), (1, "00:00:01")],
    )
    def test_format(self, timeout_ms: int, expected: str) -> None:
        assert format_timeout(timeout_ms) == expected


class TestFirejailSandbox:
    async def test_initialize_writes_profile(self, tmp_path: Path) -> None:
        config = SandboxConfig()
        sandbox = FirejailSandbox(config, temp_root=tmp_path)
        await sandbox.initialize()

        assert sandbox.profile_path == str(tmp_path / sandbox.sandbox_id / PROFILE_FILENAME)
        assert (tmp_path / sandbox.sandbox_id / PROFILE_FILENAME).read_text() == render_profile(
            config
        )
        await sandbox.cleanup()
        assert sandbox.profile_path is None

    async def test_build_command(self, tmp_path: Path) -> None:
        sandbox = FirejailSandbox(SandboxConfig(timeout_ms=2500), temp_root=tmp_path)
        await sandbox.initialize()

        cmd = sandbox.build_command(
            ExecutionRequest(command="echo", args=["hi"], env={"A": "1"}, work_dir="/app")
        )

        assert cmd == [
            "firejail",
            f"--profile={sandbox.profile_path}",
            "--quiet",
            f"--name={sandbox.sandbox_id}",
            "--deterministic-exit-code",
            "--timeout=00:00:03",
            "--private-cwd=/app",
            "--env=A=1",
            "--",
            "echo",
            "hi",
        ]
        assert sandbox._spawn_env(ExecutionRequest(command="env", env={"A": "1"})) is None
        await sandbox.cleanup()
