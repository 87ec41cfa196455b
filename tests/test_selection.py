"""Tests for runtime selection and sandbox creation."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from unittest.mock import AsyncMock, patch

import pytest

from warden.adapters import DockerSandbox, GVisorSandbox, MacOSSandbox, NsjailSandbox
from warden.errors import RuntimeUnavailableError
from warden.models import SandboxConfig, SandboxRuntime
from warden.selection import (
    ADAPTERS,
    RUNTIME_PRIORITY,
    create_sandbox,
    get_adapter_class,
    select_runtime,
)

if TYPE_CHECKING:
    from pathlib import Path


def _runtimes(*available: str) -> list[SandboxRuntime]:
    return [SandboxRuntime(name=name, available=name in available) for name in RUNTIME_PRIORITY]


class TestRegistry:
    def test_every_runtime_has_adapter(self) -> None:
        assert set(ADAPTERS) == set(RUNTIME_PRIORITY)

    def test_priority_order(self) -> None:
        assert RUNTIME_PRIORITY == (
            "gvisor", "nsjail", "bubblewrap", "firejail", "docker", "podman", "macos",
        )

    def test_get_adapter_class(self) -> None:
        assert get_adapter_class("nsjail") is NsjailSandbox
        assert get_adapter_class("gvisor") is GVisorSandbox
        assert get_adapter_class("macos") is MacOSSandbox

    def test_get_adapter_class_unknown(self) -> None:
        with pytest.raises(RuntimeUnavailableError, match="unknown runtime"):
            get_adapter_class("chroot")


class TestSelectRuntime:
    def test_auto_picks_strongest(self) -> None:
        assert select_runtime(_runtimes("docker", "nsjail", "podman")) == "nsjail"

    def test_auto_single(self) -> None:
        assert select_runtime(_runtimes("macos")) == "macos"

    def test_named_available(self) -> None:
        assert select_runtime(_runtimes("docker", "podman"), "podman") == "podman"

    def test_named_unavailable_falls_back(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="warden.selection"):
            chosen = select_runtime(_runtimes("docker", "bubblewrap"), "gvisor")

        assert chosen == "bubblewrap"
        assert "falling back to bubblewrap" in caplog.text

    def test_named_unavailable_without_fallback(self) -> None:
        with pytest.raises(RuntimeUnavailableError) as exc_info:
            select_runtime(_runtimes("docker"), "gvisor", fallback=False)
        assert exc_info.value.runtime == "gvisor"

    def test_nothing_available(self) -> None:
        with pytest.raises(RuntimeUnavailableError, match="no sandbox runtime available"):
            select_runtime(_runtimes())

    def test_unknown_name(self) -> None:
        with pytest.raises(RuntimeUnavailableError, match="unknown runtime"):
            select_runtime(_runtimes("docker"), "lxc")


class TestCreateSandbox:
    async def test_uses_cached_detection(self, tmp_path: Path) -> None:
        with patch("warden.selection.detect_runtimes", new_callable=AsyncMock) as mock_detect:
            sandbox = await create_sandbox(
                SandboxConfig(), runtimes=_runtimes("nsjail", "docker"), temp_root=tmp_path
            )

        mock_detect.assert_not_awaited()
        assert isinstance(sandbox, NsjailSandbox)
        assert sandbox.is_initialized
        assert sandbox.config_file is not None
        await sandbox.cleanup()
        assert list(tmp_path.iterdir()) == []

    async def test_detects_when_not_given(self, tmp_path: Path) -> None:
        with patch(
            "warden.selection.detect_runtimes",
            new_callable=AsyncMock,
            return_value=_runtimes("docker"),
        ) as mock_detect:
            sandbox = await create_sandbox(SandboxConfig(), temp_root=tmp_path)

        mock_detect.assert_awaited_once()
        assert isinstance(sandbox, DockerSandbox)
        await sandbox.cleanup()

    async def test_named_runtime_without_fallback(self) -> None:
        with pytest.raises(RuntimeUnavailableError):
            await create_sandbox(
                SandboxConfig(), "gvisor", fallback=False, runtimes=_runtimes("docker")
            )
