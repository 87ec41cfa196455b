"""Tests for ``warden runtimes`` CLI command."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

from click.testing import CliRunner

from warden.cli import main
from warden.models import SandboxRuntime

_DETECTED = [
    SandboxRuntime(name="gvisor", available=False),
    SandboxRuntime(name="nsjail", available=True, version="nsjail 3.4"),
    SandboxRuntime(name="docker", available=True, version="Docker version 24.0.7"),
]


class TestRuntimesCommand:
    def test_table(self) -> None:
        with patch(
            "warden.detect.detect_runtimes", new_callable=AsyncMock, return_value=_DETECTED
        ):
            runner = CliRunner()
            result = runner.invoke(main, ["runtimes"])

        assert result.exit_code == 0
        assert "Sandbox Runtimes" in result.output
        assert "nsjail" in result.output
        assert "Docker version 24.0.7" in result.output

    def test_json(self) -> None:
        with patch(
            "warden.detect.detect_runtimes", new_callable=AsyncMock, return_value=_DETECTED
        ):
            runner = CliRunner()
            result = runner.invoke(main, ["runtimes", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert [r["name"] for r in data] == ["gvisor", "nsjail", "docker"]
        assert data[1] == {"name": "nsjail", "available": True, "version": "nsjail 3.4"}
