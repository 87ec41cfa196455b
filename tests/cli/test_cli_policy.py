"""Tests for ``warden policy`` CLI command."""

from __future__ import annotations

from typing import TYPE_CHECKING

from click.testing import CliRunner

from warden.cli import main

if TYPE_CHECKING:
    from pathlib import Path


class TestPolicyCommand:
    def test_defaults(self) -> None:
        runner = CliRunner()
        result = runner.invoke(main, ["policy"])

        assert result.exit_code == 0
        assert 'name: "warden"' in result.output
        assert "time_limit: 30" in result.output
        assert 'seccomp_string: "DEFAULT KILL"' in result.output

    def test_from_config(self, tmp_path: Path) -> None:
        f = tmp_path / "sandbox.yaml"
        f.write_text("timeout_ms: 2500\ncpu: '0.5'\nnetwork: host\n")

        runner = CliRunner()
        result = runner.invoke(main, ["policy", "--config", str(f), "--name", "myjail"])

        assert result.exit_code == 0
        assert 'name: "myjail"' in result.output
        assert "time_limit: 3\n" in result.output
        assert "rlimit_cpu: 30\n" in result.output
        assert "clone_newnet: false" in result.output

    def test_invalid_config(self, tmp_path: Path) -> None:
        f = tmp_path / "bad.yaml"
        f.write_text("memory: 12MB\n")

        runner = CliRunner()
        result = runner.invoke(main, ["policy", "--config", str(f)])

        assert result.exit_code == 2
        assert "Validation error" in result.output

    def test_missing_config(self) -> None:
        runner = CliRunner()
        result = runner.invoke(main, ["policy", "--config", "/nonexistent/sandbox.yaml"])

        assert result.exit_code != 0
