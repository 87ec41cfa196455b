"""GVisorSandbox — runs commands under gVisor's ``runsc`` user-space kernel.

Isolation is delegated entirely to ``runsc`` through command-line flags; no
policy file is generated.  The wrapper process inherits the host
environment overlaid with the request's overrides.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from warden.adapters.base import SandboxAdapter

if TYPE_CHECKING:
    from warden.models import ExecutionRequest


class GVisorSandbox(SandboxAdapter):
    """Rootless ``runsc run`` invocation per request."""

    name = "gvisor"
    binary = "runsc"
    id_prefix = "sandbox"

    def build_command(self, request: ExecutionRequest) -> list[str]:
        cfg = self._config
        cmd: list[str] = [
            self.binary,
            "run",
            "--rootless",
            f"--network={cfg.network.value}",
        ]

        if cfg.memory:
            cmd.append(f"--memory={cfg.memory}")
        if cfg.cpu:
            cmd.append(f"--cpu={cfg.cpu}")

        if cfg.read_only:
            cmd.append("--read-only")

        work_dir = self._effective_work_dir(request)
        if work_dir:
            cmd.append(f"--cwd={work_dir}")

        cmd.append(f"--name={self._sandbox_id}")

        cmd.append("--")
        cmd.extend(request.argv)
        return cmd
