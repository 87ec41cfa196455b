"""Container adapters — ephemeral ``docker run`` / ``podman run`` per request.

Uses the container CLI via subprocess (no docker-py dependency).  Each
request starts an auto-removed container with every capability dropped,
no new privileges, a process-count limit and a read-only root filesystem.
The client process does not own the workload, so on timeout the container
is killed by name before the client is.  A client exit of 137 outside a
timeout is reported as a killed workload.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import TYPE_CHECKING, ClassVar

from warden.adapters.base import SandboxAdapter
from warden.models import ExecutionOutcome, NetworkMode

if TYPE_CHECKING:
    from warden.models import ExecutionRequest, ExecutionResult
    from warden.supervisor import TimeoutHook

logger = logging.getLogger(__name__)

_CLI_TIMEOUT_SECONDS = 5.0
_CLIENT_SIGKILL_EXIT = 128 + signal.SIGKILL


class _ContainerSandbox(SandboxAdapter):
    """Shared plumbing for container CLIs."""

    pids_limit: ClassVar[int]

    def _spawn_env(self, request: ExecutionRequest) -> dict[str, str] | None:
        # Request env travels as ``-e`` flags, not through the client process.
        return None

    def _timeout_hook(self) -> TimeoutHook:
        return self._kill_container

    def _classify(self, result: ExecutionResult) -> ExecutionResult:
        # The client relays a SIGKILLed workload (OOM, seccomp) as exit 137.
        if result.timed_out or result.exit_code != _CLIENT_SIGKILL_EXIT:
            return result
        return result.model_copy(
            update={
                "success": False,
                "exit_code": -1,
                "killed": True,
                "signal": int(signal.SIGKILL),
                "outcome": ExecutionOutcome.KILLED,
            }
        )

    async def _kill_container(self) -> None:
        await _run_container_cli([self.binary, "kill", self._sandbox_id])

    def _resource_flags(self) -> list[str]:
        cfg = self._config
        return [f"--memory={cfg.memory_bytes}", f"--cpus={cfg.cpu}"]

    def _identity_flags(self) -> list[str]:
        cfg = self._config
        flags: list[str] = []
        if cfg.user:
            flags.append(f"--user={cfg.user}")
        flags += [f"--cap-add={cap}" for cap in cfg.capabilities]
        return flags

    @staticmethod
    def _env_flags(request: ExecutionRequest) -> list[str]:
        flags: list[str] = []
        for key, value in request.env.items():
            flags.extend(["-e", f"{key}={value}"])
        return flags


class DockerSandbox(_ContainerSandbox):
    """Ephemeral Docker container with networking disabled.

    Removal is delegated to ``--rm``; ``cleanup()`` has nothing to undo.
    """

    name = "docker"
    binary = "docker"
    id_prefix = "sandbox"
    uses_workspace = False
    pids_limit = 64

    def build_command(self, request: ExecutionRequest) -> list[str]:
        cfg = self._config
        cmd: list[str] = [
            self.binary,
            "run",
            "--rm",
            f"--name={self._sandbox_id}",
            *self._resource_flags(),
            "--network=none",
            "--read-only",
            "--security-opt=no-new-privileges",
            "--cap-drop=ALL",
            *self._identity_flags(),
            f"--pids-limit={self.pids_limit}",
        ]

        work_dir = self._effective_work_dir(request)
        if work_dir:
            cmd.append(f"--workdir={work_dir}")

        cmd.extend(self._env_flags(request))
        cmd.append("-i")
        cmd.append(cfg.image)
        cmd.extend(request.argv)
        return cmd


class PodmanSandbox(_ContainerSandbox):
    """Rootless Podman container with the instance workspace at ``/workspace``."""

    name = "podman"
    binary = "podman"
    id_prefix = "sandbox"
    pids_limit = 128

    _NETWORKS: ClassVar[dict[NetworkMode, str]] = {
        NetworkMode.NONE: "none",
        NetworkMode.HOST: "host",
        NetworkMode.RESTRICTED: "slirp4netns",
    }

    def build_command(self, request: ExecutionRequest) -> list[str]:
        cfg = self._config
        cmd: list[str] = [
            self.binary,
            "run",
            "--rm",
            f"--name={self._sandbox_id}",
            *self._resource_flags(),
            f"--pids-limit={self.pids_limit}",
            "--security-opt=no-new-privileges:true",
            "--cap-drop=ALL",
            *self._identity_flags(),
            "--userns=keep-id",
            f"--network={self._NETWORKS[cfg.network]}",
        ]

        if cfg.read_only:
            cmd.append("--read-only")
            cmd.append("--tmpfs=/tmp:rw,noexec,nosuid,size=64m")

        work_dir = self._effective_work_dir(request)
        if work_dir:
            cmd.append(f"--workdir={work_dir}")

        workspace = self._workspace.path
        if workspace is not None:
            cmd.append(f"--volume={workspace}:/workspace:Z")

        for path in cfg.allowed_paths:
            cmd.append(f"--volume={path}:{path}:ro")

        cmd.extend(self._env_flags(request))
        cmd.append("-i")
        cmd.append(cfg.image)
        cmd.extend(request.argv)
        return cmd

    async def _release(self) -> None:
        await _run_container_cli([self.binary, "rm", "-f", self._sandbox_id])


async def _run_container_cli(cmd: list[str]) -> None:
    """Run a best-effort container CLI command (kill / rm), bounded in time."""
    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        logger.warning("Failed to run %s: %s", " ".join(cmd), exc)
        return

    try:
        _, stderr = await asyncio.wait_for(proc.communicate(), timeout=_CLI_TIMEOUT_SECONDS)
    except TimeoutError:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
        await proc.wait()
        logger.warning("%s did not finish within %ss", " ".join(cmd), _CLI_TIMEOUT_SECONDS)
        return

    if proc.returncode != 0:
        # Already gone is the common case after --rm.
        logger.debug(
            "%s exited with %s: %s",
            " ".join(cmd),
            proc.returncode,
            stderr.decode(errors="replace").strip(),
        )
