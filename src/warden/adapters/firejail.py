"""FirejailSandbox — seccomp and namespace isolation via a generated profile."""

from __future__ import annotations

from typing import TYPE_CHECKING

from warden.adapters.base import SandboxAdapter
from warden.models import NetworkMode
from warden.units import ceil_seconds, cpu_seconds_per_minute

if TYPE_CHECKING:
    from warden.models import ExecutionRequest, SandboxConfig
    from warden.workspace import TempWorkspace

PROFILE_FILENAME = "sandbox.profile"

_BLACKLIST = ("/boot", "/media", "/mnt", "/opt", "/root", "/srv", "/sys/firmware")


def render_profile(config: SandboxConfig) -> str:
    """Render a firejail profile for *config*.

    ``rlimit-as`` and ``rlimit-fsize`` take bytes; ``rlimit-cpu`` takes
    CPU-seconds and uses the same ``ceil(cpu * 60)`` budget as nsjail.
    """
    lines = [
        "# warden firejail profile",
        "",
        *(f"blacklist {path}" for path in _BLACKLIST),
        "",
        "private",
        "private-tmp",
        "no-new-privs",
        "seccomp",
        "nosound",
        "novideo",
        "dbus-user none",
        "dbus-system none",
        "",
        f"rlimit-as {config.memory_bytes}",
        f"rlimit-cpu {cpu_seconds_per_minute(config.cpu)}",
        f"rlimit-fsize {config.max_output_bytes}",
        "rlimit-nproc 64",
        "rlimit-nofile 128",
        "",
        "caps.drop all",
    ]

    if config.network is NetworkMode.NONE:
        lines.append("net none")
    elif config.network is NetworkMode.RESTRICTED and config.allowed_hosts:
        lines.append("netfilter")

    if config.read_only:
        lines.append("read-only ${HOME}")
        lines.append("read-only /tmp")

    for path in config.allowed_paths:
        lines.append(f"whitelist {path}")
        if config.read_only:
            lines.append(f"read-only {path}")

    return "\n".join(lines) + "\n"


def format_timeout(timeout_ms: int) -> str:
    """Firejail's ``--timeout`` takes ``hh:mm:ss``."""
    total = ceil_seconds(timeout_ms)
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


class FirejailSandbox(SandboxAdapter):
    """``firejail`` driven by a per-instance profile file."""

    name = "firejail"
    binary = "firejail"
    id_prefix = "firejail"

    @property
    def profile_path(self) -> str | None:
        path = self._workspace.path
        return str(path / PROFILE_FILENAME) if path is not None else None

    async def _prepare(self, workspace: TempWorkspace) -> None:
        await workspace.write_file(PROFILE_FILENAME, render_profile(self._config))

    def build_command(self, request: ExecutionRequest) -> list[str]:
        profile = self._require_workspace() / PROFILE_FILENAME
        cmd = [
            self.binary,
            f"--profile={profile}",
            "--quiet",
            f"--name={self._sandbox_id}",
            "--deterministic-exit-code",
            f"--timeout={format_timeout(self._config.timeout_ms)}",
        ]

        work_dir = self._effective_work_dir(request)
        if work_dir:
            cmd.append(f"--private-cwd={work_dir}")

        for key, value in request.env.items():
            cmd.append(f"--env={key}={value}")

        cmd.append("--")
        cmd.extend(request.argv)
        return cmd

    def _spawn_env(self, request: ExecutionRequest) -> dict[str, str] | None:
        return None
