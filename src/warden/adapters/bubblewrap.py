"""BubblewrapSandbox — lightweight Linux namespaces via ``bwrap``."""

from __future__ import annotations

from typing import TYPE_CHECKING

from warden.adapters.base import SandboxAdapter
from warden.models import NetworkMode

if TYPE_CHECKING:
    from warden.models import ExecutionRequest
    from warden.workspace import TempWorkspace

SANDBOX_HOME = "/home/sandbox"
SANDBOX_UID = "1000"
SANDBOX_GID = "1000"

_SYSTEM_RO_BINDS: tuple[tuple[str, str], ...] = (
    ("/usr", "/usr"),
    ("/bin", "/bin"),
    ("/lib", "/lib"),
)

_ETC_RO_BINDS: tuple[tuple[str, str], ...] = (
    ("/etc/resolv.conf", "/etc/resolv.conf"),
    ("/etc/ssl", "/etc/ssl"),
)


class BubblewrapSandbox(SandboxAdapter):
    """``bwrap`` with every namespace unshared and per-instance tmp/home dirs."""

    name = "bubblewrap"
    binary = "bwrap"
    id_prefix = "bwrap"

    async def _prepare(self, workspace: TempWorkspace) -> None:
        await workspace.subdir("tmp")
        await workspace.subdir("home")

    def build_command(self, request: ExecutionRequest) -> list[str]:
        cfg = self._config
        workspace = self._require_workspace()

        cmd: list[str] = [self.binary, "--unshare-all"]
        if cfg.network is not NetworkMode.NONE:
            cmd.append("--share-net")
        cmd.append("--die-with-parent")

        for src, dst in _SYSTEM_RO_BINDS:
            cmd += ["--ro-bind", src, dst]
        cmd += ["--symlink", "/usr/lib64", "/lib64"]
        for src, dst in _ETC_RO_BINDS:
            cmd += ["--ro-bind", src, dst]

        cmd += [
            "--proc", "/proc",
            "--dev", "/dev",
            "--bind", str(workspace / "tmp"), "/tmp",
            "--bind", str(workspace / "home"), SANDBOX_HOME,
            "--setenv", "HOME", SANDBOX_HOME,
            "--hostname", "sandbox",
            "--uid", SANDBOX_UID,
            "--gid", SANDBOX_GID,
            "--chdir", self._effective_work_dir(request) or "/tmp",
        ]

        bind_flag = "--ro-bind" if cfg.read_only else "--bind"
        for path in cfg.allowed_paths:
            cmd += [bind_flag, path, path]

        for key, value in request.env.items():
            cmd += ["--setenv", key, value]

        cmd.append("--")
        cmd.extend(request.argv)
        return cmd

    def _spawn_env(self, request: ExecutionRequest) -> dict[str, str] | None:
        return None
