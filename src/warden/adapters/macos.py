"""MacOSSandbox — Apple's ``sandbox-exec`` with a generated SBPL profile.

``sandbox-exec`` is deprecated by Apple but still shipped; it is the only
built-in isolation on macOS hosts.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from warden.adapters.base import SandboxAdapter
from warden.models import NetworkMode

if TYPE_CHECKING:
    from pathlib import Path

    from warden.models import ExecutionRequest, SandboxConfig
    from warden.workspace import TempWorkspace

PROFILE_FILENAME = "sandbox.sb"

_SYSTEM_READ_SUBPATHS = (
    "/usr",
    "/bin",
    "/sbin",
    "/System",
    "/Library/Frameworks",
    "/private/var/db/dyld",
)

_DEVICE_LITERALS = ("/dev/null", "/dev/zero", "/dev/random", "/dev/urandom")


def _quote(value: object) -> str:
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def render_profile(config: SandboxConfig, workspace: Path) -> str:
    """Render a deny-by-default SBPL profile."""
    read_rules = [f"  (subpath {_quote(p)})" for p in _SYSTEM_READ_SUBPATHS]
    read_rules += [f"  (literal {_quote(p)})" for p in _DEVICE_LITERALS]

    lines = [
        "(version 1)",
        "(deny default)",
        "(allow process-fork)",
        "(allow process-exec)",
        "(allow file-read*",
        *read_rules,
        ")",
        f"(allow file-read* file-write* (subpath {_quote(workspace)}))",
        '(allow file-read* (subpath "/tmp") (subpath "/private/tmp"))',
        '(allow mach-lookup (global-name "com.apple.system.logger"))',
        "(allow sysctl-read)",
        "(allow signal (target self))",
    ]

    if config.network is NetworkMode.NONE:
        lines.append("(deny network*)")
    elif config.network is NetworkMode.RESTRICTED:
        lines.append('(allow network-outbound (remote tcp "*:80") (remote tcp "*:443"))')
    else:
        lines.append("(allow network*)")

    access = "file-read*" if config.read_only else "file-read* file-write*"
    for path in config.allowed_paths:
        lines.append(f"(allow {access} (subpath {_quote(path)}))")

    return "\n".join(lines) + "\n"


class MacOSSandbox(SandboxAdapter):
    """``sandbox-exec -f <profile>`` on the host."""

    name = "macos"
    binary = "sandbox-exec"
    id_prefix = "macos"

    async def _prepare(self, workspace: TempWorkspace) -> None:
        path = await workspace.create()
        await workspace.write_file(PROFILE_FILENAME, render_profile(self._config, path))

    def build_command(self, request: ExecutionRequest) -> list[str]:
        profile = self._require_workspace() / PROFILE_FILENAME
        return [self.binary, "-f", str(profile), *request.argv]

    def _spawn_cwd(self, request: ExecutionRequest) -> str | None:
        return self._effective_work_dir(request)
