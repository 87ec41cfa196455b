"""NsjailSandbox — namespaces plus a seccomp allow-list via Google's nsjail.

The whole isolation policy is rendered into an nsjail protobuf-text config
file inside the instance workspace; the invocation itself only points at
that file::

    nsjail --config <workspace>/nsjail.cfg -- <command> <args...>

Units in the generated document follow nsjail's schema:

* ``time_limit`` is whole seconds, ``ceil(timeout_ms / 1000)``.
* ``rlimit_as`` and ``rlimit_fsize`` are MiB, rounded up from the byte
  values kept on :class:`NsjailPolicy`.
* ``rlimit_cpu`` is CPU-seconds: a fractional core count is turned into the
  CPU time those cores could burn in one wall-clock minute,
  ``ceil(cpu * 60)``, so ``"0.5"`` becomes ``30``.

The network namespace is created only when the network mode is ``none``;
user, mount, pid, ipc and uts namespaces are always created.  Every syscall
not named in :data:`SECCOMP_ALLOWLIST` kills the process.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from warden.adapters.base import SandboxAdapter
from warden.models import NetworkMode
from warden.units import bytes_to_mib, ceil_seconds, cpu_seconds_per_minute

if TYPE_CHECKING:
    from pathlib import Path

    from warden.models import ExecutionRequest, SandboxConfig
    from warden.workspace import TempWorkspace

POLICY_FILENAME = "nsjail.cfg"
HOSTNAME = "sandbox"
NOFILE_LIMIT = 32

SECCOMP_ALLOWLIST: dict[str, tuple[str, ...]] = {
    "startup": (
        "execve", "execveat", "arch_prctl", "set_tid_address", "set_robust_list",
        "rseq", "prlimit64", "getrlimit", "getrandom", "uname", "sysinfo",
    ),
    "memory": (
        "mmap", "mprotect", "munmap", "brk", "mremap", "mincore", "madvise",
    ),
    "io": (
        "read", "write", "pread64", "pwrite64", "readv", "writev",
        "open", "openat", "close", "stat", "fstat", "lstat", "newfstatat", "statx",
        "lseek", "ioctl", "access", "faccessat", "faccessat2",
        "pipe", "pipe2", "dup", "dup2", "dup3", "fcntl", "flock",
        "fsync", "fdatasync", "truncate", "ftruncate", "getdents", "getdents64",
        "getcwd", "chdir", "fchdir", "mkdir", "mkdirat", "rmdir", "creat",
        "unlink", "unlinkat", "rename", "renameat", "chmod", "fchmod", "lchown",
        "readlink", "readlinkat", "umask",
        "select", "pselect6", "poll", "ppoll",
        "epoll_create1", "epoll_ctl", "epoll_wait", "epoll_pwait",
    ),
    "signals": (
        "rt_sigaction", "rt_sigprocmask", "rt_sigreturn", "sigaltstack", "kill", "tgkill",
    ),
    "process": (
        "clone", "clone3", "fork", "vfork", "wait4", "exit", "exit_group",
        "getpid", "getppid", "gettid", "getuid", "getgid", "geteuid", "getegid",
        "setpgid", "getpgrp", "setsid", "setreuid", "setregid",
        "sched_yield", "futex", "nanosleep", "clock_nanosleep",
        "clock_gettime", "clock_getres",
    ),
    "network": (
        "socket", "connect", "sendto", "recvfrom", "sendmsg", "recvmsg",
        "shutdown", "getsockname", "getpeername", "setsockopt", "getsockopt",
    ),
}

SECCOMP_DEFAULT_ACTION = "KILL"

_SYSCALLS_PER_LINE = 6


def allowed_syscalls() -> list[str]:
    """Flattened allow-list, first occurrence order, without duplicates."""
    seen: dict[str, None] = {}
    for group in SECCOMP_ALLOWLIST.values():
        for name in group:
            seen.setdefault(name, None)
    return list(seen)


@dataclass(frozen=True, slots=True)
class Mount:
    """One ``mount { ... }`` block."""

    dst: str
    src: str | None = None
    is_bind: bool = False
    fstype: str | None = None
    rw: bool = False
    mandatory: bool = True

    def render(self) -> str:
        lines = ["mount {"]
        if self.src is not None:
            lines.append(f"  src: {_quote(self.src)}")
        lines.append(f"  dst: {_quote(self.dst)}")
        if self.is_bind:
            lines.append("  is_bind: true")
        if self.fstype is not None:
            lines.append(f"  fstype: {_quote(self.fstype)}")
        lines.append(f"  rw: {_bool(self.rw)}")
        if not self.mandatory:
            lines.append("  mandatory: false")
        lines.append("}")
        return "\n".join(lines)


SYSTEM_MOUNTS: tuple[Mount, ...] = (
    Mount(src="/bin", dst="/bin", is_bind=True),
    Mount(src="/lib", dst="/lib", is_bind=True),
    Mount(src="/lib64", dst="/lib64", is_bind=True, mandatory=False),
    Mount(src="/usr", dst="/usr", is_bind=True),
)


@dataclass(frozen=True, slots=True)
class NsjailPolicy:
    """Structured form of the generated nsjail config."""

    name: str
    time_limit: int
    rlimit_as_bytes: int
    rlimit_cpu: int
    rlimit_fsize_bytes: int
    rlimit_nofile: int = NOFILE_LIMIT
    mode: str = "ONCE"
    hostname: str = HOSTNAME
    clone_newnet: bool = True
    clone_newuser: bool = True
    clone_newns: bool = True
    clone_newpid: bool = True
    clone_newipc: bool = True
    clone_newuts: bool = True
    cwd: str | None = None
    mounts: tuple[Mount, ...] = ()
    capabilities: tuple[str, ...] = ()
    syscalls: tuple[str, ...] = field(default_factory=lambda: tuple(allowed_syscalls()))
    seccomp_default: str = SECCOMP_DEFAULT_ACTION

    @property
    def rlimit_as(self) -> int:
        """Address-space limit in nsjail units (MiB)."""
        return bytes_to_mib(self.rlimit_as_bytes)

    @property
    def rlimit_fsize(self) -> int:
        """File-size limit in nsjail units (MiB)."""
        return bytes_to_mib(self.rlimit_fsize_bytes)

    def render(self) -> str:
        lines = [
            f"name: {_quote(self.name)}",
            f"mode: {self.mode}",
            f"hostname: {_quote(self.hostname)}",
            f"time_limit: {self.time_limit}",
        ]
        if self.cwd:
            lines.append(f"cwd: {_quote(self.cwd)}")
        lines += [
            "",
            f"rlimit_as: {self.rlimit_as}",
            f"rlimit_cpu: {self.rlimit_cpu}",
            f"rlimit_fsize: {self.rlimit_fsize}",
            f"rlimit_nofile: {self.rlimit_nofile}",
            "",
            f"clone_newnet: {_bool(self.clone_newnet)}",
            f"clone_newuser: {_bool(self.clone_newuser)}",
            f"clone_newns: {_bool(self.clone_newns)}",
            f"clone_newpid: {_bool(self.clone_newpid)}",
            f"clone_newipc: {_bool(self.clone_newipc)}",
            f"clone_newuts: {_bool(self.clone_newuts)}",
        ]
        if self.capabilities:
            lines.append("")
            lines += [f"cap: {_quote(cap)}" for cap in self.capabilities]
        for mount in self.mounts:
            lines.append("")
            lines.append(mount.render())
        lines.append("")
        lines += [f"seccomp_string: {_quote(s)}" for s in self._seccomp_lines()]
        return "\n".join(lines) + "\n"

    def _seccomp_lines(self) -> list[str]:
        chunks = [
            self.syscalls[i : i + _SYSCALLS_PER_LINE]
            for i in range(0, len(self.syscalls), _SYSCALLS_PER_LINE)
        ]
        body = [
            "  " + ", ".join(chunk) + ("," if i < len(chunks) - 1 else "")
            for i, chunk in enumerate(chunks)
        ]
        return ["ALLOW {", *body, "}", f"DEFAULT {self.seccomp_default}"]


def build_policy(config: SandboxConfig, name: str) -> NsjailPolicy:
    """Translate a :class:`SandboxConfig` into an :class:`NsjailPolicy`."""
    writable = not config.read_only
    mounts = [
        *SYSTEM_MOUNTS,
        Mount(dst="/tmp", fstype="tmpfs", rw=writable),
        Mount(src="/dev/null", dst="/dev/null", is_bind=True, rw=True),
    ]
    mounts += [Mount(src=p, dst=p, is_bind=True, rw=writable) for p in config.allowed_paths]

    return NsjailPolicy(
        name=name,
        time_limit=ceil_seconds(config.timeout_ms),
        rlimit_as_bytes=config.memory_bytes,
        rlimit_cpu=cpu_seconds_per_minute(config.cpu),
        rlimit_fsize_bytes=config.max_output_bytes,
        clone_newnet=config.network is NetworkMode.NONE,
        cwd=config.work_dir,
        mounts=tuple(mounts),
        capabilities=tuple(config.capabilities),
    )


class NsjailSandbox(SandboxAdapter):
    """nsjail invocation driven by a generated config file."""

    name = "nsjail"
    binary = "nsjail"
    id_prefix = "nsjail"

    def __init__(self, config: SandboxConfig, *, temp_root: Path | None = None) -> None:
        super().__init__(config, temp_root=temp_root)
        self._policy = build_policy(config, self._sandbox_id)

    @property
    def policy(self) -> NsjailPolicy:
        return self._policy

    @property
    def config_file(self) -> str | None:
        """Path of the written policy, once initialized."""
        path = self._workspace.path
        return str(path / POLICY_FILENAME) if path is not None else None

    async def _prepare(self, workspace: TempWorkspace) -> None:
        await workspace.write_file(POLICY_FILENAME, self._policy.render())

    def build_command(self, request: ExecutionRequest) -> list[str]:
        cmd = [self.binary, "--config", str(self._require_workspace() / POLICY_FILENAME)]
        if request.work_dir:
            cmd += ["--cwd", request.work_dir]
        for key, value in request.env.items():
            cmd += ["--env", f"{key}={value}"]
        cmd.append("--")
        cmd.extend(request.argv)
        return cmd


def _quote(value: str) -> str:
    return json.dumps(value)


def _bool(value: bool) -> str:
    return "true" if value else "false"
