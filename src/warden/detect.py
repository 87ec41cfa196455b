"""Detect which isolation backends are usable on this host.

Every backend is described by a :class:`RuntimeProbe` in :data:`RUNTIME_PROBES`.
A probe is skipped without spawning anything when the host OS is not in its
``platforms`` set; otherwise a short version command is run with a bounded
timeout.  Any failure marks the backend unavailable.

Detection spawns one process per backend, so callers should cache the
result for the lifetime of their process.
"""

from __future__ import annotations

import asyncio
import logging
import platform
import shutil
from dataclasses import dataclass

from warden.models import SandboxRuntime
from warden.utils.telemetry import ATTR_RUNTIMES_AVAILABLE, get_tracer

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

PROBE_TIMEOUT_SECONDS = 5.0

LINUX = frozenset({"Linux"})
MACOS = frozenset({"Darwin"})


class ProbeError(Exception):
    """A runtime probe command failed, timed out or could not be spawned."""


@dataclass(frozen=True, slots=True)
class RuntimeProbe:
    """How to check for one backend."""

    name: str
    argv: tuple[str, ...]
    platforms: frozenset[str] | None = None
    path_lookup_only: bool = False
    fixed_version: str | None = None

    @property
    def binary(self) -> str:
        return self.argv[0]

    def supports(self, system: str) -> bool:
        return self.platforms is None or system in self.platforms


RUNTIME_PROBES: tuple[RuntimeProbe, ...] = (
    RuntimeProbe("gvisor", ("runsc", "--version"), LINUX),
    RuntimeProbe("nsjail", ("nsjail", "--version"), LINUX),
    RuntimeProbe("docker", ("docker", "--version")),
    RuntimeProbe("podman", ("podman", "--version")),
    RuntimeProbe("bubblewrap", ("bwrap", "--version"), LINUX),
    RuntimeProbe("firejail", ("firejail", "--version"), LINUX),
    RuntimeProbe(
        "macos",
        ("sandbox-exec",),
        MACOS,
        path_lookup_only=True,
        fixed_version="built-in",
    ),
)

_PROBES_BY_NAME = {probe.name: probe for probe in RUNTIME_PROBES}


def get_probe(name: str) -> RuntimeProbe:
    """Look up the probe for a backend name."""
    try:
        return _PROBES_BY_NAME[name]
    except KeyError:
        raise KeyError(f"Unknown sandbox runtime: {name!r}") from None


def current_system() -> str:
    return platform.system()


async def probe_runtime(
    probe: RuntimeProbe,
    *,
    system: str | None = None,
    timeout: float = PROBE_TIMEOUT_SECONDS,
) -> SandboxRuntime:
    """Check a single backend.  Never raises."""
    system = system or current_system()
    if not probe.supports(system):
        return SandboxRuntime(name=probe.name, available=False)

    if probe.path_lookup_only:
        found = shutil.which(probe.binary) is not None
        return SandboxRuntime(
            name=probe.name,
            available=found,
            version=probe.fixed_version if found else None,
        )

    try:
        output = await _run_probe(probe.argv, timeout)
    except ProbeError as exc:
        logger.debug("Runtime %s unavailable: %s", probe.name, exc)
        return SandboxRuntime(name=probe.name, available=False)

    return SandboxRuntime(
        name=probe.name,
        available=True,
        version=probe.fixed_version or _first_line(output),
    )


async def detect_runtimes(
    *,
    system: str | None = None,
    timeout: float = PROBE_TIMEOUT_SECONDS,
) -> list[SandboxRuntime]:
    """Probe every known backend and return one entry per backend, in table order."""
    system = system or current_system()
    with _tracer.start_as_current_span("warden.runtimes.detect") as span:
        runtimes = list(
            await asyncio.gather(
                *(probe_runtime(p, system=system, timeout=timeout) for p in RUNTIME_PROBES)
            )
        )
        available = [r.name for r in runtimes if r.available]
        span.set_attribute(ATTR_RUNTIMES_AVAILABLE, available)
    logger.info("Detected sandbox runtimes on %s: %s", system, ", ".join(available) or "none")
    return runtimes


async def _run_probe(argv: tuple[str, ...], timeout: float) -> str:
    """Run a probe command and return its output; raise :class:`ProbeError` on failure."""
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise ProbeError(str(exc)) from exc

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except TimeoutError:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
        await proc.wait()
        raise ProbeError(f"{argv[0]} did not answer within {timeout}s") from None

    if proc.returncode != 0:
        raise ProbeError(f"{argv[0]} exited with code {proc.returncode}")

    return (stdout or stderr).decode(errors="replace")


def _first_line(text: str) -> str | None:
    for line in text.splitlines():
        if line.strip():
            return line.strip()
    return None
