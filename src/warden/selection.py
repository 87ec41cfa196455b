"""Pick a backend for a configuration and hand back a ready adapter."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from warden.adapters import (
    BubblewrapSandbox,
    DockerSandbox,
    FirejailSandbox,
    GVisorSandbox,
    MacOSSandbox,
    NsjailSandbox,
    PodmanSandbox,
    SandboxAdapter,
)
from warden.detect import detect_runtimes
from warden.errors import RuntimeUnavailableError

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from warden.models import SandboxConfig, SandboxRuntime

logger = logging.getLogger(__name__)

AUTO = "auto"

#: Strongest isolation first.
RUNTIME_PRIORITY: tuple[str, ...] = (
    "gvisor",
    "nsjail",
    "bubblewrap",
    "firejail",
    "docker",
    "podman",
    "macos",
)

ADAPTERS: dict[str, type[SandboxAdapter]] = {
    cls.name: cls
    for cls in (
        GVisorSandbox,
        NsjailSandbox,
        BubblewrapSandbox,
        FirejailSandbox,
        DockerSandbox,
        PodmanSandbox,
        MacOSSandbox,
    )
}


def get_adapter_class(name: str) -> type[SandboxAdapter]:
    """Resolve a runtime name to its adapter class.

    Raises:
        RuntimeUnavailableError: If *name* is not a known runtime.
    """
    try:
        return ADAPTERS[name]
    except KeyError:
        raise RuntimeUnavailableError(name, "unknown runtime") from None


def select_runtime(
    runtimes: Sequence[SandboxRuntime],
    runtime: str = AUTO,
    *,
    fallback: bool = True,
) -> str:
    """Choose a runtime name from a detection result.

    ``auto`` takes the highest-priority available runtime.  A named runtime
    is used when available; otherwise, with *fallback*, the highest-priority
    available one replaces it.
    """
    if runtime != AUTO and runtime not in ADAPTERS:
        raise RuntimeUnavailableError(runtime, "unknown runtime")

    available = {r.name for r in runtimes if r.available}
    if runtime != AUTO:
        if runtime in available:
            return runtime
        if not fallback:
            raise RuntimeUnavailableError(runtime, "not available on this host")

    for name in RUNTIME_PRIORITY:
        if name in available:
            if runtime != AUTO:
                logger.warning("Runtime %s is not available, falling back to %s", runtime, name)
            return name

    raise RuntimeUnavailableError(runtime, "no sandbox runtime available on this host")


async def create_sandbox(
    config: SandboxConfig,
    runtime: str = AUTO,
    *,
    fallback: bool = True,
    runtimes: Sequence[SandboxRuntime] | None = None,
    temp_root: Path | None = None,
) -> SandboxAdapter:
    """Build and initialize an adapter for *config*.

    Pass a cached *runtimes* list to skip probing the host again.  The
    caller owns the returned adapter and must ``cleanup()`` it.
    """
    if runtimes is None:
        runtimes = await detect_runtimes()

    name = select_runtime(runtimes, runtime, fallback=fallback)
    adapter = get_adapter_class(name)(config, temp_root=temp_root)
    await adapter.initialize()
    logger.info("Created %s sandbox %s", name, adapter.sandbox_id)
    return adapter
