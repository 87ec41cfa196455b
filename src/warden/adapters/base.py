"""Base class shared by every backend adapter.

An adapter only knows how to turn a :class:`SandboxConfig` and an
:class:`ExecutionRequest` into an invocation of its external tool.  The
lifecycle (lazy workspace creation, cleanup) and execution supervision
(stdin, bounded capture, deadline, outcome classification) live here and
in :mod:`warden.supervisor`.

Instances are single-flight: run ``execute()`` calls on one instance
sequentially.  Use separate instances for concurrent work.
"""

from __future__ import annotations

import logging
import os
import secrets
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, ClassVar

from warden.detect import get_probe, probe_runtime
from warden.errors import SandboxError
from warden.models import ExecutionOutcome, ExecutionResult
from warden.supervisor import TimeoutHook, supervise
from warden.utils.telemetry import (
    ATTR_COMMAND,
    ATTR_DURATION_MS,
    ATTR_EXIT_CODE,
    ATTR_KILLED,
    ATTR_RUNTIME,
    ATTR_SANDBOX_ID,
    ATTR_TIMED_OUT,
    get_tracer,
)
from warden.workspace import TempWorkspace

if TYPE_CHECKING:
    from pathlib import Path

    from warden.models import ExecutionRequest, SandboxConfig

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)


class SandboxAdapter(ABC):
    """One sandbox instance backed by an external isolation tool.

    Satisfies the :class:`~warden.executor.SandboxExecutor` protocol.
    """

    #: Runtime name as reported by :func:`warden.detect.detect_runtimes`.
    name: ClassVar[str]
    #: Executable spawned for every request.
    binary: ClassVar[str]
    id_prefix: ClassVar[str] = "sandbox"
    #: Whether the instance needs a temp directory at all.
    uses_workspace: ClassVar[bool] = True

    def __init__(self, config: SandboxConfig, *, temp_root: Path | None = None) -> None:
        self._config = config
        self._sandbox_id = f"{self.id_prefix}-{secrets.token_hex(8)}"
        self._workspace = TempWorkspace(self._sandbox_id, root=temp_root)
        self._initialized = False

    @property
    def config(self) -> SandboxConfig:
        return self._config

    @property
    def sandbox_id(self) -> str:
        return self._sandbox_id

    @property
    def workspace_path(self) -> Path | None:
        return self._workspace.path

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Allocate the workspace and write any generated policy.  Idempotent."""
        if self._initialized:
            return
        if self.uses_workspace:
            await self._workspace.create()
            try:
                await self._prepare(self._workspace)
            except Exception:
                await self._workspace.remove()
                raise
        self._initialized = True
        logger.info("Initialized %s sandbox %s", self.name, self._sandbox_id)

    async def execute(self, request: ExecutionRequest) -> ExecutionResult:
        """Run *request* under this sandbox and report how it ended."""
        with _tracer.start_as_current_span("warden.sandbox.execute") as span:
            span.set_attribute(ATTR_RUNTIME, self.name)
            span.set_attribute(ATTR_SANDBOX_ID, self._sandbox_id)

            if not self._initialized:
                try:
                    await self.initialize()
                except SandboxError as exc:
                    logger.error("Sandbox %s failed to initialize: %s", self._sandbox_id, exc)
                    return ExecutionResult(
                        success=False,
                        error=str(exc),
                        outcome=ExecutionOutcome.SPAWN_FAILED,
                        runtime=self.name,
                    )

            span.set_attribute(ATTR_COMMAND, request.command)
            argv = self.build_command(request)
            logger.debug("%s invocation: %s", self.name, argv)
            result = await supervise(
                argv,
                timeout_ms=self._config.timeout_ms,
                max_output_bytes=self._config.max_output_bytes,
                stdin=request.stdin,
                env=self._spawn_env(request),
                cwd=self._spawn_cwd(request),
                on_timeout=self._timeout_hook(),
                runtime=self.name,
            )
            result = self._classify(result)

            if result.exit_code is not None:
                span.set_attribute(ATTR_EXIT_CODE, result.exit_code)
            span.set_attribute(ATTR_TIMED_OUT, result.timed_out)
            span.set_attribute(ATTR_KILLED, result.killed)
            span.set_attribute(ATTR_DURATION_MS, result.duration_ms)
            return result

    async def cleanup(self) -> None:
        """Undo whatever ``initialize()`` created.  Safe to call repeatedly."""
        if self._initialized:
            await self._release()
        await self._workspace.remove()
        if self._initialized:
            logger.info("Cleaned up %s sandbox %s", self.name, self._sandbox_id)
        self._initialized = False

    @classmethod
    async def is_available(cls) -> bool:
        """Probe the host for this adapter's backend."""
        runtime = await probe_runtime(get_probe(cls.name))
        return runtime.available

    @abstractmethod
    def build_command(self, request: ExecutionRequest) -> list[str]:
        """Full argv, starting with :attr:`binary`, for *request*."""

    async def _prepare(self, workspace: TempWorkspace) -> None:
        """Write backend-specific files into a freshly created workspace."""

    async def _release(self) -> None:
        """Release backend-side resources beyond the workspace."""

    def _spawn_env(self, request: ExecutionRequest) -> dict[str, str] | None:
        """Environment for the wrapper process itself."""
        if not request.env:
            return None
        return {**os.environ, **request.env}

    def _spawn_cwd(self, request: ExecutionRequest) -> str | None:
        """Host working directory for the wrapper process."""
        return None

    def _timeout_hook(self) -> TimeoutHook | None:
        return None

    def _classify(self, result: ExecutionResult) -> ExecutionResult:
        """Adjust a supervised result for how this backend reports the workload."""
        return result

    def _effective_work_dir(self, request: ExecutionRequest) -> str | None:
        return request.work_dir or self._config.work_dir

    def _require_workspace(self) -> Path:
        path = self._workspace.path
        if path is None:
            raise SandboxError(f"{self.name} sandbox {self._sandbox_id} is not initialized")
        return path

    async def __aenter__(self) -> SandboxAdapter:
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.cleanup()
