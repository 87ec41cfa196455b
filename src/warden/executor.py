"""SandboxExecutor protocol — the common interface for sandbox adapters."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from warden.models import ExecutionRequest, ExecutionResult


@runtime_checkable
class SandboxExecutor(Protocol):
    """Runs commands in an isolated environment.

    Implementations allocate per-instance state in ``initialize()``, run one
    command per ``execute()`` call and release everything in ``cleanup()``.
    Calls on a single instance must not overlap.
    """

    async def initialize(self) -> None:
        """Allocate per-instance state.  Idempotent."""
        ...

    async def execute(self, request: ExecutionRequest) -> ExecutionResult:
        """Run a command in the sandbox and return the result."""
        ...

    async def cleanup(self) -> None:
        """Release anything ``initialize()`` created.  Idempotent."""
        ...
