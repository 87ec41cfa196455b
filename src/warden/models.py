"""Data models for the sandbox engine."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from warden.units import MIB, parse_cpu, parse_memory


class NetworkMode(str, Enum):
    """Network exposure granted to a sandboxed process."""

    NONE = "none"
    HOST = "host"
    RESTRICTED = "restricted"


class ExecutionOutcome(str, Enum):
    """How a single execution ended."""

    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    KILLED = "killed"
    SPAWN_FAILED = "spawn_failed"


class SandboxConfig(BaseModel):
    """Immutable isolation policy for one sandbox instance."""

    model_config = ConfigDict(frozen=True)

    memory: str = Field(default="256Mi", description="Memory limit, e.g. '256Mi', '1Gi', '512Ki'.")
    cpu: str = Field(default="0.5", description="CPU limit as a fractional core count.")
    timeout_ms: int = Field(default=30_000, gt=0, description="Wall-clock limit per execution.")
    max_output_bytes: int = Field(
        default=MIB,
        gt=0,
        description="Cap applied separately to captured stdout and stderr.",
    )
    network: NetworkMode = Field(default=NetworkMode.NONE, description="Network exposure.")
    allowed_hosts: list[str] = Field(
        default_factory=list,
        description="Hosts reachable when network is 'restricted'.",
    )
    read_only: bool = Field(default=True, description="Mount the sandbox filesystem read-only.")
    work_dir: str | None = Field(default=None, description="Default working directory.")
    allowed_paths: list[str] = Field(
        default_factory=list,
        description="Extra host paths exposed inside the sandbox.",
    )
    user: str | None = Field(default=None, description="Run as this user, where supported.")
    capabilities: list[str] = Field(
        default_factory=list,
        description="Linux capabilities to retain; everything else is dropped.",
    )
    image: str = Field(default="alpine:latest", description="Base image for container backends.")

    @field_validator("memory")
    @classmethod
    def _validate_memory(cls, value: str) -> str:
        parse_memory(value)
        return value

    @field_validator("cpu", mode="before")
    @classmethod
    def _validate_cpu(cls, value: object) -> str:
        text = str(value)
        parse_cpu(text)
        return text

    @property
    def memory_bytes(self) -> int:
        return parse_memory(self.memory)

    @property
    def cpu_cores(self) -> float:
        return parse_cpu(self.cpu)


class ExecutionRequest(BaseModel):
    """A single command to run inside a sandbox."""

    command: str = Field(..., min_length=1, description="Executable to run.")
    args: list[str] = Field(default_factory=list, description="Arguments passed to the command.")
    env: dict[str, str] = Field(default_factory=dict, description="Environment overrides.")
    stdin: str | None = Field(default=None, description="Payload written to stdin, then closed.")
    work_dir: str | None = Field(default=None, description="Per-call working directory override.")

    @property
    def argv(self) -> list[str]:
        return [self.command, *self.args]


class ResourceUsage(BaseModel):
    """Optional resource sample attached to a result."""

    memory_bytes: int | None = None
    cpu_time_ms: float | None = None


class ExecutionResult(BaseModel):
    """Outcome of one sandboxed execution."""

    success: bool = Field(..., description="Exit code 0, no timeout and no kill.")
    exit_code: int | None = Field(
        default=None,
        description="Process exit code; -1 when signalled, None when spawning failed.",
    )
    stdout: str = Field(default="", description="Captured stdout, truncated at the output cap.")
    stderr: str = Field(default="", description="Captured stderr, truncated at the output cap.")
    timed_out: bool = Field(default=False, description="The wall-clock limit expired.")
    killed: bool = Field(
        default=False,
        description="Terminated by SIGKILL that the timeout did not send.",
    )
    duration_ms: float = Field(default=0.0, description="Wall-clock duration in milliseconds.")
    resource_usage: ResourceUsage | None = None
    error: str | None = Field(default=None, description="Spawn-level error message.")
    outcome: ExecutionOutcome = Field(default=ExecutionOutcome.COMPLETED)
    signal: int | None = Field(default=None, description="Terminating signal number, if any.")
    runtime: str = Field(default="", description="Backend that produced this result.")


class SandboxRuntime(BaseModel):
    """Host availability of one isolation backend."""

    name: str
    available: bool
    version: str | None = None
