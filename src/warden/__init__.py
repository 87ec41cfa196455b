"""warden — run untrusted commands under pluggable isolation backends."""

from __future__ import annotations

from typing import TYPE_CHECKING

__version__ = "0.1.0"

if TYPE_CHECKING:
    from warden.detect import detect_runtimes as detect_runtimes
    from warden.models import ExecutionRequest as ExecutionRequest
    from warden.models import ExecutionResult as ExecutionResult
    from warden.models import SandboxConfig as SandboxConfig
    from warden.selection import create_sandbox as create_sandbox

_EXPORTS = {
    "ExecutionRequest": "warden.models",
    "ExecutionResult": "warden.models",
    "SandboxConfig": "warden.models",
    "create_sandbox": "warden.selection",
    "detect_runtimes": "warden.detect",
}


def __getattr__(name: str) -> object:
    module_path = _EXPORTS.get(name)
    if module_path is not None:
        import importlib

        mod = importlib.import_module(module_path)
        return getattr(mod, name)
    raise AttributeError(f"module 'warden' has no attribute {name!r}")
