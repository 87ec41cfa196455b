"""Shared error types for the sandbox engine."""


class WardenError(Exception):
    """Base error for all sandbox engine failures."""


class ConfigError(WardenError, ValueError):
    """A sandbox configuration value could not be accepted."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__("Invalid sandbox configuration" + (f": {detail}" if detail else ""))


class MemoryFormatError(ConfigError):
    """A memory limit string does not match ``<digits>[Ki|Mi|Gi]``."""

    def __init__(self, value: str) -> None:
        self.value = value
        super().__init__(f"memory limit {value!r} must look like '256Mi', '1Gi', '512Ki' or '100'")


class SandboxError(WardenError):
    """A sandbox lifecycle operation failed (setup or policy generation)."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__("Sandbox error" + (f": {detail}" if detail else ""))


class RuntimeUnavailableError(SandboxError):
    """No usable isolation backend matches the request."""

    def __init__(self, runtime: str, reason: str = "") -> None:
        self.runtime = runtime
        self.reason = reason
        msg = f"Sandbox runtime unavailable: {runtime}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)
