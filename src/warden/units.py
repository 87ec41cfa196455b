"""Resource unit parsing for memory limits.

Memory limits use Kubernetes-style binary suffixes.  A bare number is read
as mebibytes, so ``"100"`` and ``"100Mi"`` are the same limit.
"""

from __future__ import annotations

import math
import re

from warden.errors import MemoryFormatError

KIB = 1024
MIB = 1024 * KIB
GIB = 1024 * MIB

_MEMORY_RE = re.compile(r"(\d+)(Ki|Mi|Gi)?", re.ASCII)

_MULTIPLIERS: dict[str, int] = {
    "Ki": KIB,
    "Mi": MIB,
    "Gi": GIB,
}


def parse_memory(value: str) -> int:
    """Convert a memory string such as ``"256Mi"`` into a byte count.

    Raises:
        MemoryFormatError: If *value* is not ``<digits>`` optionally followed
            by ``Ki``, ``Mi`` or ``Gi``.
    """
    match = _MEMORY_RE.fullmatch(value) if isinstance(value, str) else None
    if match is None:
        raise MemoryFormatError(str(value))

    number, unit = match.groups()
    return int(number) * _MULTIPLIERS[unit or "Mi"]


def parse_cpu(value: str) -> float:
    """Parse a fractional core count (``"0.5"``, ``"2"``)."""
    try:
        cores = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"cpu limit {value!r} is not a number") from None
    if not math.isfinite(cores) or cores <= 0:
        raise ValueError(f"cpu limit {value!r} must be a positive number of cores")
    return cores


def cpu_seconds_per_minute(value: str) -> int:
    """Nominal CPU-time budget for a fractional core count.

    A process limited to ``cpu`` cores may burn ``cpu * 60`` CPU-seconds per
    wall-clock minute; the result is rounded up so ``"0.5"`` gives ``30``.
    """
    # Rounded first so binary float noise (0.1 * 60 == 6.000000000000001) does not bump it.
    return math.ceil(round(parse_cpu(value) * 60, 6))


def ceil_seconds(timeout_ms: int) -> int:
    """Round a millisecond timeout up to whole seconds (``2500`` -> ``3``)."""
    return math.ceil(timeout_ms / 1000)


def bytes_to_mib(value: int) -> int:
    """Round a byte count up to whole mebibytes."""
    return math.ceil(value / MIB)
