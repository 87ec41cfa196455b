"""Per-instance temporary directory management.

Each sandbox instance owns one directory named after its unique sandbox id
under the system temp root.  Generated policy files live inside it, so
removing the directory undoes everything the instance created.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import tempfile
from pathlib import Path

from warden.errors import SandboxError

logger = logging.getLogger(__name__)


class TempWorkspace:
    """Lazily created scratch directory for one sandbox instance."""

    def __init__(self, sandbox_id: str, *, root: Path | None = None) -> None:
        self._sandbox_id = sandbox_id
        self._root = root
        self._path: Path | None = None

    @property
    def path(self) -> Path | None:
        """The directory, or ``None`` when it does not currently exist."""
        return self._path

    @property
    def exists(self) -> bool:
        return self._path is not None

    async def create(self) -> Path:
        """Create the directory if needed and return its path."""
        if self._path is not None:
            return self._path
        root = self._root or Path(tempfile.gettempdir())
        target = root / self._sandbox_id
        try:
            await asyncio.to_thread(target.mkdir, mode=0o700, parents=True, exist_ok=True)
        except OSError as exc:
            raise SandboxError(f"cannot create workspace {target}: {exc}") from exc
        self._path = target
        logger.debug("Created sandbox workspace %s", target)
        return target

    async def subdir(self, name: str) -> Path:
        """Create and return a subdirectory of the workspace."""
        base = await self.create()
        target = base / name
        try:
            await asyncio.to_thread(target.mkdir, parents=True, exist_ok=True)
        except OSError as exc:
            raise SandboxError(f"cannot create {target}: {exc}") from exc
        return target

    async def write_file(self, name: str, content: str) -> Path:
        """Write *content* to ``<workspace>/<name>`` and return the path."""
        base = await self.create()
        target = base / name
        try:
            await asyncio.to_thread(target.write_text, content, encoding="utf-8")
        except OSError as exc:
            raise SandboxError(f"cannot write {target}: {exc}") from exc
        return target

    async def remove(self) -> None:
        """Delete the directory tree.  A no-op when nothing was created."""
        if self._path is None:
            return
        target, self._path = self._path, None
        await asyncio.to_thread(shutil.rmtree, target, ignore_errors=True)
        logger.debug("Removed sandbox workspace %s", target)
