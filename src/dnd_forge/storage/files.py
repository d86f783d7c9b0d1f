"""Filesystem content store for fabricated images."""

from __future__ import annotations

import asyncio
import re
from pathlib import Path

from dnd_forge.core.exceptions import StorageError
from dnd_forge.core.logging import get_logger


logger = get_logger(__name__)

_REPEATED_SLASHES = re.compile(r"/{2,}")


def normalize_directory(directory: str) -> str:
    """Normalize a content-store directory to ``a/b/c`` form.

    Backslashes become forward slashes, repeated slashes collapse, and
    leading or trailing slashes are removed.

    Example:
        >>> normalize_directory("\\\\ai-images//portraits/")
        'ai-images/portraits'
    """
    normalized = _REPEATED_SLASHES.sub("/", directory.replace("\\", "/"))
    return normalized.strip("/")


class LocalContentStore:
    """Stores uploads under a root directory and returns relative paths.

    Attributes:
        root: Directory every upload path is relative to.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def _resolve(self, directory: str) -> Path:
        normalized = normalize_directory(directory)
        if any(part == ".." for part in normalized.split("/")):
            raise StorageError("Directory escapes the content root", details={"directory": directory})
        return self.root / normalized if normalized else self.root

    async def ensure_directory(self, directory: str) -> None:
        """Create every segment of ``directory`` that does not exist yet."""
        target = self._resolve(directory)

        def _create() -> None:
            current = self.root
            current.mkdir(parents=True, exist_ok=True)
            for segment in target.relative_to(self.root).parts:
                current = current / segment
                if not current.is_dir():
                    current.mkdir()
                    logger.debug("Created directory", path=str(current))

        try:
            await asyncio.to_thread(_create)
        except OSError as exc:
            raise StorageError(f"Cannot create directory: {exc}", details={"directory": directory}) from exc

    async def upload(self, data: bytes, directory: str, filename: str) -> str:
        """Write ``data`` and return the path relative to the root.

        Raises:
            StorageError: If the directory is missing or the write fails.
        """
        if "/" in filename or "\\" in filename:
            raise StorageError("Filename must not contain separators", details={"filename": filename})
        target = self._resolve(directory) / filename
        try:
            await asyncio.to_thread(target.write_bytes, data)
        except OSError as exc:
            raise StorageError(f"Upload failed: {exc}", details={"path": str(target)}) from exc

        relative = target.relative_to(self.root).as_posix()
        logger.info("Stored upload", path=relative, bytes=len(data))
        return relative


__all__ = ["LocalContentStore", "normalize_directory"]
