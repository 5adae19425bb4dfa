from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath
from typing import Iterable, Optional

from starlette.concurrency import run_in_threadpool

from territory_api.core.settings import get_app_settings

logger = logging.getLogger(__name__)


class ImageStorage:
    """
    Files of generated territory images, one directory per user below the static root.

    Paths handled here are relative to the root, in the `/<userId>/<file>` form
    the repositories return.
    """

    def __init__(self, root: Optional[str] = None) -> None:
        self.root = Path(root or get_app_settings().STATIC_PATH).resolve()

    def resolve(self, relative_path: str) -> Path:
        """
        Absolute path of `relative_path`, kept inside the directory named by its
        first segment (the owner's id). Anything escaping it raises ValueError.
        """
        parts = PurePosixPath(relative_path.lstrip("/")).parts
        if len(parts) < 2:
            raise ValueError(f"Path has no owner directory: {relative_path}")
        owner_dir = (self.root / parts[0]).resolve()
        target = owner_dir.joinpath(*parts[1:]).resolve()
        if owner_dir.parent != self.root or owner_dir not in target.parents:
            raise ValueError(f"Path outside of its owner directory: {relative_path}")
        return target

    def _write(self, relative_path: str, data: bytes) -> Path:
        target = self.resolve(relative_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        return target

    def _remove(self, relative_path: str) -> bool:
        target = self.resolve(relative_path)
        try:
            target.unlink()
        except FileNotFoundError:
            logger.warning("File already absent: %s", relative_path)
            return False
        return True

    # PUBLIC_INTERFACE
    async def write(self, relative_path: str, data: bytes) -> Path:
        """Write `data`, creating the user directory if needed."""
        target = await run_in_threadpool(self._write, relative_path, data)
        logger.debug("Wrote %d bytes to %s", len(data), relative_path)
        return target

    # PUBLIC_INTERFACE
    async def remove(self, relative_path: str) -> bool:
        """Delete a file. A missing file is logged and reported as False."""
        return await run_in_threadpool(self._remove, relative_path)

    async def remove_all(self, relative_paths: Iterable[str]) -> int:
        removed = 0
        for path in relative_paths:
            if await self.remove(path):
                removed += 1
        return removed

    def exists(self, relative_path: str) -> bool:
        return self.resolve(relative_path).is_file()
