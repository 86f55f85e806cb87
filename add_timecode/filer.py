"""
Post-processing file relocation for watch mode.

Moves processed originals and their timecoded outputs into sibling
subfolders of the watched folder. Subfolders are created on first use;
name collisions are resolved with a configurable strategy (overwrite,
rename with a token pattern, or skip).
"""

import logging
import os
import time
from datetime import datetime
from pathlib import Path

from add_timecode.config import (
    COLLISION_OVERWRITE,
    COLLISION_RENAME,
    COLLISION_SKIP,
    DEFAULT_RENAME_PATTERN,
)
from add_timecode.errors import RelocationError

logger = logging.getLogger(__name__)


def _expand_rename_pattern(
    pattern: str,
    name: str,
    ext: str,
    counter: int,
) -> str:
    """
    Expand token-based rename pattern.

    Supported tokens:
      {name}    : filename without extension
      {ext}     : extension without leading dot
      {n}       : collision counter (1, 2, 3, …)
      {date}    : current date YYYY-MM-DD
      {time}    : current time HH-MM-SS
      {datetime}: combined YYYY-MM-DD_HH-MM-SS
      {ts}      : integer Unix timestamp
    """
    now = datetime.now()
    return pattern.format(
        name=name,
        ext=ext,
        n=counter,
        date=now.strftime("%Y-%m-%d"),
        time=now.strftime("%H-%M-%S"),
        datetime=now.strftime("%Y-%m-%d_%H-%M-%S"),
        ts=int(now.timestamp()),
    )


class FileMover:
    """
    Files paths into named subfolders of a root folder.

    Parameters
    ----------
    root : str or Path
        The watched folder; subfolders are created directly beneath it.
    collision_mode : str
        One of 'overwrite', 'rename', 'skip'.
    rename_pattern : str
        Token pattern for renamed files on collision.
    """

    def __init__(
        self,
        root,
        collision_mode: str = COLLISION_RENAME,
        rename_pattern: str = DEFAULT_RENAME_PATTERN,
    ):
        self.root = Path(root)
        self._collision_mode = collision_mode
        self._rename_pattern = rename_pattern

    def ensure_subfolder(self, name: str) -> Path:
        """Create ``root/name`` if absent; an existing folder is success."""
        folder = self.root / name
        try:
            folder.mkdir(exist_ok=True)
        except OSError as exc:
            raise RelocationError(str(folder), str(folder), str(exc)) from exc
        return folder

    def _resolve_collision(self, dest: Path) -> Path | None:
        """
        Apply the configured collision strategy.

        Returns the final destination path, or None if the file should be skipped.
        """
        if not dest.exists():
            return dest

        if self._collision_mode == COLLISION_OVERWRITE:
            return dest

        if self._collision_mode == COLLISION_SKIP:
            return None

        stem = dest.stem
        ext = dest.suffix.lstrip(".")
        parent = dest.parent
        for n in range(1, 10_000):
            new_name = _expand_rename_pattern(self._rename_pattern, stem, ext, n)
            candidate = parent / new_name
            if not candidate.exists():
                return candidate

        # Counter space exhausted, fall back to a timestamp
        ts = int(time.time())
        return parent / f"{stem}_{ts}.{ext}"

    def move_into(self, source: Path, subfolder: str) -> Path | None:
        """
        Move *source* into ``root/subfolder`` and return its new path.

        Returns None when the collision mode is 'skip' and the target name
        is taken; the file is then left where it is.
        """
        folder = self.ensure_subfolder(subfolder)
        base_dest = folder / source.name
        dest = self._resolve_collision(base_dest)
        if dest is None:
            logger.warning("Skipping (collision): %s already exists", base_dest)
            return None
        try:
            os.replace(source, dest)
        except OSError as exc:
            raise RelocationError(str(source), str(dest), str(exc)) from exc
        logger.info("Moved %s -> %s", source, dest)
        return dest
