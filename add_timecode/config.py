"""Configuration management for add-timecode.

Stores and retrieves user settings from a JSON config file
in the platform-appropriate application data directory, and defines
the immutable per-invocation ``ProcessingOptions``.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from add_timecode.errors import ValidationError
from add_timecode.platform_utils import (
    get_config_dir as _platform_config_dir,
)
from add_timecode.platform_utils import (
    get_log_path as _platform_log_path,
)

logger = logging.getLogger(__name__)

DEFAULT_FRAMERATE = 24

# Collision resolution strategies for relocation
COLLISION_OVERWRITE = "overwrite"
COLLISION_RENAME = "rename"
COLLISION_SKIP = "skip"

DEFAULT_RENAME_PATTERN = "{name}_{n}.{ext}"

DEFAULT_CONFIG: dict[str, Any] = {
    "framerate": DEFAULT_FRAMERATE,
    "ffmpeg_path": "",  # blank = search PATH
    # ---- watch mode ----
    "stable_time_seconds": 2.0,
    "poll_interval_seconds": 0.1,
    "file_extensions": ["mov", "mp4"],
    "exclude_patterns": [".*"],  # hidden files
    "original_folder": "original",
    "tc_folder": "tc",
    "max_workers": 4,
    "watch_restart_attempts": 3,
    # ---- collision protection ----
    "collision_mode": COLLISION_RENAME,  # overwrite | rename | skip
    "rename_pattern": DEFAULT_RENAME_PATTERN,
    # ---- logging ----
    "log_level": "INFO",
    "log_to_file": False,
    "max_log_size_mb": 10,
    "log_backup_count": 3,
}


def get_config_path() -> Path:
    """Return the path to the configuration file."""
    return _platform_config_dir() / "config.json"


def get_log_path() -> Path:
    """Return the path to the log file."""
    return _platform_log_path()


@dataclass(frozen=True)
class ProcessingOptions:
    """Per-invocation processing settings, fully populated at the boundary."""

    destructive: bool = False
    rename: str | None = None
    start: str | None = None
    framerate: int = DEFAULT_FRAMERATE

    def __post_init__(self) -> None:
        if isinstance(self.framerate, bool) or not isinstance(self.framerate, int):
            raise ValidationError(
                f"Frame rate must be an integer, got {self.framerate!r}."
            )
        if self.framerate <= 0:
            raise ValidationError(
                f"Frame rate must be a positive integer, got {self.framerate}."
            )


class Config:
    """Configuration manager backed by a JSON file."""

    def __init__(self, path: Path | None = None, persist: bool = True):
        """Load config from *path*, falling back to the platform default."""
        self._path = path or get_config_path()
        self._persist = persist
        self._data: dict[str, Any] = dict(DEFAULT_CONFIG)
        self.load()

    # ---- persistence ----

    def load(self) -> None:
        """Load configuration from disk, applying defaults for missing keys."""
        if self._path.exists():
            try:
                with open(self._path, encoding="utf-8") as fh:
                    stored = json.load(fh)
                # Merge stored values over defaults so new keys get defaults
                self._data = {**DEFAULT_CONFIG, **stored}
                logger.debug("Configuration loaded from %s", self._path)
            except (json.JSONDecodeError, OSError) as exc:
                logger.warning("Could not read config (%s); using defaults.", exc)
                self._data = dict(DEFAULT_CONFIG)
        else:
            self._data = dict(DEFAULT_CONFIG)
            if self._persist:
                self.save()
                logger.debug("Created default configuration at %s", self._path)

    def save(self) -> None:
        """Persist the current configuration to disk."""
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._path, "w", encoding="utf-8") as fh:
                json.dump(self._data, fh, indent=2)
        except OSError as exc:
            logger.error("Failed to save configuration: %s", exc)

    # ---- processing ----

    @property
    def framerate(self) -> int:
        """Return the default frame rate."""
        return int(self._data.get("framerate", DEFAULT_FRAMERATE))

    @property
    def ffmpeg_path(self) -> str:
        """Return the configured ffmpeg executable (blank = search PATH)."""
        return str(self._data.get("ffmpeg_path", "") or "")

    # ---- watch mode ----

    @property
    def stable_time(self) -> float:
        """Return the stability threshold in seconds."""
        return float(self._data.get("stable_time_seconds", 2.0))

    @property
    def poll_interval(self) -> float:
        """Return the stability poll interval in seconds."""
        return float(self._data.get("poll_interval_seconds", 0.1))

    @property
    def file_extensions(self) -> list[str]:
        """Return the list of allowed file extensions."""
        return self._data.get("file_extensions", ["mov", "mp4"])

    @file_extensions.setter
    def file_extensions(self, value: list[str]) -> None:
        """Set allowed file extensions, normalising to lowercase."""
        self._data["file_extensions"] = [
            ext.lower().strip().lstrip(".") for ext in value if ext.strip()
        ]

    @property
    def exclude_patterns(self) -> list[str]:
        """Return glob patterns used to skip files."""
        return self._data.get("exclude_patterns", [".*"])

    @property
    def original_folder(self) -> str:
        """Return the subfolder name that receives processed originals."""
        return self._data.get("original_folder") or "original"

    @property
    def tc_folder(self) -> str:
        """Return the subfolder name that receives timecoded outputs."""
        return self._data.get("tc_folder") or "tc"

    @property
    def max_workers(self) -> int:
        """Return the number of files processed concurrently."""
        return max(1, int(self._data.get("max_workers", 4)))

    @property
    def watch_restart_attempts(self) -> int:
        """Return how many times a failed observer is restarted."""
        return max(0, int(self._data.get("watch_restart_attempts", 3)))

    # ---- collision protection ----

    @property
    def collision_mode(self) -> str:
        """Return the collision resolution strategy."""
        return self._data.get("collision_mode", COLLISION_RENAME)

    @collision_mode.setter
    def collision_mode(self, value: str) -> None:
        """Set the collision resolution strategy."""
        if value not in (COLLISION_OVERWRITE, COLLISION_RENAME, COLLISION_SKIP):
            value = COLLISION_RENAME
        self._data["collision_mode"] = value

    @property
    def rename_pattern(self) -> str:
        """Return the token-based rename pattern."""
        return self._data.get("rename_pattern", DEFAULT_RENAME_PATTERN)

    # ---- logging ----

    @property
    def log_level(self) -> str:
        """Return the current logging level name."""
        return self._data.get("log_level", "INFO")

    @property
    def log_to_file(self) -> bool:
        """Return whether a rotating log file is written."""
        return bool(self._data.get("log_to_file", False))

    @property
    def max_log_size_mb(self) -> int:
        """Return the maximum log file size in MB before rotation."""
        return int(self._data.get("max_log_size_mb", 10))

    @property
    def log_backup_count(self) -> int:
        """Return the number of rotated log backups to keep."""
        return int(self._data.get("log_backup_count", 3))

    # ---- convenience ----

    def processing_options(
        self,
        destructive: bool = False,
        rename: str | None = None,
        start: str | None = None,
        framerate: int | None = None,
    ) -> ProcessingOptions:
        """Build options for one invocation, filling gaps from this config."""
        return ProcessingOptions(
            destructive=destructive,
            rename=rename or None,
            start=start or None,
            framerate=self.framerate if framerate is None else framerate,
        )
