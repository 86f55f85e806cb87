"""
Cross-platform utilities for add-timecode.

Centralises all OS-detection logic so every other module can import
a single canonical set of helpers rather than scattering ``sys.platform``
checks throughout the codebase.
"""

from __future__ import annotations

import logging
import os
import shutil
import sys
from pathlib import Path

logger = logging.getLogger(__name__)

# ---- platform flags ----------------------------------------------------

IS_WINDOWS: bool = sys.platform == "win32"
IS_MACOS: bool = sys.platform == "darwin"

_APP_DIR_NAME = "AddTimecode"

# ---- directories -------------------------------------------------------


def get_config_dir() -> Path:
    """
    Return the application config directory, created if needed.

    - Windows : ``%APPDATA%\\AddTimecode``
    - macOS   : ``~/Library/Application Support/AddTimecode``
    - Linux   : ``$XDG_CONFIG_HOME/AddTimecode`` (default ``~/.config``)
    """
    if IS_WINDOWS:
        base = os.environ.get("APPDATA", str(Path.home()))
    elif IS_MACOS:
        base = str(Path.home() / "Library" / "Application Support")
    else:
        base = os.environ.get("XDG_CONFIG_HOME", str(Path.home() / ".config"))

    config_dir = Path(base) / _APP_DIR_NAME
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


def get_log_path() -> Path:
    """Return the path to the log file (inside the config directory)."""
    return get_config_dir() / "add_timecode.log"


# ---- external tools ----------------------------------------------------


def find_ffmpeg(custom_path: str = "") -> str:
    """
    Return the ffmpeg executable to invoke.

    An explicit *custom_path* wins; otherwise ``PATH`` is searched and,
    failing that, the bare name is returned so the launch error surfaces
    from the subprocess call itself.
    """
    if custom_path:
        return custom_path
    binary = "ffmpeg.exe" if IS_WINDOWS else "ffmpeg"
    found = shutil.which(binary)
    if found is None:
        logger.debug("%s not found on PATH", binary)
        return binary
    return found
