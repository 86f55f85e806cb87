"""Logging setup for the add-timecode command line."""

from __future__ import annotations

import logging
import logging.handlers
import sys

from add_timecode.config import Config, get_log_path

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(config: Config, level_name: str | None = None) -> None:
    """Configure the stderr handler and, if enabled, a rotating log file."""
    name = (level_name or config.log_level).upper()
    level = getattr(logging, name, logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    fmt = logging.Formatter(LOG_FORMAT)

    sh = logging.StreamHandler(sys.stderr)
    sh.setLevel(level)
    sh.setFormatter(fmt)
    root_logger.addHandler(sh)

    if config.log_to_file:
        max_bytes = config.max_log_size_mb * 1024 * 1024
        fh = logging.handlers.RotatingFileHandler(
            str(get_log_path()),
            maxBytes=max_bytes,
            backupCount=config.log_backup_count,
            encoding="utf-8",
        )
        fh.setLevel(level)
        fh.setFormatter(fmt)
        root_logger.addHandler(fh)

    # watchdog is chatty at DEBUG
    logging.getLogger("watchdog").setLevel(max(level, logging.INFO))
