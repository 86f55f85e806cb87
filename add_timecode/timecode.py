"""
Timecode derivation for add-timecode.

Turns a file's creation timestamp, or an operator-supplied start value,
into an ``hh:mm:ss:ff`` timecode at a given integer frame rate.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from datetime import datetime

from add_timecode.config import ProcessingOptions
from add_timecode.errors import ValidationError

logger = logging.getLogger(__name__)

# Two ASCII digits per field; \d would also accept non-ASCII digits.
_START_RE = re.compile(r"([0-9]{2}):([0-9]{2}):([0-9]{2}):([0-9]{2})")


@dataclass(frozen=True)
class Timecode:
    """An SMPTE-style position: hours, minutes, seconds and frames."""

    hours: int
    minutes: int
    seconds: int
    frames: int

    def __str__(self) -> str:
        return (
            f"{self.hours:02d}:{self.minutes:02d}:"
            f"{self.seconds:02d}:{self.frames:02d}"
        )

    @property
    def compact(self) -> str:
        """The timecode with colons removed, safe for filenames."""
        return str(self).replace(":", "")


def creation_time(stat_result: os.stat_result) -> datetime:
    """
    Return the creation time recorded in *stat_result* as local time.

    Uses ``st_birthtime`` where the platform reports it (macOS, BSD,
    Windows) and falls back to ``st_ctime`` elsewhere. On Linux that is
    the inode change time, so a ``chmod``, ``chown`` or rename moves it
    and changes the derived timecode.
    """
    birthtime = getattr(stat_result, "st_birthtime", None)
    if birthtime is None:
        birthtime = stat_result.st_ctime
    return datetime.fromtimestamp(birthtime)


def format_created(created: datetime) -> str:
    """Render *created* as ``hh:mm:ss.mmm`` for reporting."""
    return (
        f"{created.hour:02d}:{created.minute:02d}:{created.second:02d}"
        f".{created.microsecond // 1000:03d}"
    )


def parse_start(start: str, framerate: int) -> Timecode:
    """
    Parse an operator-supplied ``hh:mm:ss:ff`` start timecode.

    Only the frame field is range-checked; hours, minutes and seconds are
    accepted as any two-digit value.
    """
    match = _START_RE.fullmatch(start)
    if not match:
        raise ValidationError(
            "The provided start timecode must be in the format hh:mm:ss:ff"
        )
    hours, minutes, seconds, frames = (int(group) for group in match.groups())
    if frames >= framerate:
        raise ValidationError(
            "Frame number in start timecode must be less than "
            f"the frame rate ({framerate})."
        )
    return Timecode(hours, minutes, seconds, frames)


def from_datetime(created: datetime, framerate: int) -> Timecode:
    """Quantise the wall-clock time of *created* to a frame at *framerate*."""
    millis = created.microsecond // 1000
    frames = millis * framerate // 1000
    return Timecode(created.hour, created.minute, created.second, frames)


def compute_timecode(
    created: datetime, options: ProcessingOptions
) -> tuple[Timecode, str]:
    """
    Return ``(timecode, created_time_formatted)`` for a file created at
    *created*.

    A ``start`` value in *options* takes precedence over the creation time
    for the timecode; the formatted creation time is always reported.
    """
    created_fmt = format_created(created)
    if options.start:
        timecode = parse_start(options.start, options.framerate)
    else:
        timecode = from_datetime(created, options.framerate)
    logger.info("File creation time: %s", created_fmt)
    logger.info("Using video timecode: %s", timecode)
    return timecode, created_fmt
