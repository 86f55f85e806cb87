"""
Error types for add-timecode.

All errors inherit from TimecodeToolError so callers can catch the
whole family in one place.
"""

from __future__ import annotations


class TimecodeToolError(Exception):
    """Base exception for all processing failures."""


class StatError(TimecodeToolError):
    """Raised when the input file is missing or cannot be stat'ed."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Error reading file stats: {reason}")


class ValidationError(TimecodeToolError):
    """Raised for a malformed or out-of-range start timecode or option."""


class ExternalToolError(TimecodeToolError):
    """Raised when ffmpeg cannot be launched or exits non-zero."""

    def __init__(self, reason: str, returncode: int | None = None):
        self.reason = reason
        self.returncode = returncode
        super().__init__(f"Error executing ffmpeg: {reason}")


class RelocationError(TimecodeToolError):
    """Raised when a processed file cannot be filed into its subfolder."""

    def __init__(self, source: str, destination: str, reason: str):
        self.source = source
        self.destination = destination
        self.reason = reason
        super().__init__(f"Could not move {source} -> {destination}: {reason}")
