"""
ffmpeg remux step for add-timecode.

Runs a stream-copy remux that sets the container timecode, then
optionally replaces the original file with the result. ffmpeg's own
output goes straight to the operator's terminal; success is judged by
the exit status alone.
"""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import Sequence

from add_timecode.errors import ExternalToolError
from add_timecode.platform_utils import find_ffmpeg
from add_timecode.timecode import Timecode

logger = logging.getLogger(__name__)


def build_command(
    ffmpeg: str, input_path: Path, output_path: Path, timecode: Timecode
) -> list[str]:
    """Return the ffmpeg argument list: overwrite, copy all streams, set timecode."""
    return [
        ffmpeg,
        "-y",
        "-i", str(input_path),
        "-timecode", str(timecode),
        "-map", "0",
        "-c", "copy",
        str(output_path),
    ]


def run_subprocess(cmd: Sequence[str]) -> subprocess.CompletedProcess:
    """Run *cmd* with inherited stdio and no exit-status check."""
    return subprocess.run([str(part) for part in cmd], check=False)


class Remuxer:
    """
    Embeds a timecode into a clip by remuxing it with ffmpeg.

    Parameters
    ----------
    ffmpeg_path : str
        Explicit ffmpeg executable; blank searches ``PATH``.
    """

    def __init__(self, ffmpeg_path: str = ""):
        self._ffmpeg = find_ffmpeg(ffmpeg_path)

    @property
    def ffmpeg(self) -> str:
        return self._ffmpeg

    def apply(
        self,
        input_path: Path,
        output_path: Path,
        timecode: Timecode,
        destructive: bool = False,
    ) -> Path:
        """
        Write *output_path* with *timecode* embedded and return the final path.

        In destructive mode the output takes the place of *input_path* and
        *input_path* is returned. A partial output left by a failed run is
        not removed.
        """
        cmd = build_command(self._ffmpeg, input_path, output_path, timecode)
        logger.info("Executing ffmpeg command: %s", subprocess.list2cmdline(cmd))

        try:
            result = run_subprocess(cmd)
        except OSError as exc:
            raise ExternalToolError(str(exc)) from exc

        if result.returncode != 0:
            raise ExternalToolError(
                f"Command failed: {subprocess.list2cmdline(cmd)} "
                f"(exit status {result.returncode})",
                returncode=result.returncode,
            )
        logger.info("Timecode %s added successfully to %s", timecode, output_path)

        if destructive:
            self._replace_original(input_path, output_path)
            return input_path
        return output_path

    def _replace_original(self, input_path: Path, output_path: Path) -> None:
        """Move the remuxed file over the original in a single rename."""
        try:
            size = output_path.stat().st_size
        except OSError as exc:
            raise ExternalToolError(
                f"ffmpeg reported success but {output_path} is unreadable: {exc}"
            ) from exc
        if size == 0:
            raise ExternalToolError(
                f"ffmpeg reported success but {output_path} is empty"
            )
        try:
            os.replace(output_path, input_path)
        except OSError as exc:
            raise ExternalToolError(
                f"Could not replace {input_path} with {output_path}: {exc}"
            ) from exc
        logger.info("Replaced original file with updated file.")
