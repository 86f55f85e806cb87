"""
Single-file processing pipeline for add-timecode.

stat -> timecode -> output name -> ffmpeg remux, one attempt, no retries.
"""

from __future__ import annotations

import logging
import os
import stat
from dataclasses import dataclass, replace
from pathlib import Path

from add_timecode.config import ProcessingOptions
from add_timecode.errors import StatError
from add_timecode.naming import derive_output_path
from add_timecode.remux import Remuxer
from add_timecode.timecode import Timecode, compute_timecode, creation_time

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessingResult:
    """Outcome of one pipeline run."""

    input_path: Path
    timecode: Timecode
    output_path: Path
    created_time_formatted: str

    @property
    def summary(self) -> str:
        return (
            "Operation complete: determined file creation time as "
            f"{self.created_time_formatted} and added timecode starting "
            f"with {self.timecode}"
        )


class ProcessingPipeline:
    """Runs the calculator, namer and remuxer for one input file at a time."""

    def __init__(self, remuxer: Remuxer | None = None):
        self.remuxer = remuxer or Remuxer()

    def prepare(
        self, input_path: str | Path, options: ProcessingOptions
    ) -> ProcessingResult:
        """
        Stat *input_path* and work out its timecode and output path.

        No file is written. The returned result describes what ``execute``
        will produce.
        """
        source = Path(input_path)
        try:
            stats = os.stat(source)
        except OSError as exc:
            raise StatError(str(source), exc.strerror or str(exc)) from exc
        if not stat.S_ISREG(stats.st_mode):
            raise StatError(str(source), "not a regular file")

        timecode, created_fmt = compute_timecode(creation_time(stats), options)
        return ProcessingResult(
            input_path=source,
            timecode=timecode,
            output_path=derive_output_path(source, timecode, options),
            created_time_formatted=created_fmt,
        )

    def execute(
        self, planned: ProcessingResult, options: ProcessingOptions
    ) -> ProcessingResult:
        """Run the remux for a prepared result and return the final result."""
        final_path = self.remuxer.apply(
            planned.input_path,
            planned.output_path,
            planned.timecode,
            destructive=options.destructive,
        )
        return replace(planned, output_path=final_path)

    def process(
        self, input_path: str | Path, options: ProcessingOptions
    ) -> ProcessingResult:
        """Process one file end to end."""
        return self.execute(self.prepare(input_path, options), options)


def process(
    input_path: str | Path,
    options: ProcessingOptions,
    ffmpeg_path: str = "",
) -> ProcessingResult:
    """Convenience wrapper: process *input_path* with a fresh pipeline."""
    return ProcessingPipeline(Remuxer(ffmpeg_path)).process(input_path, options)
