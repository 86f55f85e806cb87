"""Output filename derivation for processed clips."""

from __future__ import annotations

from pathlib import Path

from add_timecode.config import ProcessingOptions
from add_timecode.timecode import Timecode


def derive_output_path(
    input_path: str | Path, timecode: Timecode, options: ProcessingOptions
) -> Path:
    """
    Return where the timecoded copy of *input_path* is written.

    ``{dir}/{rename}_{hhmmssff}{ext}`` when a rename prefix is set,
    otherwise ``{dir}/{stem}_tc{ext}``. The result never equals the input.
    """
    source = Path(input_path)
    ext = source.suffix
    if options.rename:
        # Timecode colons are not valid in Windows filenames
        name = f"{options.rename.replace(':', '')}_{timecode.compact}{ext}"
    else:
        name = f"{source.stem}_tc{ext}"
    output = source.parent / name
    if output == source:
        output = output.with_name(f"{output.stem}_tc{ext}")
    return output
