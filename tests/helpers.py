"""Shared test helpers: a stand-in for the ffmpeg subprocess."""

import shutil
import subprocess
from pathlib import Path

REMUX_MARKER = b"<remuxed>"


def fake_ffmpeg(cmd):
    """Copy the input to the output and tag it, as a successful remux would."""
    source, output = Path(cmd[3]), Path(cmd[-1])
    shutil.copyfile(source, output)
    with open(output, "ab") as fh:
        fh.write(REMUX_MARKER)
    return subprocess.CompletedProcess(cmd, 0)


def failing_ffmpeg(cmd):
    """Leave a truncated output behind and exit non-zero."""
    Path(cmd[-1]).write_bytes(b"partial")
    return subprocess.CompletedProcess(cmd, 1)
