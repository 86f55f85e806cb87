"""
Command line front end for add-timecode.

    add-timecode <file> [options]
    add-timecode --watch <folder> [options]

Single-file mode prints a one-line summary and exits non-zero on failure.
Watch mode runs in the foreground until SIGINT/SIGTERM.
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import Optional, Sequence

from add_timecode import __app_name__, __version__
from add_timecode.config import Config, ProcessingOptions
from add_timecode.errors import TimecodeToolError
from add_timecode.log import setup_logging
from add_timecode.pipeline import ProcessingPipeline
from add_timecode.remux import Remuxer
from add_timecode.watcher import FolderWatcher

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=__app_name__,
        usage=(
            "%(prog)s <file> [options] or %(prog)s --watch <folder> [options]"
        ),
        description="Embed a creation-time SMPTE timecode into video files using ffmpeg.",
    )
    parser.add_argument("file", nargs="?", help="Video file to process")
    parser.add_argument(
        "-d",
        "--destructive",
        action="store_true",
        help="Delete original file after processing",
    )
    parser.add_argument(
        "-r",
        "--rename",
        type=str,
        default=None,
        help="String to use as the new filename prefix (without colons)",
    )
    parser.add_argument(
        "-s",
        "--start",
        type=str,
        default=None,
        help="Optional initial timecode in hh:mm:ss:ff format",
    )
    parser.add_argument(
        "-f",
        "--framerate",
        type=int,
        default=None,
        help="Frame rate as an integer (default from config, normally 24)",
    )
    parser.add_argument(
        "-w",
        "--watch",
        type=str,
        default=None,
        help="Path to a folder to watch for new files",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to a JSON config file (default: platform config directory)",
    )
    parser.add_argument(
        "--ffmpeg",
        type=str,
        default=None,
        help="ffmpeg executable to use (default: search PATH)",
    )
    parser.add_argument(
        "--stable-seconds",
        type=float,
        default=None,
        help="Watch mode: seconds a file must stay unchanged before processing",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        help="Logging level (default from config)",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    return parser


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.watch and not args.file:
        parser.error("You must provide a video file or a folder to watch")
    return args


def run_single(
    input_file: str, options: ProcessingOptions, pipeline: ProcessingPipeline
) -> int:
    """Process one file and print the summary line. Returns the exit status."""
    try:
        result = pipeline.process(input_file, options)
    except TimecodeToolError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    print(result.summary)
    return 0


def run_watch(watcher: FolderWatcher) -> int:
    """Run *watcher* in the foreground until SIGINT/SIGTERM."""
    stop = threading.Event()

    def _handler(sig, frame):
        logger.info("Stop requested (signal %d).", sig)
        stop.set()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)

    try:
        watcher.start()
    except FileNotFoundError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    return 0 if watcher.run_forever(stop) else 1


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)

    cfg = Config(Path(args.config).expanduser() if args.config else None)
    setup_logging(cfg, args.log_level)

    try:
        options = cfg.processing_options(
            destructive=args.destructive,
            rename=args.rename,
            start=args.start,
            framerate=args.framerate,
        )
    except TimecodeToolError as exc:
        print(str(exc), file=sys.stderr)
        return 1

    ffmpeg_path = args.ffmpeg if args.ffmpeg is not None else cfg.ffmpeg_path
    pipeline = ProcessingPipeline(Remuxer(ffmpeg_path))

    if not args.watch:
        return run_single(args.file, options, pipeline)

    watcher = FolderWatcher(
        args.watch,
        options,
        pipeline=pipeline,
        stable_seconds=(
            args.stable_seconds if args.stable_seconds is not None else cfg.stable_time
        ),
        poll_interval=cfg.poll_interval,
        extensions=cfg.file_extensions,
        exclude_patterns=cfg.exclude_patterns,
        original_folder=cfg.original_folder,
        tc_folder=cfg.tc_folder,
        collision_mode=cfg.collision_mode,
        rename_pattern=cfg.rename_pattern,
        max_workers=cfg.max_workers,
        restart_attempts=cfg.watch_restart_attempts,
    )
    return run_watch(watcher)
