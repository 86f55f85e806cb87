"""File system watcher for add-timecode.

Uses the watchdog library to monitor a folder for new video files,
holds each one until it has stopped changing, then hands it to the
processing pipeline on a worker pool and files the original and the
timecoded output into ``original/`` and ``tc/`` subfolders.
"""

from __future__ import annotations

import enum
import fnmatch
import logging
import os
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from typing import Any

from watchdog.events import (
    FileCreatedEvent,
    FileModifiedEvent,
    FileMovedEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from add_timecode.config import (
    COLLISION_RENAME,
    DEFAULT_RENAME_PATTERN,
    ProcessingOptions,
)
from add_timecode.errors import RelocationError, TimecodeToolError
from add_timecode.filer import FileMover
from add_timecode.pipeline import ProcessingPipeline, ProcessingResult

logger = logging.getLogger(__name__)

DEFAULT_EXTENSIONS = ["mov", "mp4"]


class WatchPhase(enum.Enum):
    """Lifecycle of a watched folder."""

    IDLE = "idle"
    SCANNING_INITIAL = "scanning"
    WATCHING = "watching"
    STOPPED = "stopped"


class FilePhase(enum.Enum):
    """Lifecycle of one discovered file after it has become stable."""

    PROCESSING = "processing"
    RELOCATING = "relocating"


@dataclass
class WatchStats:
    """Aggregated per-folder outcome counters."""
    total_processed: int = 0
    total_failed: int = 0
    total_relocation_failed: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def record_success(self, result: ProcessingResult) -> None:
        with self._lock:
            self.total_processed += 1

    def record_failure(self, relocation: bool = False) -> None:
        with self._lock:
            if relocation:
                self.total_relocation_failed += 1
            else:
                self.total_failed += 1


class _StabilityTracker:
    """Tracks files until their size and mtime have been unchanged for a given duration."""

    def __init__(
        self,
        stable_seconds: float,
        poll_interval: float,
        on_stable: Callable[[Path], None],
    ):
        self._stable_seconds = stable_seconds
        self._poll_interval = poll_interval
        self._on_stable = on_stable
        # file_path -> (last_change_time, last_size, last_mtime_ns)
        self._pending = {}
        self._dispatching = 0
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def stable_seconds(self) -> float:
        return self._stable_seconds

    def start(self) -> None:
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._poll, daemon=True, name="StabilityTracker"
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None

    def track(self, path: Path) -> None:
        """Register or update a file for stability tracking."""
        if not path.is_file():
            return
        try:
            stat = path.stat()
        except OSError:
            return
        with self._lock:
            self._pending[path] = (time.monotonic(), stat.st_size, stat.st_mtime_ns)
        logger.debug("Debouncing %s (size=%d)", path, stat.st_size)

    @property
    def pending_count(self) -> int:
        """Files still debouncing or being handed to the callback."""
        with self._lock:
            return len(self._pending) + self._dispatching

    def _collect_stable(self) -> list[Path]:
        """Run one stability pass and return the paths that settled."""
        stable = []  # type: list[Path]
        now = time.monotonic()
        with self._lock:
            for path, (last_change, last_size, last_mtime) in list(self._pending.items()):
                try:
                    stat = path.stat()
                except OSError:
                    # File vanished
                    del self._pending[path]
                    continue
                if (stat.st_size, stat.st_mtime_ns) != (last_size, last_mtime):
                    self._pending[path] = (now, stat.st_size, stat.st_mtime_ns)
                elif now - last_change >= self._stable_seconds:
                    stable.append(path)
            for p in stable:
                del self._pending[p]
            self._dispatching += len(stable)
        return stable

    def check(self) -> None:
        """Hand every file that has settled to the callback."""
        for p in self._collect_stable():
            logger.info("File stable: %s", p)
            try:
                self._on_stable(p)
            except Exception:
                logger.exception("Error in on_stable callback for %s", p)
            finally:
                with self._lock:
                    self._dispatching -= 1

    def _poll(self) -> None:
        """Periodically check if tracked files have stabilised."""
        while not self._stop.is_set():
            self.check()
            self._stop.wait(timeout=self._poll_interval)


class NewFileHandler(FileSystemEventHandler):
    """Watchdog handler that feeds new root-level video files into the stability tracker."""

    def __init__(
        self,
        root: Path,
        tracker: _StabilityTracker,
        extensions: list[str] | None = None,
        exclude_patterns: list[str] | None = None,
    ):
        """Initialise the handler with extension and exclude filters."""
        super().__init__()
        self._root = root
        self._tracker = tracker
        self._extensions = [
            e.lower().lstrip(".") for e in (extensions or DEFAULT_EXTENSIONS)
        ]
        self._exclude_patterns = exclude_patterns or []

    def should_track(self, path: str) -> bool:
        name = os.path.basename(path)
        if Path(path).parent != self._root:
            return False
        for pattern in self._exclude_patterns:
            if fnmatch.fnmatch(name.lower(), pattern.lower()):
                logger.debug("Excluding %s (matches %s)", name, pattern)
                return False
        ext = os.path.splitext(name)[1].lower().lstrip(".")
        if ext not in self._extensions:
            logger.debug("Ignoring %s (extension not in %s)", name, self._extensions)
            return False
        return True

    def offer(self, path: str) -> None:
        if self.should_track(path):
            self._tracker.track(Path(path))

    def on_created(self, event: FileCreatedEvent) -> None:  # type: ignore[override]
        """Handle a new file creation event."""
        if event.is_directory:
            return
        logger.debug("New file detected: %s", event.src_path)
        self.offer(os.fsdecode(event.src_path))

    def on_modified(self, event: FileModifiedEvent) -> None:  # type: ignore[override]
        """Handle a file modification event (restarts the quiet period)."""
        if event.is_directory:
            return
        self.offer(os.fsdecode(event.src_path))

    def on_moved(self, event: FileMovedEvent) -> None:  # type: ignore[override]
        """Handle a file renamed into the watched folder."""
        if event.is_directory:
            return
        self.offer(os.fsdecode(event.dest_path))


class FolderWatcher:
    """High-level watcher that combines watchdog, stability tracking and processing.

    Usage:
        watcher = FolderWatcher(folder, options, stable_seconds=2.0)
        watcher.start()
        watcher.run_forever(stop_event)
    """

    def __init__(
        self,
        folder: str | Path,
        options: ProcessingOptions,
        pipeline: ProcessingPipeline | None = None,
        stable_seconds: float = 2.0,
        poll_interval: float = 0.1,
        extensions: list[str] | None = None,
        exclude_patterns: list[str] | None = None,
        original_folder: str = "original",
        tc_folder: str = "tc",
        collision_mode: str = COLLISION_RENAME,
        rename_pattern: str = DEFAULT_RENAME_PATTERN,
        max_workers: int = 4,
        restart_attempts: int = 3,
    ):
        """Create a new folder watcher."""
        self.folder = Path(folder).resolve()
        self.options = options
        self.pipeline = pipeline or ProcessingPipeline()
        self.stats = WatchStats()
        self.phase = WatchPhase.IDLE
        self._original_folder = original_folder
        self._tc_folder = tc_folder
        self._mover = FileMover(self.folder, collision_mode, rename_pattern)
        self._tracker = _StabilityTracker(
            stable_seconds, poll_interval, self._on_file_stable
        )
        self._handler = NewFileHandler(
            self.folder,
            self._tracker,
            extensions or None,
            exclude_patterns,
        )
        self._max_workers = max(1, max_workers)
        self._restart_attempts = max(0, restart_attempts)
        self._executor: ThreadPoolExecutor | None = None
        self._observer: Any | None = None
        # in-flight input paths -> phase; outputs that must not be picked up as input
        self._in_flight: dict[Path, FilePhase] = {}
        self._claimed: set[Path] = set()
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)

    # ---- lifecycle ----

    def start(self) -> None:
        """Scan existing files and start watching the folder."""
        if not self.folder.is_dir():
            logger.error("Watch folder does not exist: %s", self.folder)
            raise FileNotFoundError(f"Watch folder does not exist: {self.folder}")

        logger.info("Watching folder: %s for new files...", self.folder)
        self._executor = ThreadPoolExecutor(
            max_workers=self._max_workers, thread_name_prefix="Timecode"
        )
        self._start_observer()
        self.phase = WatchPhase.SCANNING_INITIAL
        count = self.scan_existing()
        logger.info("Initial scan queued %d existing file(s)", count)
        self._tracker.start()
        self.phase = WatchPhase.WATCHING
        logger.info(
            "Watching '%s' (stable=%.1fs)",
            self.folder,
            self._tracker.stable_seconds,
        )

    def _start_observer(self) -> None:
        observer = Observer()
        observer.schedule(self._handler, str(self.folder), recursive=False)
        observer.start()
        self._observer = observer

    def _stop_observer(self) -> None:
        if self._observer:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    def stop(self, wait: bool = True) -> None:
        """Stop watching; with *wait*, let in-flight files finish first."""
        self._stop_observer()
        self._tracker.stop()
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None
        self.phase = WatchPhase.STOPPED
        logger.info(
            "Watcher stopped: %d processed, %d failed, %d not relocated.",
            self.stats.total_processed,
            self.stats.total_failed,
            self.stats.total_relocation_failed,
        )

    @property
    def is_running(self) -> bool:
        """Return whether the observer thread is alive."""
        return self._observer is not None and self._observer.is_alive()

    def health_problem(self) -> str | None:
        """Return why the watch is broken, or None while it is healthy."""
        if not self.is_running:
            return "observer stopped"
        if not self.folder.is_dir():
            return "watched folder is missing"
        if not all(emitter.is_alive() for emitter in self._observer.emitters):
            return "event emitter stopped"
        return None

    def run_forever(self, stop_event: threading.Event, check_interval: float = 1.0) -> bool:
        """
        Block until *stop_event* is set, restarting a dead observer.

        A dead observer, a dead emitter or a missing watched folder counts
        as a failure. Failures are restarted with exponential backoff up to
        the configured number of attempts. Returns False when the watcher
        gave up, True on a requested stop.
        """
        failures = 0
        while not stop_event.wait(timeout=check_interval):
            problem = self.health_problem()
            if problem is None:
                continue
            failures += 1
            if failures > self._restart_attempts:
                logger.error(
                    "Watcher error: %s for %s after %d failure(s); giving up.",
                    problem,
                    self.folder,
                    failures,
                )
                self.stop(wait=False)
                return False
            delay = min(2 ** (failures - 1), 30)
            logger.error(
                "Watcher error: %s for %s; restarting in %ds (attempt %d/%d).",
                problem,
                self.folder,
                delay,
                failures,
                self._restart_attempts,
            )
            if stop_event.wait(timeout=delay):
                break
            try:
                self._stop_observer()
                self._start_observer()
                self.scan_existing()
            except OSError:
                logger.exception("Could not restart observer for %s", self.folder)
        self.stop()
        return True

    # ---- discovery ----

    def scan_existing(self) -> int:
        """Queue every root-level file already in the folder; return how many passed the filter."""
        count = 0
        for item in sorted(self.folder.iterdir()):
            if item.is_file() and self._handler.should_track(str(item)):
                self._tracker.track(item)
                count += 1
        return count

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Wait until no file is debouncing or in flight. Returns False on timeout."""
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            with self._idle:
                busy = bool(self._in_flight) or self._tracker.pending_count > 0
                if not busy:
                    return True
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    return False
                self._idle.wait(timeout=0.05 if remaining is None else min(remaining, 0.05))

    @property
    def in_flight(self) -> list[str]:
        """Return paths of files currently being processed or relocated."""
        with self._lock:
            return [str(p) for p in self._in_flight]

    # ---- per-file processing ----

    def _on_file_stable(self, path: Path) -> Future | None:
        with self._lock:
            if path in self._in_flight or path in self._claimed:
                logger.debug("Ignoring %s (already being handled)", path)
                return None
            if self._executor is None:
                return None
            self._in_flight[path] = FilePhase.PROCESSING
        future = self._executor.submit(self._handle_file, path)
        future.add_done_callback(partial(self._on_file_done, path))
        return future

    def _set_phase(self, path: Path, phase: FilePhase) -> None:
        with self._lock:
            self._in_flight[path] = phase
        logger.debug("%s: %s", path.name, phase.value)

    def _handle_file(self, path: Path) -> ProcessingResult:
        logger.info("Processing %s", path)
        planned = self.pipeline.prepare(path, self.options)
        output = planned.output_path
        with self._lock:
            self._claimed.add(output)
        try:
            result = self.pipeline.execute(planned, self.options)
            self._set_phase(path, FilePhase.RELOCATING)
            self._relocate(result)
        finally:
            with self._lock:
                # A failed run can leave output behind at the root; keep it claimed
                if output == path or not output.exists():
                    self._claimed.discard(output)
        return result

    def _relocate(self, result: ProcessingResult) -> None:
        """File the original into ``original/`` and the output into ``tc/``."""
        if result.output_path != result.input_path:
            self._mover.move_into(result.input_path, self._original_folder)
        self._mover.move_into(result.output_path, self._tc_folder)

    def _on_file_done(self, path: Path, future: Future) -> None:
        try:
            if future.cancelled():
                logger.warning("Processing of %s was cancelled", path)
                return
            exc = future.exception()
            if exc is None:
                result = future.result()
                self.stats.record_success(result)
                logger.info(
                    "Processed %s: creation time %s and added timecode %s",
                    path.name,
                    result.created_time_formatted,
                    result.timecode,
                )
            elif isinstance(exc, RelocationError):
                self.stats.record_failure(relocation=True)
                logger.error("Error relocating %s: %s", path, exc)
            elif isinstance(exc, TimecodeToolError):
                self.stats.record_failure()
                logger.error("Error processing %s: %s", path, exc)
            else:
                self.stats.record_failure()
                logger.error(
                    "Unexpected error processing %s", path, exc_info=exc
                )
        finally:
            with self._idle:
                self._in_flight.pop(path, None)
                self._idle.notify_all()
