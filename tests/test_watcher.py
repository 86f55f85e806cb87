import shutil
import tempfile
import threading
import time
import unittest
from pathlib import Path
from unittest import mock

from add_timecode.config import ProcessingOptions
from add_timecode.errors import StatError
from add_timecode.pipeline import ProcessingPipeline
from add_timecode.remux import Remuxer
from add_timecode.watcher import FolderWatcher, NewFileHandler, WatchPhase, _StabilityTracker

from tests.helpers import REMUX_MARKER, failing_ffmpeg, fake_ffmpeg


def _wait_for(predicate, timeout=10.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


class WatcherTestCase(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name).resolve()
        patcher = mock.patch("add_timecode.remux.run_subprocess", side_effect=fake_ffmpeg)
        self.run_mock = patcher.start()
        self.addCleanup(patcher.stop)

    def tearDown(self):
        self._tmp.cleanup()

    def make_watcher(self, options=None, pipeline=None, **kwargs):
        watcher = FolderWatcher(
            kwargs.pop("folder", self.root),
            options or ProcessingOptions(),
            pipeline=pipeline or ProcessingPipeline(Remuxer(ffmpeg_path="ffmpeg")),
            stable_seconds=kwargs.pop("stable_seconds", 0.05),
            poll_interval=kwargs.pop("poll_interval", 0.01),
            **kwargs,
        )
        self.addCleanup(watcher.stop)
        return watcher

    def root_files(self):
        return sorted(p.name for p in self.root.iterdir() if p.is_file())

    def folder_files(self, name):
        folder = self.root / name
        if not folder.is_dir():
            return []
        return sorted(p.name for p in folder.iterdir())


class TestFolderWatcher(WatcherTestCase):
    def test_existing_video_processed_once_and_relocated(self):
        (self.root / "video.mp4").write_bytes(b"frames")
        watcher = self.make_watcher()
        watcher.start()
        self.assertEqual(watcher.phase, WatchPhase.WATCHING)
        self.assertTrue(watcher.wait_idle(timeout=10))

        self.assertEqual(self.run_mock.call_count, 1)
        self.assertEqual(self.folder_files("original"), ["video.mp4"])
        self.assertEqual(self.folder_files("tc"), ["video_tc.mp4"])
        self.assertEqual(self.root_files(), [])
        self.assertTrue(
            (self.root / "tc" / "video_tc.mp4").read_bytes().endswith(REMUX_MARKER)
        )
        self.assertEqual(watcher.stats.total_processed, 1)

    def test_non_video_is_ignored(self):
        (self.root / "notes.txt").write_text("hello")
        watcher = self.make_watcher()
        watcher.start()
        self.assertTrue(watcher.wait_idle(timeout=5))

        self.run_mock.assert_not_called()
        self.assertEqual(self.root_files(), ["notes.txt"])
        self.assertFalse((self.root / "original").exists())
        self.assertFalse((self.root / "tc").exists())

    def test_extension_match_is_case_insensitive(self):
        (self.root / "CLIP.MOV").write_bytes(b"frames")
        watcher = self.make_watcher()
        watcher.start()
        self.assertTrue(watcher.wait_idle(timeout=10))
        self.assertEqual(self.folder_files("original"), ["CLIP.MOV"])
        self.assertEqual(self.folder_files("tc"), ["CLIP_tc.MOV"])

    def test_new_file_after_start_is_processed(self):
        watcher = self.make_watcher()
        watcher.start()
        (self.root / "late.mov").write_bytes(b"frames")

        self.assertTrue(_wait_for(lambda: self.folder_files("tc") == ["late_tc.mov"]))
        self.assertTrue(watcher.wait_idle(timeout=10))
        self.assertEqual(self.folder_files("original"), ["late.mov"])
        self.assertEqual(self.root_files(), [])
        self.assertEqual(self.run_mock.call_count, 1)

    def test_destructive_mode_files_result_into_tc_only(self):
        (self.root / "video.mp4").write_bytes(b"frames")
        watcher = self.make_watcher(options=ProcessingOptions(destructive=True))
        watcher.start()
        self.assertTrue(watcher.wait_idle(timeout=10))

        self.assertEqual(self.folder_files("tc"), ["video.mp4"])
        self.assertEqual(self.folder_files("original"), [])
        self.assertTrue(
            (self.root / "tc" / "video.mp4").read_bytes().endswith(REMUX_MARKER)
        )

    def test_pipeline_failure_is_logged_and_watcher_continues(self):
        self.run_mock.side_effect = failing_ffmpeg
        (self.root / "bad.mp4").write_bytes(b"frames")
        watcher = self.make_watcher()
        with self.assertLogs("add_timecode.watcher", level="ERROR") as logs:
            watcher.start()
            self.assertTrue(watcher.wait_idle(timeout=10))

        self.assertTrue(any("Error processing" in line for line in logs.output))
        self.assertEqual(watcher.stats.total_failed, 1)
        self.assertTrue(watcher.is_running)
        self.assertIn("bad.mp4", self.root_files())
        self.assertFalse((self.root / "tc").exists())

        # The partial output left at the root is never taken as a new input
        self.run_mock.side_effect = fake_ffmpeg
        (self.root / "good.mp4").write_bytes(b"frames")
        self.assertTrue(_wait_for(lambda: self.folder_files("tc") == ["good_tc.mp4"]))
        self.assertTrue(watcher.wait_idle(timeout=10))
        inputs = [call.args[0][3] for call in self.run_mock.call_args_list]
        self.assertNotIn(str(self.root / "bad_tc.mp4"), inputs)

    def test_same_path_is_not_processed_twice_concurrently(self):
        release = threading.Event()

        def blocked_prepare(path, options):
            release.wait(5)
            raise StatError(str(path), "gone")

        pipeline = mock.Mock()
        pipeline.prepare.side_effect = blocked_prepare
        watcher = self.make_watcher(pipeline=pipeline)
        watcher.start()
        path = self.root / "dup.mp4"

        first = watcher._on_file_stable(path)
        second = watcher._on_file_stable(path)
        self.assertIsNotNone(first)
        self.assertIsNone(second)
        self.assertEqual(watcher.in_flight, [str(path)])

        release.set()
        first.exception(timeout=5)
        self.assertTrue(watcher.wait_idle(timeout=5))
        self.assertEqual(pipeline.prepare.call_count, 1)
        self.assertEqual(watcher.in_flight, [])

    def test_concurrent_files_share_subfolders(self):
        for idx in range(5):
            (self.root / f"clip{idx}.mov").write_bytes(b"frames")
        watcher = self.make_watcher(max_workers=5)
        watcher.start()
        self.assertTrue(watcher.wait_idle(timeout=15))

        self.assertEqual(len(self.folder_files("original")), 5)
        self.assertEqual(len(self.folder_files("tc")), 5)
        self.assertEqual(self.root_files(), [])

    def test_missing_folder_raises(self):
        watcher = FolderWatcher(self.root / "nope", ProcessingOptions())
        with self.assertRaises(FileNotFoundError):
            watcher.start()

    def test_run_forever_returns_on_stop(self):
        watcher = self.make_watcher()
        watcher.start()
        stop = threading.Event()
        stop.set()
        self.assertTrue(watcher.run_forever(stop, check_interval=0.01))
        self.assertEqual(watcher.phase, WatchPhase.STOPPED)

    def test_run_forever_gives_up_after_restart_attempts(self):
        watcher = self.make_watcher(restart_attempts=0)
        watcher.start()
        watcher._observer.stop()
        watcher._observer.join(timeout=5)
        with self.assertLogs("add_timecode.watcher", level="ERROR"):
            ok = watcher.run_forever(threading.Event(), check_interval=0.01)
        self.assertFalse(ok)
        self.assertEqual(watcher.phase, WatchPhase.STOPPED)

    def test_deleted_folder_is_reported_and_watcher_gives_up(self):
        folder = self.root / "ingest"
        folder.mkdir()
        watcher = self.make_watcher(folder=folder, restart_attempts=0)
        watcher.start()
        shutil.rmtree(folder)
        with self.assertLogs("add_timecode.watcher", level="ERROR") as logs:
            ok = watcher.run_forever(threading.Event(), check_interval=0.01)
        self.assertFalse(ok)
        self.assertIn("watched folder is missing", "\n".join(logs.output))
        self.assertEqual(watcher.phase, WatchPhase.STOPPED)

    def test_recreated_folder_is_watched_again(self):
        folder = self.root / "ingest"
        folder.mkdir()
        watcher = self.make_watcher(folder=folder, restart_attempts=3)
        watcher.start()
        shutil.rmtree(folder)
        stop = threading.Event()
        outcome = []
        runner = threading.Thread(
            target=lambda: outcome.append(watcher.run_forever(stop, check_interval=0.01))
        )
        with self.assertLogs("add_timecode.watcher", level="ERROR") as logs:
            runner.start()
            self.assertTrue(
                _wait_for(lambda: any("restarting" in line for line in logs.output))
            )
            folder.mkdir()
            (folder / "late.mp4").write_bytes(b"frames")
            self.assertTrue(
                _wait_for(lambda: (folder / "tc" / "late_tc.mp4").exists())
            )
            stop.set()
            runner.join(timeout=10)
        self.assertEqual(outcome, [True])
        self.assertIn("watched folder is missing", "\n".join(logs.output))

    def test_dead_emitter_counts_as_failure(self):
        watcher = self.make_watcher()
        watcher.start()
        self.assertIsNone(watcher.health_problem())
        for emitter in list(watcher._observer.emitters):
            emitter.stop()
            emitter.join(timeout=5)
        self.assertEqual(watcher.health_problem(), "event emitter stopped")


class TestStabilityTracker(unittest.TestCase):
    def test_growing_file_is_not_stable(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "growing.mp4"
            path.write_bytes(b"a")
            seen = []
            tracker = _StabilityTracker(0.2, 0.01, seen.append)
            tracker.track(path)

            tracker.check()
            with open(path, "ab") as fh:
                fh.write(b"more")
            tracker.check()
            self.assertEqual(seen, [])
            self.assertEqual(tracker.pending_count, 1)

            time.sleep(0.25)
            tracker.check()
            self.assertEqual(seen, [path])
            self.assertEqual(tracker.pending_count, 0)

    def test_vanished_file_is_dropped(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "gone.mp4"
            path.write_bytes(b"a")
            seen = []
            tracker = _StabilityTracker(0.0, 0.01, seen.append)
            tracker.track(path)
            path.unlink()
            tracker.check()
            self.assertEqual(seen, [])
            self.assertEqual(tracker.pending_count, 0)


class TestNewFileHandler(unittest.TestCase):
    def setUp(self):
        self.root = Path("/watched")
        self.handler = NewFileHandler(
            self.root, mock.Mock(), ["mov", "mp4"], [".*"]
        )

    def test_filters(self):
        self.assertTrue(self.handler.should_track("/watched/a.mp4"))
        self.assertTrue(self.handler.should_track("/watched/a.MOV"))
        self.assertFalse(self.handler.should_track("/watched/a.txt"))
        self.assertFalse(self.handler.should_track("/watched/.hidden.mp4"))
        self.assertFalse(self.handler.should_track("/watched/tc/a_tc.mp4"))
