"""
Tests for file watching.

Watchdog events are fed to the handler directly; the updater is driven
through its queue.
"""

import threading
import time
import pytest
from watchdog.events import (
    DirCreatedEvent,
    DirDeletedEvent,
    DirModifiedEvent,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
)
from repodex.exceptions import WatcherError
from repodex.models import FileEvent, FileEventType
from repodex.scanner import DirectoryScanner
from repodex.watcher import FileEventHandler, IncrementalUpdater, WatchdogWatcher


@pytest.fixture
def scanner(config):
    return DirectoryScanner.from_config(config)


@pytest.fixture
def handler(sample_repo, scanner):
    events = []
    handler = FileEventHandler(sample_repo, scanner, events.append)
    handler.events = events
    return handler


class TestFileEventHandler:

    def test_created_file(self, handler, sample_repo):
        path = sample_repo / "src" / "new.ts"
        handler.dispatch(FileCreatedEvent(str(path)))

        assert len(handler.events) == 1
        event = handler.events[0]
        assert event.kind == FileEventType.ADDED
        assert event.path == str(path)
        assert not event.is_directory

    def test_modified_file(self, handler, sample_repo):
        handler.dispatch(FileModifiedEvent(str(sample_repo / "src" / "db.py")))

        assert [e.kind for e in handler.events] == [FileEventType.CHANGED]

    def test_deleted_file(self, handler, sample_repo):
        handler.dispatch(FileDeletedEvent(str(sample_repo / "src" / "db.py")))

        assert [e.kind for e in handler.events] == [FileEventType.REMOVED]

    def test_moved_file_is_remove_then_add(self, handler, sample_repo):
        src = sample_repo / "src" / "db.py"
        dest = sample_repo / "src" / "database.py"
        handler.dispatch(FileMovedEvent(str(src), str(dest)))

        assert [(e.kind, e.path) for e in handler.events] == [
            (FileEventType.REMOVED, str(src)),
            (FileEventType.ADDED, str(dest)),
        ]

    def test_move_to_unsupported_extension_only_removes(self, handler, sample_repo):
        handler.dispatch(FileMovedEvent(str(sample_repo / "src" / "db.py"), str(sample_repo / "src" / "db.bak")))

        assert [e.kind for e in handler.events] == [FileEventType.REMOVED]

    def test_ignored_paths_are_dropped(self, handler, sample_repo):
        handler.dispatch(FileModifiedEvent(str(sample_repo / "node_modules" / "left-pad" / "index.js")))
        handler.dispatch(FileCreatedEvent(str(sample_repo / "logo.png")))
        handler.dispatch(FileCreatedEvent(str(sample_repo / "src" / "bundle.min.js")))

        assert handler.events == []

    def test_directory_events(self, handler, sample_repo):
        handler.dispatch(DirCreatedEvent(str(sample_repo / "lib")))
        handler.dispatch(DirModifiedEvent(str(sample_repo / "lib")))
        handler.dispatch(DirDeletedEvent(str(sample_repo / "docs")))
        handler.dispatch(DirCreatedEvent(str(sample_repo / "node_modules" / "react")))

        assert [(e.kind, e.is_directory) for e in handler.events] == [
            (FileEventType.ADDED, True),
            (FileEventType.REMOVED, True),
        ]


class TestIncrementalUpdater:

    def test_applies_events_in_order(self):
        applied = []
        updater = IncrementalUpdater(applied.append, debounce_seconds=0)
        updater.start()

        first = FileEvent(kind=FileEventType.ADDED, path="/repo/a.py")
        second = FileEvent(kind=FileEventType.CHANGED, path="/repo/b.py")
        updater.submit(first)
        updater.submit(second)
        updater.wait_idle()
        updater.stop()

        assert applied == [first, second]
        assert not updater.is_running

    def test_coalesces_bursts_per_path(self):
        applied = []
        updater = IncrementalUpdater(applied.append, debounce_seconds=0.2)

        # Queue the burst before the worker starts so it lands in one window
        for kind in [FileEventType.ADDED, FileEventType.CHANGED, FileEventType.CHANGED]:
            updater.submit(FileEvent(kind=kind, path="/repo/a.py"))
        updater.submit(FileEvent(kind=FileEventType.REMOVED, path="/repo/b.py"))
        updater.start()
        updater.wait_idle()
        updater.stop()

        assert [(e.path, e.kind) for e in applied] == [
            ("/repo/a.py", FileEventType.CHANGED),
            ("/repo/b.py", FileEventType.REMOVED),
        ]

    def test_failure_does_not_stop_updater(self):
        applied = []

        def apply(event):
            if event.path == "/repo/bad.py":
                raise OSError("permission denied")
            applied.append(event.path)

        updater = IncrementalUpdater(apply, debounce_seconds=0)
        updater.start()
        updater.submit(FileEvent(kind=FileEventType.CHANGED, path="/repo/bad.py"))
        updater.submit(FileEvent(kind=FileEventType.CHANGED, path="/repo/good.py"))
        updater.wait_idle()
        updater.stop()

        assert applied == ["/repo/good.py"]

    def test_on_change_called_after_apply(self):
        seen = []
        updater = IncrementalUpdater(lambda e: None, debounce_seconds=0, on_change=seen.append)
        updater.start()
        event = FileEvent(kind=FileEventType.ADDED, path="/repo/a.py")
        updater.submit(event)
        updater.wait_idle()
        updater.stop()

        assert seen == [event]

    def test_stop_drains_queued_events(self):
        applied = []
        gate = threading.Event()

        def apply(event):
            gate.wait(timeout=5)
            applied.append(event.path)

        updater = IncrementalUpdater(apply, debounce_seconds=0)
        updater.start()
        updater.submit(FileEvent(kind=FileEventType.CHANGED, path="/repo/a.py"))
        updater.submit(FileEvent(kind=FileEventType.CHANGED, path="/repo/b.py"))
        gate.set()
        updater.stop()

        assert applied == ["/repo/a.py", "/repo/b.py"]

    def test_submit_never_blocks(self):
        updater = IncrementalUpdater(lambda e: None)

        start = time.monotonic()
        for i in range(1000):
            updater.submit(FileEvent(kind=FileEventType.CHANGED, path=f"/repo/{i}.py"))

        assert time.monotonic() - start < 1.0
        assert updater.events.qsize() == 1000


class TestWatchdogWatcher:

    def test_rejects_missing_directory(self, scanner, temp_dir):
        watcher = WatchdogWatcher(scanner)

        with pytest.raises(WatcherError):
            watcher.start(temp_dir / "missing", lambda e: None)
        assert not watcher.is_running

    def test_start_and_stop(self, scanner, sample_repo):
        watcher = WatchdogWatcher(scanner)
        watcher.start(sample_repo, lambda e: None)
        try:
            assert watcher.is_running
        finally:
            watcher.stop()

        assert not watcher.is_running
        watcher.stop()

    def test_delivers_real_events(self, scanner, sample_repo):
        received = []
        watcher = WatchdogWatcher(scanner)
        watcher.start(sample_repo, received.append)
        try:
            (sample_repo / "src" / "live.py").write_text("print('live')\n")

            deadline = time.monotonic() + 5
            while time.monotonic() < deadline:
                if any(e.path.endswith("live.py") for e in received):
                    break
                time.sleep(0.05)
        finally:
            watcher.stop()

        assert any(e.path == str(sample_repo / "src" / "live.py") for e in received)
