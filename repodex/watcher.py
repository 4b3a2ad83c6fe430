"""
File system watching for repodex.

A Watcher turns filesystem notifications into FileEvents and hands them to
a sink without blocking. The IncrementalUpdater is the single task that
drains those events, coalesces bursts per path and applies them to the
index one at a time.
"""

import logging
import os
import queue
import threading
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Optional
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .exceptions import WatcherError
from .models import FileEvent, FileEventType
from .scanner import DirectoryScanner

logger = logging.getLogger(__name__)

EventSink = Callable[[FileEvent], None]


class Watcher(ABC):
    """Source of FileEvents for a directory tree."""

    @abstractmethod
    def start(self, root: Path, sink: EventSink) -> None:
        """
        Start delivering events for root to sink.

        Raises:
            WatcherError: If the subscription cannot be established
        """

    @abstractmethod
    def stop(self) -> None:
        """Stop delivering events. Safe to call when not running."""

    @property
    @abstractmethod
    def is_running(self) -> bool:
        pass


class FileEventHandler(FileSystemEventHandler):
    """
    Maps watchdog callbacks to FileEvents.

    Files are filtered through the scanner's extension and ignore rules;
    directories only through its ignore rules. A move is reported as a
    removal of the source followed by an addition of the destination.
    """

    def __init__(self, root: Path, scanner: DirectoryScanner, sink: EventSink):
        super().__init__()
        self.root = Path(root).resolve()
        self.scanner = scanner
        self.sink = sink

    def on_created(self, event: FileSystemEvent) -> None:
        self._emit(FileEventType.ADDED, event.src_path, event.is_directory)

    def on_modified(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self._emit(FileEventType.CHANGED, event.src_path, False)

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._emit(FileEventType.REMOVED, event.src_path, event.is_directory)

    def on_moved(self, event: FileSystemEvent) -> None:
        self._emit(FileEventType.REMOVED, event.src_path, event.is_directory)
        dest = getattr(event, "dest_path", None)
        if dest:
            self._emit(FileEventType.ADDED, dest, event.is_directory)

    def _emit(self, kind: FileEventType, raw_path, is_directory: bool) -> None:
        path = Path(os.fsdecode(raw_path)).resolve()

        if is_directory:
            if self.scanner.is_ignored_directory(path, self.root):
                return
        elif not self.scanner.is_candidate(path, self.root):
            return

        logger.debug(f"Queued {kind.value} event for {path}")
        self.sink(FileEvent(kind=kind, path=str(path), is_directory=is_directory))


class WatchdogWatcher(Watcher):
    """Watcher backed by a watchdog Observer thread."""

    def __init__(self, scanner: DirectoryScanner):
        self.scanner = scanner
        self.observer: Optional[Observer] = None
        self.handler: Optional[FileEventHandler] = None

    def start(self, root: Path, sink: EventSink) -> None:
        if self.observer is not None:
            logger.warning("Watcher is already running")
            return

        root = Path(root).resolve()
        if not root.is_dir():
            raise WatcherError(f"Path is not a directory: {root}")

        self.handler = FileEventHandler(root, self.scanner, sink)
        observer = Observer()
        try:
            observer.schedule(self.handler, str(root), recursive=True)
            observer.start()
        except OSError as e:
            self.handler = None
            raise WatcherError(f"Failed to watch {root}: {e}") from e

        self.observer = observer
        logger.info(f"Watching {root} for changes")

    def stop(self) -> None:
        if self.observer is None:
            return
        self.observer.stop()
        self.observer.join(timeout=5)
        self.observer = None
        self.handler = None
        logger.info("File watcher stopped")

    @property
    def is_running(self) -> bool:
        return self.observer is not None

    def __repr__(self) -> str:
        status = "running" if self.is_running else "stopped"
        return f"WatchdogWatcher({status})"


_STOP = object()


class IncrementalUpdater:
    """
    Single consumer of the watcher's event queue.

    Events arriving for the same path within debounce_seconds of the first
    one are coalesced and only the latest kind is applied. A failure while
    applying one event is logged and does not stop the updater.
    """

    def __init__(
        self,
        apply: Callable[[FileEvent], None],
        debounce_seconds: float = 0.5,
        on_change: Optional[Callable[[FileEvent], None]] = None,
    ):
        """
        Args:
            apply: Applies one event to the index
            debounce_seconds: Coalescing window
            on_change: Optional callback invoked after each applied event
        """
        self.apply = apply
        self.debounce_seconds = debounce_seconds
        self.on_change = on_change
        self.events: queue.Queue = queue.Queue()
        self._thread: Optional[threading.Thread] = None

    def submit(self, event: FileEvent) -> None:
        """Enqueue an event. Never blocks."""
        self.events.put_nowait(event)

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name="repodex-updater", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = 10.0) -> None:
        """Apply the events already queued, then stop the worker thread."""
        if self._thread is None:
            return
        self.events.put(_STOP)
        self._thread.join(timeout=timeout)
        self._thread = None

    def wait_idle(self) -> None:
        """Block until every submitted event has been applied."""
        self.events.join()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self) -> None:
        stopping = False
        while not stopping:
            first = self.events.get()
            taken = 1
            if first is _STOP:
                self.events.task_done()
                break

            pending: dict[str, FileEvent] = {first.path: first}
            deadline = time.monotonic() + self.debounce_seconds
            while True:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                try:
                    event = self.events.get(timeout=remaining)
                except queue.Empty:
                    break
                taken += 1
                if event is _STOP:
                    stopping = True
                    break
                pending[event.path] = event

            if len(pending) > 1:
                logger.info(f"Processing {len(pending)} pending changes")
            for event in pending.values():
                self._process(event)

            for _ in range(taken):
                self.events.task_done()

    def _process(self, event: FileEvent) -> None:
        try:
            self.apply(event)
        except Exception as e:
            logger.error(f"Failed to process {event.kind.value} event for {event.path}: {e}")
            return

        if self.on_change:
            try:
                self.on_change(event)
            except Exception as e:
                logger.error(f"on_change callback failed for {event.path}: {e}")
