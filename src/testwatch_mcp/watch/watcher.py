"""watchdog observer feeding project changes into a :class:`ChangeAggregator`."""

from __future__ import annotations

import enum
import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Sequence

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from ..suites.models import ChangeKind
from ..suites.patterns import match_any
from .aggregator import ChangeAggregator

if TYPE_CHECKING:
    from watchdog.observers.api import BaseObserver

logger = logging.getLogger(__name__)


class WatcherError(RuntimeError):
    """Raised when the file watcher cannot start or fails while watching."""


class WatcherState(enum.Enum):
    STOPPED = "stopped"
    RUNNING = "running"


class _ChangeEventHandler(FileSystemEventHandler):
    """Translates watchdog events into aggregator observations."""

    def __init__(self, root: Path, aggregator: ChangeAggregator, exclude_patterns: Sequence[str]) -> None:
        super().__init__()
        self._root = root
        self._aggregator = aggregator
        self._exclude_patterns = tuple(exclude_patterns)

    def relative(self, raw_path: str | bytes) -> str | None:
        if isinstance(raw_path, bytes):
            raw_path = raw_path.decode("utf-8", errors="replace")
        try:
            relative = Path(raw_path).resolve().relative_to(self._root).as_posix()
        except ValueError:
            return None
        if match_any(relative, self._exclude_patterns):
            return None
        return relative

    def _observe(self, raw_path: str | bytes, kind: ChangeKind) -> None:
        try:
            relative = self.relative(raw_path)
            if relative is not None:
                self._aggregator.observe(relative, kind)
        except Exception as exc:  # observer thread must keep running
            self._aggregator.report_error(WatcherError(f"Failed to record change for {raw_path!r}: {exc}"))

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._observe(event.src_path, ChangeKind.ADDED)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._observe(event.src_path, ChangeKind.MODIFIED)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._observe(event.src_path, ChangeKind.REMOVED)

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._observe(event.src_path, ChangeKind.REMOVED)
            self._observe(event.dest_path, ChangeKind.ADDED)


class FileWatcher:
    """Recursive watcher over the project root with exclude patterns."""

    def __init__(
        self,
        root: Path,
        aggregator: ChangeAggregator,
        *,
        exclude_patterns: Sequence[str] = (),
        observer_factory: Callable[[], "BaseObserver"] = Observer,
    ) -> None:
        self._root = Path(root).resolve()
        self._aggregator = aggregator
        self._exclude_patterns = tuple(exclude_patterns)
        self._observer_factory = observer_factory
        self._observer: BaseObserver | None = None
        self._handler = _ChangeEventHandler(self._root, aggregator, self._exclude_patterns)
        self._state = WatcherState.STOPPED
        self._lock = threading.Lock()

    @property
    def root(self) -> Path:
        return self._root

    @property
    def state(self) -> WatcherState:
        with self._lock:
            return self._state

    @property
    def handler(self) -> FileSystemEventHandler:
        return self._handler

    def start(self) -> None:
        """Start the observer thread; call from the event loop thread."""

        with self._lock:
            if self._state == WatcherState.RUNNING:
                raise WatcherError("Watcher is already running")
            if not self._root.is_dir():
                raise WatcherError(f"Watch root does not exist: {self._root}")

            self._aggregator.attach()
            observer = self._observer_factory()
            try:
                observer.schedule(self._handler, str(self._root), recursive=True)
                observer.start()
            except OSError as exc:
                raise WatcherError(f"Failed to start watching {self._root}: {exc}") from exc

            self._observer = observer
            self._state = WatcherState.RUNNING
            logger.info(
                "Watching project",
                extra={"root": str(self._root), "excludes": len(self._exclude_patterns)},
            )

    def stop(self) -> None:
        """Stop the observer; safe to call when not running."""

        with self._lock:
            if self._state == WatcherState.STOPPED:
                return
            if self._observer is not None:
                self._observer.stop()
                self._observer.join(timeout=5.0)
                self._observer = None
            self._state = WatcherState.STOPPED
            logger.info("Stopped watching project", extra={"root": str(self._root)})


__all__ = ["FileWatcher", "WatcherError", "WatcherState"]
