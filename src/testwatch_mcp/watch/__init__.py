"""File watching and change aggregation."""

from .aggregator import ChangeAggregator
from .watcher import FileWatcher, WatcherError, WatcherState

__all__ = ["ChangeAggregator", "FileWatcher", "WatcherError", "WatcherState"]
