from __future__ import annotations

import asyncio
from pathlib import Path

import pytest
from watchdog.events import FileCreatedEvent, FileModifiedEvent, FileMovedEvent

from testwatch_mcp.suites import ChangeKind
from testwatch_mcp.watch import ChangeAggregator, FileWatcher, WatcherError, WatcherState


class StubObserver:
    def __init__(self) -> None:
        self.scheduled: list[tuple[object, str, bool]] = []
        self.started = False
        self.stopped = False

    def schedule(self, handler, path, recursive=False):
        self.scheduled.append((handler, path, recursive))

    def start(self) -> None:
        self.started = True

    def stop(self) -> None:
        self.stopped = True

    def join(self, timeout=None) -> None:
        return None


def test_changes_close_together_form_one_batch() -> None:
    async def scenario() -> tuple[list, int]:
        aggregator = ChangeAggregator(debounce_ms=50)
        aggregator.attach()
        aggregator.observe("src/a.ts", "modified")
        await asyncio.sleep(0.01)
        aggregator.observe("./src/b.ts", ChangeKind.ADDED)
        batch = await asyncio.wait_for(aggregator.next_batch(), timeout=2)
        return batch, aggregator.delivered

    batch, delivered = asyncio.run(scenario())

    assert [(record.path, record.kind) for record in batch] == [
        ("src/a.ts", ChangeKind.MODIFIED),
        ("src/b.ts", ChangeKind.ADDED),
    ]
    assert delivered == 1


def test_changes_spaced_apart_form_separate_batches() -> None:
    async def scenario() -> list[list]:
        aggregator = ChangeAggregator(debounce_ms=20)
        aggregator.attach()
        aggregator.observe("a.py", "modified")
        first = await asyncio.wait_for(aggregator.next_batch(), timeout=2)
        aggregator.observe("b.py", "removed")
        second = await asyncio.wait_for(aggregator.next_batch(), timeout=2)
        return [first, second]

    first, second = asyncio.run(scenario())

    assert [record.path for record in first] == ["a.py"]
    assert [(record.path, record.kind) for record in second] == [("b.py", ChangeKind.REMOVED)]


def test_flush_now_and_close() -> None:
    async def scenario() -> tuple[list, int]:
        aggregator = ChangeAggregator(debounce_ms=10_000)
        aggregator.attach()
        aggregator.observe("a.py", "added")
        await asyncio.sleep(0)
        aggregator.flush_now()
        batch = await asyncio.wait_for(aggregator.next_batch(), timeout=1)

        aggregator.observe("b.py", "added")
        await asyncio.sleep(0)
        aggregator.close()
        return batch, aggregator.pending

    batch, pending = asyncio.run(scenario())

    assert [record.path for record in batch] == ["a.py"]
    assert pending == 0


def test_negative_debounce_is_rejected() -> None:
    with pytest.raises(ValueError):
        ChangeAggregator(debounce_ms=-1)


def test_watcher_translates_events_and_skips_excludes(tmp_path: Path) -> None:
    root = tmp_path.resolve()
    (root / "src").mkdir()
    observer = StubObserver()

    async def scenario() -> tuple[list, FileWatcher]:
        aggregator = ChangeAggregator(debounce_ms=10)
        watcher = FileWatcher(
            root,
            aggregator,
            exclude_patterns=["**/node_modules/**"],
            observer_factory=lambda: observer,
        )
        watcher.start()
        handler = watcher.handler
        handler.on_modified(FileModifiedEvent(str(root / "src" / "a.ts")))
        handler.on_created(FileCreatedEvent(str(root / "node_modules" / "x" / "index.js")))
        handler.on_moved(FileMovedEvent(str(root / "src" / "old.ts"), str(root / "src" / "new.ts")))
        batch = await asyncio.wait_for(aggregator.next_batch(), timeout=2)
        assert watcher.state == WatcherState.RUNNING
        with pytest.raises(WatcherError):
            watcher.start()
        watcher.stop()
        return batch, watcher

    batch, watcher = asyncio.run(scenario())

    assert observer.scheduled[0][1:] == (str(root), True)
    assert observer.started and observer.stopped
    assert watcher.state == WatcherState.STOPPED
    assert [(record.path, record.kind) for record in batch] == [
        ("src/a.ts", ChangeKind.MODIFIED),
        ("src/old.ts", ChangeKind.REMOVED),
        ("src/new.ts", ChangeKind.ADDED),
    ]


def test_watcher_rejects_missing_root(tmp_path: Path) -> None:
    async def scenario() -> None:
        watcher = FileWatcher(tmp_path / "missing", ChangeAggregator(), observer_factory=StubObserver)
        watcher.start()

    with pytest.raises(WatcherError):
        asyncio.run(scenario())
