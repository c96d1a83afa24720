"""Debounced aggregation of file-system changes into batches."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import AsyncIterator, Callable

from ..suites.models import ChangeKind, ChangeRecord
from ..suites.patterns import normalize_path

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChangeAggregator:
    """Collects change records and releases them after a quiet period.

    ``observe`` and ``report_error`` are safe to call from any thread. Everything
    else runs on the event loop the aggregator is attached to. Batches are pulled
    by a single consumer with :meth:`next_batch` or :meth:`batches`.
    """

    def __init__(
        self,
        debounce_ms: int = 1000,
        *,
        clock: Clock | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        if debounce_ms < 0:
            raise ValueError("debounce_ms must be >= 0")
        self._delay = debounce_ms / 1000
        self._clock = clock or _utcnow
        self._loop = loop
        self._pending: list[ChangeRecord] = []
        self._timer: asyncio.TimerHandle | None = None
        self._batches: asyncio.Queue[list[ChangeRecord]] = asyncio.Queue()
        self._errors: asyncio.Queue[BaseException] = asyncio.Queue()
        self._delivered = 0

    @property
    def debounce_ms(self) -> int:
        return round(self._delay * 1000)

    @property
    def pending(self) -> int:
        return len(self._pending)

    @property
    def delivered(self) -> int:
        """Number of batches delivered since creation."""

        return self._delivered

    def attach(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Bind to ``loop`` (default: the running loop) for cross-thread calls."""

        self._loop = loop or asyncio.get_running_loop()

    def _require_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            try:
                self._loop = asyncio.get_running_loop()
            except RuntimeError as exc:
                raise RuntimeError("ChangeAggregator is not attached to an event loop") from exc
        return self._loop

    def observe(self, path: str, kind: ChangeKind | str) -> ChangeRecord:
        """Record a change; the debounce timer is re-armed on the loop thread."""

        record = ChangeRecord(path=normalize_path(path), kind=ChangeKind(kind), observed_at=self._clock())
        self._require_loop().call_soon_threadsafe(self._enqueue, record)
        return record

    def report_error(self, exc: BaseException) -> None:
        self._require_loop().call_soon_threadsafe(self._errors.put_nowait, exc)

    def _enqueue(self, record: ChangeRecord) -> None:
        self._pending.append(record)
        if self._timer is not None:
            self._timer.cancel()
        self._timer = self._require_loop().call_later(self._delay, self._flush)

    def _flush(self) -> None:
        self._timer = None
        if not self._pending:
            return
        batch, self._pending = self._pending, []
        self._delivered += 1
        logger.debug("Releasing change batch", extra={"size": len(batch)})
        self._batches.put_nowait(batch)

    def flush_now(self) -> None:
        """Release queued records immediately."""

        if self._timer is not None:
            self._timer.cancel()
        self._flush()

    async def next_batch(self) -> list[ChangeRecord]:
        return await self._batches.get()

    async def batches(self) -> AsyncIterator[list[ChangeRecord]]:
        while True:
            yield await self._batches.get()

    async def next_error(self) -> BaseException:
        return await self._errors.get()

    def close(self) -> None:
        """Cancel the debounce timer and drop unreleased records."""

        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._pending.clear()


__all__ = ["ChangeAggregator", "Clock"]
