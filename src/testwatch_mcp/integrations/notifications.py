"""Notification fan-out to console, Slack and IDE sinks."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol, Sequence

import httpx

from ..project.models import NotificationSettings

if TYPE_CHECKING:
    from .ide import IdeBridge

logger = logging.getLogger(__name__)


class NotificationLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


SLACK_COLORS = {
    NotificationLevel.INFO: "#36a64f",
    NotificationLevel.SUCCESS: "#2eb886",
    NotificationLevel.WARNING: "#ff9800",
    NotificationLevel.ERROR: "#ff5252",
}

_LOG_LEVELS = {
    NotificationLevel.INFO: logging.INFO,
    NotificationLevel.SUCCESS: logging.INFO,
    NotificationLevel.WARNING: logging.WARNING,
    NotificationLevel.ERROR: logging.ERROR,
}


@dataclass(slots=True)
class Notification:
    level: NotificationLevel
    title: str
    body: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    data: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "level": self.level.value,
            "title": self.title,
            "body": self.body,
            "timestamp": self.timestamp.isoformat(),
            "data": self.data,
        }


class NotificationSink(Protocol):
    name: str

    async def send(self, notification: Notification) -> None: ...


class ConsoleSink:
    name = "console"

    def __init__(self, sink_logger: logging.Logger | None = None) -> None:
        self._logger = sink_logger or logging.getLogger("testwatch_mcp.notifications.console")

    async def send(self, notification: Notification) -> None:
        message = f"[{notification.level.value}] {notification.title}"
        if notification.body:
            message = f"{message}: {notification.body}"
        self._logger.log(_LOG_LEVELS[notification.level], message)


class SlackSink:
    name = "slack"

    def __init__(
        self,
        webhook_url: str,
        *,
        channel: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._webhook_url = webhook_url
        self._channel = channel
        self._client = client
        self._timeout = timeout

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    def payload(self, notification: Notification) -> dict[str, Any]:
        return {
            "channel": self._channel,
            "attachments": [
                {
                    "color": SLACK_COLORS[notification.level],
                    "title": notification.title,
                    "text": notification.body,
                    "footer": "testwatch",
                    "ts": int(notification.timestamp.timestamp()),
                }
            ],
        }

    async def send(self, notification: Notification) -> None:
        response = await self.client.post(self._webhook_url, json=self.payload(notification))
        response.raise_for_status()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()


class IdeSink:
    name = "ide"

    def __init__(self, bridge: "IdeBridge") -> None:
        self._bridge = bridge

    async def send(self, notification: Notification) -> None:
        self._bridge.notification(notification.to_dict())


class Notifier:
    """Delivers notifications to every sink; a failing sink never affects the caller."""

    def __init__(self, sinks: Sequence[NotificationSink] = (), *, enabled: bool = True, history: int = 50) -> None:
        self._sinks = list(sinks)
        self._enabled = enabled
        self._history: deque[Notification] = deque(maxlen=history)

    @classmethod
    def from_settings(cls, settings: NotificationSettings, *, ide: "IdeBridge | None" = None) -> "Notifier":
        sinks: list[NotificationSink] = []
        if settings.console_output:
            sinks.append(ConsoleSink())
        if settings.slack is not None and settings.slack.webhook_url:
            sinks.append(SlackSink(settings.slack.webhook_url, channel=settings.slack.channel))
        if settings.ide and ide is not None:
            sinks.append(IdeSink(ide))
        return cls(sinks, enabled=settings.enabled)

    @property
    def sinks(self) -> list[NotificationSink]:
        return list(self._sinks)

    @property
    def history(self) -> list[Notification]:
        return list(self._history)

    def add_sink(self, sink: NotificationSink) -> None:
        self._sinks.append(sink)

    async def notify(self, notification: Notification) -> list[str]:
        """Send to all sinks; returns the names of sinks that failed."""

        if not self._enabled:
            return []
        self._history.append(notification)
        failed: list[str] = []
        for sink in self._sinks:
            try:
                await sink.send(notification)
            except Exception as exc:  # sink boundary
                failed.append(sink.name)
                logger.warning(
                    "Notification sink failed",
                    extra={"sink": sink.name, "title": notification.title, "error": str(exc)},
                )
        return failed

    async def info(self, title: str, body: str = "", data: Any = None) -> list[str]:
        return await self.notify(Notification(NotificationLevel.INFO, title, body, data=data))

    async def success(self, title: str, body: str = "", data: Any = None) -> list[str]:
        return await self.notify(Notification(NotificationLevel.SUCCESS, title, body, data=data))

    async def warning(self, title: str, body: str = "", data: Any = None) -> list[str]:
        return await self.notify(Notification(NotificationLevel.WARNING, title, body, data=data))

    async def error(self, title: str, body: str = "", data: Any = None) -> list[str]:
        return await self.notify(Notification(NotificationLevel.ERROR, title, body, data=data))

    async def test_notifications(self) -> list[Notification]:
        """Send one notification per level."""

        samples = [
            Notification(NotificationLevel.INFO, "Test Info", "This is an info notification"),
            Notification(NotificationLevel.SUCCESS, "Test Success", "This is a success notification"),
            Notification(NotificationLevel.WARNING, "Test Warning", "This is a warning notification"),
            Notification(NotificationLevel.ERROR, "Test Error", "This is an error notification"),
        ]
        for sample in samples:
            await self.notify(sample)
        return samples

    async def aclose(self) -> None:
        for sink in self._sinks:
            closer = getattr(sink, "aclose", None)
            if callable(closer):
                await closer()


__all__ = [
    "ConsoleSink",
    "IdeSink",
    "Notification",
    "NotificationLevel",
    "NotificationSink",
    "Notifier",
    "SlackSink",
]
