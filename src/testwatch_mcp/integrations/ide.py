"""WebSocket bridge to IDE clients."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from websockets.asyncio.server import Server, ServerConnection, broadcast, serve
from websockets.exceptions import ConnectionClosed

logger = logging.getLogger(__name__)

OUTBOUND_TYPES = frozenset({"file-change", "suite-decision", "test-result", "notification", "status"})
COMMAND_TYPES = frozenset({"run-tests", "stop-tests"})

StatusProvider = Callable[[], dict[str, Any]]


@dataclass(slots=True)
class IdeCommand:
    """A command sent by an IDE client, pulled by the pipeline."""

    type: str
    data: Any = None


class IdeBridge:
    """Broadcasts pipeline events and queues inbound IDE commands."""

    def __init__(
        self,
        port: int = 3456,
        *,
        host: str = "127.0.0.1",
        status_provider: StatusProvider | None = None,
    ) -> None:
        self._host = host
        self._port = port
        self._status_provider = status_provider
        self._server: Server | None = None
        self._clients: set[ServerConnection] = set()
        self._commands: asyncio.Queue[IdeCommand] = asyncio.Queue()

    @property
    def port(self) -> int:
        if self._server is not None and self._server.sockets:
            return self._server.sockets[0].getsockname()[1]
        return self._port

    @property
    def running(self) -> bool:
        return self._server is not None

    @property
    def client_count(self) -> int:
        return len(self._clients)

    def set_status_provider(self, provider: StatusProvider) -> None:
        self._status_provider = provider

    async def start(self) -> None:
        if self._server is not None:
            logger.info("IDE bridge already running", extra={"port": self.port})
            return
        self._server = await serve(self._handle, self._host, self._port)
        logger.info("IDE bridge listening", extra={"host": self._host, "port": self.port})

    async def stop(self) -> None:
        if self._server is None:
            return
        self._server.close()
        await self._server.wait_closed()
        self._server = None
        self._clients.clear()
        logger.info("IDE bridge stopped")

    def _status(self) -> dict[str, Any]:
        status: dict[str, Any] = {"connected": True, "agent_ready": True}
        if self._status_provider is not None:
            status.update(self._status_provider())
        return status

    @staticmethod
    def _encode(message_type: str, data: Any) -> str:
        return json.dumps({"type": message_type, "data": data}, default=str)

    async def _handle(self, connection: ServerConnection) -> None:
        self._clients.add(connection)
        logger.info("IDE client connected", extra={"clients": len(self._clients)})
        try:
            await connection.send(self._encode("status", self._status()))
            async for raw in connection:
                try:
                    message = json.loads(raw)
                    message_type = message["type"]
                except (ValueError, KeyError, TypeError):
                    logger.warning("Ignoring malformed IDE message", extra={"message": str(raw)[:200]})
                    continue

                if message_type in COMMAND_TYPES:
                    self._commands.put_nowait(IdeCommand(type=message_type, data=message.get("data")))
                elif message_type == "get-status":
                    await connection.send(self._encode("status", self._status()))
                else:
                    logger.warning("Unknown IDE message type", extra={"type": message_type})
        except ConnectionClosed:
            pass
        finally:
            self._clients.discard(connection)
            logger.info("IDE client disconnected", extra={"clients": len(self._clients)})

    def broadcast(self, message_type: str, data: Any) -> None:
        if message_type not in OUTBOUND_TYPES:
            raise ValueError(f"Unsupported IDE message type: {message_type}")
        if not self._clients:
            return
        broadcast(self._clients, self._encode(message_type, data))

    def file_change(self, files: list[str]) -> None:
        self.broadcast("file-change", {"files": files, "timestamp": datetime.now(timezone.utc).isoformat()})

    def suite_decision(self, decision: dict[str, Any]) -> None:
        self.broadcast("suite-decision", decision)

    def test_results(self, results: list[dict[str, Any]]) -> None:
        self.broadcast("test-result", results)

    def notification(self, payload: dict[str, Any]) -> None:
        self.broadcast("notification", payload)

    async def next_command(self) -> IdeCommand:
        return await self._commands.get()


__all__ = ["IdeBridge", "IdeCommand"]
