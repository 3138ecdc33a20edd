"""Fan-out of state notifications to connected clients.

Messages are idempotent overwrites of client-side state, so delivery is
best effort: no acknowledgements, no retries, no backpressure. A client
that misses a meter tick simply gets current values on the next one.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from typing import Any, Protocol

from pymixsync.models.messages import StateMessage, WsMessage
from pymixsync.models.mixer import AppState

_logger = logging.getLogger(__name__)


class ClientConnection(Protocol):
    """Structural client handle used by :class:`ClientRegistry`.

    ``aiohttp.web.WebSocketResponse`` satisfies it; tests pass fakes.
    """

    @property
    def closed(self) -> bool: ...

    async def send_str(self, data: str) -> None: ...

    async def close(self) -> Any: ...


def encode_message(message: WsMessage) -> str:
    """Serialize a notification to its wire form."""
    return json.dumps(message.to_wire(), separators=(",", ":"))


class ClientRegistry:
    """Registry of live client connections.

    One registry exists per server process. Connections join through
    :meth:`connect`, which always sends a full snapshot first, and leave
    through :meth:`remove` when their transport closes.
    """

    def __init__(self) -> None:
        self._clients: set[ClientConnection] = set()

    def __len__(self) -> int:
        return len(self._clients)

    def __contains__(self, client: object) -> bool:
        return client in self._clients

    def __iter__(self) -> Iterator[ClientConnection]:
        return iter(list(self._clients))

    def add(self, client: ClientConnection) -> None:
        self._clients.add(client)
        _logger.debug("Client registered (%d connected)", len(self._clients))

    def remove(self, client: ClientConnection) -> None:
        self._clients.discard(client)
        _logger.debug("Client removed (%d connected)", len(self._clients))

    async def connect(self, client: ClientConnection, snapshot: AppState) -> None:
        """Register *client* and send it the full current state."""
        self.add(client)
        try:
            await client.send_str(encode_message(StateMessage(data=snapshot)))
        except BaseException:
            self.remove(client)
            raise

    async def broadcast(self, message: WsMessage) -> int:
        """Send *message* to every open client.

        The payload is serialized once. Clients whose transport is no
        longer open are skipped but stay registered until their close
        callback removes them. Returns the number of clients reached.
        """
        if not self._clients:
            return 0
        payload = encode_message(message)
        sent = 0
        for client in list(self._clients):
            if client.closed:
                continue
            try:
                await client.send_str(payload)
            except (ConnectionError, RuntimeError) as exc:
                _logger.warning("Dropping %s message for one client: %s", message.type, exc)
                continue
            sent += 1
        return sent

    async def close(self) -> None:
        """Close every connection and empty the registry (server shutdown)."""
        clients = list(self._clients)
        self._clients.clear()
        for client in clients:
            try:
                await client.close()
            except (ConnectionError, RuntimeError):
                _logger.debug("Error closing client connection", exc_info=True)
        if clients:
            _logger.info("Closed %d client connection(s)", len(clients))
