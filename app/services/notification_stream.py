"""
services/notification_stream.py
-------------------------------
In-process registry of live Server-Sent-Events connections.

  - At most one connection per user: registering again closes the stale
    connection first.
  - send() never raises. It returns False when the user is offline, and
    drops the registration when the connection's buffer is full (a client
    that stopped reading).
  - events() is the body of the SSE response. It emits a comment line as a
    keep-alive whenever the channel is idle for `keep_alive_seconds`, and
    unregisters the connection when the client goes away.

Single-process only; a multi-instance deployment needs a shared pub/sub
backplane in front of send().
"""

import asyncio
import json
from typing import Any, AsyncIterator

from fastapi.encoders import jsonable_encoder

from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)

KEEP_ALIVE_FRAME = ": keep-alive\n\n"


def format_event(payload: Any) -> str:
    return f"data: {json.dumps(jsonable_encoder(payload), ensure_ascii=False)}\n\n"


class LiveConnection:

    def __init__(self, user_id: str, queue_size: int) -> None:
        self.user_id = user_id
        self.queue: asyncio.Queue[str | None] = asyncio.Queue(maxsize=queue_size)
        self.closed = False

    def push(self, frame: str) -> None:
        if self.closed:
            raise ConnectionError("connection closed")
        self.queue.put_nowait(frame)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            self.queue.put_nowait(None)
        except asyncio.QueueFull:
            pass  # reader checks `closed` after its next wake-up


class NotificationStream:

    def __init__(
        self,
        keep_alive_seconds: float | None = None,
        queue_size: int | None = None,
    ) -> None:
        self.keep_alive_seconds = keep_alive_seconds or settings.NOTIFICATION_KEEP_ALIVE_SECONDS
        self.queue_size = queue_size or settings.NOTIFICATION_QUEUE_SIZE
        self._clients: dict[str, LiveConnection] = {}

    def register(self, user_id: str) -> LiveConnection:
        existing = self._clients.pop(user_id, None)
        if existing is not None:
            existing.close()
            logger.info("Replaced stale live connection", receiver_id=user_id)
        connection = LiveConnection(user_id, self.queue_size)
        self._clients[user_id] = connection
        return connection

    def unregister(self, user_id: str, connection: LiveConnection | None = None) -> None:
        existing = self._clients.get(user_id)
        if existing is None:
            return
        if connection is not None and existing is not connection:
            return
        del self._clients[user_id]
        existing.close()

    def is_connected(self, user_id: str) -> bool:
        return user_id in self._clients

    def send(self, user_id: str, payload: Any) -> bool:
        connection = self._clients.get(user_id)
        if connection is None:
            return False
        try:
            connection.push(format_event(payload))
        except (asyncio.QueueFull, ConnectionError):
            logger.warning("Live send failed, dropping connection", receiver_id=user_id)
            self.unregister(user_id, connection)
            return False
        return True

    async def events(self, connection: LiveConnection) -> AsyncIterator[str]:
        try:
            yield ": connected\n\n"
            while not connection.closed:
                try:
                    frame = await asyncio.wait_for(
                        connection.queue.get(), timeout=self.keep_alive_seconds
                    )
                except asyncio.TimeoutError:
                    yield KEEP_ALIVE_FRAME
                    continue
                if frame is None:
                    break
                yield frame
        finally:
            self.unregister(connection.user_id, connection)


notification_stream = NotificationStream()
