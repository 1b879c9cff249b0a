# tchat/services/connection_manager.py

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Tuple

from fastapi import WebSocket

from tchat.models.models import EventKind
from tchat.services.broker import EventBroker
from tchat.services.directory import Directory
from tchat.services.session import DEFAULT_QUEUE_SIZE, SubscriptionSession

logger = logging.getLogger(__name__)

ChannelKey = Tuple[str, EventKind]


@dataclass
class _Connection:
    user_id: str
    send_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    # (room, kind) -> (session, forwarding task)
    channels: Dict[ChannelKey, Tuple[SubscriptionSession, asyncio.Task]] = field(default_factory=dict)


# ============================================================================
# WEBSOCKET CONNECTION MANAGER
# ============================================================================

class ConnectionManager:
    """
    Manages WebSocket connections and the subscription sessions they own.

    Each connection may open any number of channels, one per (room, event
    kind). A channel is a SubscriptionSession plus a task forwarding its
    payloads to the socket. Closing a channel or a whole connection never
    touches channels of other connections, even on the same room.

    Data Structures:
        connections: Maps WebSocket -> _Connection (user id, send lock, channels)
    """

    def __init__(
        self,
        directory: Directory,
        broker: EventBroker,
        max_queue: int = DEFAULT_QUEUE_SIZE,
    ) -> None:
        self.directory = directory
        self.broker = broker
        self.max_queue = max_queue
        self.connections: Dict[WebSocket, _Connection] = {}

    async def connect(self, websocket: WebSocket, user_id: str) -> None:
        """
        Accept a new WebSocket connection for an already validated user.

        Note:
            No channel is opened automatically. Clients send "subscribe"
            actions for each room/kind they want.
        """
        await websocket.accept()
        self.connections[websocket] = _Connection(user_id=user_id)
        logger.info("✓ User %s connected. Total: %d", user_id, len(self.connections))

    async def send(self, websocket: WebSocket, data: dict) -> None:
        """Send one JSON frame; frames from different channels never interleave."""
        conn = self.connections.get(websocket)
        if conn is None:
            return
        async with conn.send_lock:
            await websocket.send_json(data)

    async def subscribe(self, websocket: WebSocket, room: str, kind: EventKind) -> bool:
        """
        Open a (room, kind) channel for this connection.

        Returns False if the channel is already open.

        Raises:
            ForbiddenError: the connection's user no longer exists
        """
        conn = self.connections.get(websocket)
        if conn is None:
            return False  # Connection already closed

        key = (room, EventKind(kind))
        if key in conn.channels:
            return False

        session = await SubscriptionSession.open(
            self.directory, self.broker, conn.user_id, key[1], room, max_queue=self.max_queue
        )
        task = asyncio.create_task(self._forward(websocket, session))
        conn.channels[key] = (session, task)
        return True

    async def unsubscribe(self, websocket: WebSocket, room: str, kind: EventKind) -> bool:
        conn = self.connections.get(websocket)
        if conn is None:
            return False
        channel = conn.channels.pop((room, EventKind(kind)), None)
        if channel is None:
            return False
        await self._close_channel(*channel)
        return True

    async def disconnect(self, websocket: WebSocket) -> None:
        """
        Handle WebSocket disconnection and cleanup.

        Closes every session of this connection exactly once and waits
        for their forwarding tasks to finish.
        """
        conn = self.connections.pop(websocket, None)
        if conn is None:
            return
        channels = list(conn.channels.values())
        conn.channels.clear()
        logger.info("✗ User %s disconnected. Total: %d", conn.user_id, len(self.connections))

        # Unregister everything before the first await; the caller may be cancelled
        tasks = []
        for session, task in channels:
            session.close()
            if task is not asyncio.current_task():
                task.cancel()
                tasks.append(task)
        await asyncio.gather(*tasks, return_exceptions=True)

    async def close_all(self) -> None:
        for websocket in list(self.connections):
            await self.disconnect(websocket)

    def channel_count(self) -> int:
        return sum(len(c.channels) for c in self.connections.values())

    async def _close_channel(self, session: SubscriptionSession, task: asyncio.Task) -> None:
        session.close()
        if task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _forward(self, websocket: WebSocket, session: SubscriptionSession) -> None:
        """Drain one session into the socket until the session closes."""
        try:
            async for payload in session:
                await self.send(websocket, _event_frame(session, payload))
        except Exception as e:
            logger.error("Send error for %s: %s", session.user_id, e)
            session.close()
            self._drop_channel(websocket, session)
            return

        if session.overflowed:
            try:
                await self.send(
                    websocket,
                    {
                        "type": "unsubscribed",
                        "room": session.room,
                        "kind": session.kind.value,
                        "reason": "overflow",
                    },
                )
            except Exception:
                logger.debug("Could not notify %s of overflow", session.user_id, exc_info=True)
            self._drop_channel(websocket, session)

    def _drop_channel(self, websocket: WebSocket, session: SubscriptionSession) -> None:
        """Forget a channel that ended by itself, unless it was already replaced."""
        conn = self.connections.get(websocket)
        if conn is None:
            return
        key = (session.room, session.kind)
        channel = conn.channels.get(key)
        if channel is not None and channel[0] is session:
            del conn.channels[key]


def _event_frame(session: SubscriptionSession, payload: Any) -> dict:
    return {
        "type": "event",
        "kind": session.kind.value,
        "room": session.room,
        "payload": payload.model_dump(mode="json", by_alias=True),
    }
