# tchat/services/session.py

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Optional

from tchat.core.errors import ForbiddenError
from tchat.models.models import EventKind
from tchat.services.broker import EventBroker, SubscriptionToken
from tchat.services.directory import Directory

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 256


class SubscriptionSession:
    """
    One client's live feed of a single event kind in a single room.

    The broker callback only enqueues (put_nowait) into a bounded queue;
    the transport drains it by iterating the session:

        session = await SubscriptionSession.open(directory, broker, user_id,
                                                 EventKind.MESSAGE_CREATED, "Main")
        async with session:
            async for payload in session:
                await websocket.send_json(...)

    A consumer that lets its queue fill up is considered stalled: the
    session closes itself rather than blocking the publisher or silently
    skipping events. ``overflowed`` tells the transport why the feed ended.
    """

    def __init__(
        self,
        broker: EventBroker,
        user_id: str,
        kind: EventKind,
        room: str,
        max_queue: int = DEFAULT_QUEUE_SIZE,
    ) -> None:
        self.broker = broker
        self.user_id = user_id
        self.kind = EventKind(kind)
        self.room = room
        self.overflowed = False

        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=max_queue)
        self._closed = asyncio.Event()
        self._close_lock = threading.Lock()
        self._token: Optional[SubscriptionToken] = None

    @classmethod
    async def open(
        cls,
        directory: Directory,
        broker: EventBroker,
        user_id: Optional[str],
        kind: EventKind,
        room: str,
        max_queue: int = DEFAULT_QUEUE_SIZE,
    ) -> "SubscriptionSession":
        """
        Validate the caller and register with the broker.

        Raises:
            ForbiddenError: user_id is empty or unknown. Nothing is
                            registered in that case.
        """
        if not user_id or not directory.is_known_user(user_id):
            raise ForbiddenError("Subscription requires a known user id")

        session = cls(broker, user_id, kind, room, max_queue=max_queue)
        session._token = broker.subscribe(session.kind, session._matches, session._deliver)
        logger.info("→ %s subscribed to %s in '%s'", user_id, session.kind.value, room)
        return session

    # ------------------------------------------------------------------
    # Broker side
    # ------------------------------------------------------------------

    def _matches(self, payload: Any) -> bool:
        return getattr(payload, "room", None) == self.room

    def _deliver(self, payload: Any) -> None:
        if self._closed.is_set():
            return
        try:
            self._queue.put_nowait(payload)
        except asyncio.QueueFull:
            self.overflowed = True
            logger.warning(
                "Dropping stalled subscriber %s (%s in '%s', %d queued)",
                self.user_id, self.kind.value, self.room, self._queue.qsize(),
            )
            self.close()

    # ------------------------------------------------------------------
    # Transport side
    # ------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def close(self) -> bool:
        """
        Unregister from the broker and end iteration.

        Idempotent: only the first call does anything and returns True.
        """
        with self._close_lock:
            if self._closed.is_set():
                return False
            self._closed.set()
            token, self._token = self._token, None

        if token is not None:
            self.broker.unsubscribe(token)
        logger.info("✗ %s left %s in '%s'", self.user_id, self.kind.value, self.room)
        return True

    async def get(self) -> Any:
        """
        Wait for the next payload.

        Raises:
            StopAsyncIteration: the session is (or becomes) closed
        """
        if self._closed.is_set():
            raise StopAsyncIteration

        getter = asyncio.ensure_future(self._queue.get())
        closer = asyncio.ensure_future(self._closed.wait())
        try:
            await asyncio.wait({getter, closer}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            getter.cancel()
            closer.cancel()

        if self._closed.is_set():
            raise StopAsyncIteration
        return getter.result()

    def __aiter__(self) -> "SubscriptionSession":
        return self

    async def __anext__(self) -> Any:
        return await self.get()

    async def __aenter__(self) -> "SubscriptionSession":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()
