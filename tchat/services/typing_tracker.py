# tchat/services/typing_tracker.py
"""
Typing indicators with time-based expiry.

A user is either idle or typing. The first signal publishes
``typing-changed(isTyping=True)``; later signals only refresh the timestamp
(and republish when the shared draft text changed). A background sweep
expires users who stayed silent longer than the expiry and publishes a single
``typing-changed(isTyping=False)`` for each. Sending a message clears the
indicator at once instead of waiting for the sweep.

Unsharable signals keep the user's entry alive but are never broadcast:
nobody sees the user typing, so nobody is told when they stop.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from tchat.models.models import EventKind, TypingEvent, User
from tchat.services.broker import EventBroker

logger = logging.getLogger(__name__)

# Default typing timeout in seconds
TYPING_EXPIRY = 3.0
SWEEP_INTERVAL = 1.0


@dataclass
class _TypingEntry:
    user: User
    last_typed: float
    text: str = ""
    # whether subscribers were told this user is typing
    shared: bool = True


class TypingTracker:
    def __init__(
        self,
        broker: EventBroker,
        expiry: float = TYPING_EXPIRY,
        interval: float = SWEEP_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.broker = broker
        self.expiry = expiry
        self.interval = interval
        self._clock = clock
        self._lock = threading.Lock()
        self._typing: Dict[str, _TypingEntry] = {}
        self._task: Optional[asyncio.Task] = None

    def _publish(self, user: User, is_typing: bool, text: str = "") -> None:
        self.broker.publish(
            EventKind.TYPING_CHANGED,
            TypingEvent(text=text, is_typing=is_typing, user=user),
        )

    def on_typing(self, user: User, text: str = "", is_sharable: bool = True) -> bool:
        """
        Register a typing signal from user.

        An unsharable signal refreshes the entry without publishing. If the
        user was visibly typing, it is announced as a stop instead.

        Returns True when the user went from idle to typing.
        """
        shared = text if is_sharable else ""
        now = self._clock()
        moved_from: Optional[_TypingEntry] = None

        with self._lock:
            entry = self._typing.get(user.id)
            if entry is not None and entry.user.room != user.room:
                # Room changed under us: close the old indicator, start fresh
                moved_from = entry
                entry = None

            started = entry is None
            was_shared = entry is not None and entry.shared
            self._typing[user.id] = _TypingEntry(
                user=user, last_typed=now, text=shared, shared=is_sharable
            )

            if moved_from is not None and moved_from.shared:
                self._publish(moved_from.user, False)
            if is_sharable and (not was_shared or entry.text != shared):
                self._publish(user, True, shared)
            elif not is_sharable and was_shared:
                self._publish(user, False)

        if started:
            logger.debug("✎ %s started typing in '%s'", user.id, user.room)
        return started

    def stop_typing(self, user_id: str) -> bool:
        """
        Clear user_id's indicator immediately.

        Returns True if the user was typing. A stop is published only if
        their typing had been shared.
        """
        with self._lock:
            entry = self._typing.pop(user_id, None)
            if entry is not None and entry.shared:
                self._publish(entry.user, False)
        return entry is not None

    def on_message_sent(self, user_id: str) -> bool:
        return self.stop_typing(user_id)

    def sweep(self, now: Optional[float] = None) -> List[str]:
        """
        Expire every user silent for longer than the expiry.

        Each user is checked and removed under the lock, so a refresh for
        one user never hides or duplicates the expiry of another.
        """
        if now is None:
            now = self._clock()

        expired: List[str] = []
        with self._lock:
            for user_id, entry in list(self._typing.items()):
                if now - entry.last_typed > self.expiry:
                    del self._typing[user_id]
                    if entry.shared:
                        self._publish(entry.user, False)
                    expired.append(user_id)

        if expired:
            logger.debug("Typing expired for %s", ", ".join(expired))
        return expired

    def is_typing(self, user_id: str) -> bool:
        with self._lock:
            return user_id in self._typing

    def typing_users(self, room: str) -> List[User]:
        """Users visibly typing in room; unsharable drafts are left out."""
        with self._lock:
            return [
                e.user for e in self._typing.values() if e.shared and e.user.room == room
            ]

    # ------------------------------------------------------------------
    # Background sweep
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="typing-sweep")
        logger.info("✓ Typing sweep started (expiry=%.1fs, every %.1fs)", self.expiry, self.interval)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Typing sweep stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                self.sweep()
            except Exception:
                logger.exception("Typing sweep failed")
