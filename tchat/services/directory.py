# tchat/services/directory.py

from __future__ import annotations

import asyncio
import itertools
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Iterable, List, Optional

from tchat.core.errors import ForbiddenError, NotFoundError
from tchat.models.models import (
    EventKind,
    Message,
    PresenceEvent,
    Reply,
    Room,
    User,
    utcnow,
)
from tchat.services.broker import EventBroker

logger = logging.getLogger(__name__)


@dataclass
class _RoomRecord:
    name: str
    # newest first
    message_ids: Deque[int] = field(default_factory=deque)
    # user ids in join order
    members: Dict[str, None] = field(default_factory=dict)


# ============================================================================
# DIRECTORY
# ============================================================================

class Directory:
    """
    Owns users, rooms and messages for the lifetime of the process.

    Every mutation is serialized per entity: an asyncio.Lock per user
    (login/logout), per room (membership, message sequence) and per message
    (likes, edits, replies). The resulting domain event is published while
    the lock is still held, so subscribers observe events in the same order
    the Directory applied them.

    Stored User and Message objects are never mutated in place; a mutation
    stores a fresh copy. Anything handed out (query results, event payloads)
    therefore stays a stable snapshot.

    Usage:
        directory = Directory(broker, default_rooms=["Main"])
        await directory.create_or_login_user(user, "Main")
        message = await directory.post_message("Main", user.id, "hi")
    """

    def __init__(self, broker: EventBroker, default_rooms: Iterable[str] = ("Main",)) -> None:
        self.broker = broker
        self._users: Dict[str, User] = {}
        self._rooms: Dict[str, _RoomRecord] = {}
        self._messages: Dict[int, Message] = {}
        self._ids = itertools.count(1)

        self._user_locks: Dict[str, asyncio.Lock] = {}
        self._room_locks: Dict[str, asyncio.Lock] = {}
        self._message_locks: Dict[int, asyncio.Lock] = {}

        for name in default_rooms:
            self._provision_room(name)
        logger.info("✓ Directory ready with rooms: %s", ", ".join(self._rooms))

    # ------------------------------------------------------------------
    # Locks / helpers
    # ------------------------------------------------------------------

    # A lock exists only for an entity that exists; unknown ids fail with
    # NotFoundError before any lock is allocated.

    def _user_lock(self, user_id: str, create: bool = False) -> asyncio.Lock:
        if create:
            return self._user_locks.setdefault(user_id, asyncio.Lock())
        self._require_user(user_id)
        return self._user_locks[user_id]

    def _room_lock(self, name: str) -> asyncio.Lock:
        self._require_room(name)
        return self._room_locks[name]

    def _message_lock(self, room: str, message_id: int) -> asyncio.Lock:
        self._require_message(room, message_id)
        return self._message_locks[message_id]

    def _provision_room(self, name: str) -> _RoomRecord:
        record = self._rooms.get(name)
        if record is None:
            record = _RoomRecord(name=name)
            self._rooms[name] = record
            self._room_locks[name] = asyncio.Lock()
            logger.info("✓ Provisioned room: %s", name)
        return record

    def _require_room(self, name: str) -> _RoomRecord:
        record = self._rooms.get(name)
        if record is None:
            raise NotFoundError(f"Room not found: {name}")
        return record

    def _require_user(self, user_id: str) -> User:
        user = self._users.get(user_id)
        if user is None:
            raise NotFoundError(f"User not found: {user_id}")
        return user

    def _require_message(self, room: str, message_id: int) -> Message:
        self._require_room(room)
        message = self._messages.get(message_id)
        if message is None or message.room != room:
            raise NotFoundError(f"Message {message_id} not found in room {room}")
        return message

    def _snapshot_room(self, record: _RoomRecord) -> Room:
        return Room(
            name=record.name,
            messages=[self._messages[mid] for mid in record.message_ids],
            users=[self._users[uid] for uid in record.members],
        )

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    async def create_or_login_user(self, user: User, room: str) -> Room:
        """
        Register a user, or log an existing one back in.

        Args:
            user: Identity to register. Its id is the key; name and avatar
                  of an existing record are updated in place.
            room: Room to join. Unknown rooms are provisioned on the fly.

        Returns:
            Room: Snapshot of the joined room (members and history)

        Side Effects:
            - user marked online, last_seen stamped
            - membership moved if the user switched rooms; the old room
              gets a "presence-changed" with the user offline there
            - "presence-changed" published for the joined room
        """
        async with self._user_lock(user.id, create=True):
            previous = self._users.get(user.id)
            if previous is not None and previous.room != room:
                async with self._room_lock(previous.room):
                    self._rooms[previous.room].members.pop(user.id, None)
                    left = previous.model_copy(update={"is_online": False, "last_seen": utcnow()})
                    self.broker.publish(
                        EventKind.PRESENCE_CHANGED, PresenceEvent(user=left, room=previous.room)
                    )
                logger.info("↷ %s moved from '%s' to '%s'", user.id, previous.room, room)

            record = self._provision_room(room)
            async with self._room_lock(room):
                updated = user.model_copy(
                    update={"room": room, "is_online": True, "last_seen": utcnow()}
                )
                self._users[user.id] = updated
                record.members[user.id] = None
                self.broker.publish(
                    EventKind.PRESENCE_CHANGED, PresenceEvent(user=updated, room=room)
                )
                snapshot = self._snapshot_room(record)

        logger.info("→ %s logged in to '%s' (%d members)", user.id, room, len(snapshot.users))
        return snapshot

    async def logout(self, user_id: str) -> User:
        """
        Mark a user offline.

        Raises:
            NotFoundError: unknown user id
        """
        async with self._user_lock(user_id):
            user = self._users[user_id]
            async with self._room_lock(user.room):
                updated = user.model_copy(update={"is_online": False, "last_seen": utcnow()})
                self._users[user_id] = updated
                self.broker.publish(
                    EventKind.PRESENCE_CHANGED, PresenceEvent(user=updated, room=updated.room)
                )

        logger.info("✗ %s logged out of '%s'", user_id, updated.room)
        return updated

    def get_user(self, user_id: Optional[str]) -> Optional[User]:
        if not user_id:
            return None
        return self._users.get(user_id)

    def is_known_user(self, user_id: Optional[str]) -> bool:
        return self.get_user(user_id) is not None

    # ------------------------------------------------------------------
    # Rooms
    # ------------------------------------------------------------------

    def list_rooms(self) -> List[str]:
        return list(self._rooms)

    async def create_room(self, name: str) -> Room:
        """Provision a room (no-op if it already exists)."""
        record = self._provision_room(name)
        async with self._room_lock(name):
            return self._snapshot_room(record)

    def get_room(self, name: str) -> Room:
        """
        Get members and message history of a room.

        Returns:
            Room with messages ordered most-recent-first

        Raises:
            NotFoundError: room was never provisioned
        """
        return self._snapshot_room(self._require_room(name))

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def post_message(self, room: str, user_id: str, body: str) -> Message:
        """
        Post a message to a room.

        The author is embedded as a snapshot: later logins or room moves
        do not rewrite history.

        Raises:
            NotFoundError: unknown room or user
            ForbiddenError: user is currently assigned to another room
        """
        async with self._room_lock(room):
            record = self._require_room(room)
            user = self._require_user(user_id)
            if user.room != room:
                raise ForbiddenError(f"User {user_id} is not in room {room}")

            message = Message(
                id=next(self._ids),
                room=room,
                message=body,
                user=user.model_copy(),
            )
            self._messages[message.id] = message
            self._message_locks[message.id] = asyncio.Lock()
            record.message_ids.appendleft(message.id)
            delivered = self.broker.publish(EventKind.MESSAGE_CREATED, message)

        logger.info("📨 Message %d in '%s' by %s (%d subscribers)", message.id, room, user_id, delivered)
        return message

    async def toggle_like(self, room: str, message_id: int, user_id: str) -> Message:
        """
        Flip user_id's like on a message.

        Toggles on the same message are serialized, so N concurrent
        toggles by one user end liked when N is odd and unliked when even.

        Raises:
            NotFoundError: unknown room, message or user
        """
        async with self._message_lock(room, message_id):
            message = self._require_message(room, message_id)
            self._require_user(user_id)

            likes = dict(message.likes)
            if likes.pop(user_id, None) is None:
                likes[user_id] = True

            updated = message.model_copy(update={"likes": likes})
            self._messages[message_id] = updated
            self.broker.publish(EventKind.MESSAGE_EDITED, updated)

        return updated

    async def edit_message(self, room: str, message_id: int, user_id: str, body: str) -> Message:
        """
        Replace the body of a message. Only its author may edit it.

        Raises:
            NotFoundError: unknown room, message or user
            ForbiddenError: user_id is not the author
        """
        async with self._message_lock(room, message_id):
            message = self._require_message(room, message_id)
            self._require_user(user_id)
            if message.user.id != user_id:
                raise ForbiddenError("Only the author can edit a message")

            updated = message.model_copy(update={"message": body, "edited_at": utcnow()})
            self._messages[message_id] = updated
            self.broker.publish(EventKind.MESSAGE_EDITED, updated)

        return updated

    async def add_reply(self, room: str, message_id: int, user_id: str, body: str) -> Message:
        """
        Attach a reply to a message. Replies are flat: they cannot be replied to.

        Returns:
            Message: the parent message including the new reply
        """
        async with self._message_lock(room, message_id):
            message = self._require_message(room, message_id)
            user = self._require_user(user_id)

            reply = Reply(id=next(self._ids), room=room, message=body, user=user.model_copy())
            replies = list(message.replies or []) + [reply]
            updated = message.model_copy(update={"replies": replies})
            self._messages[message_id] = updated
            self.broker.publish(EventKind.MESSAGE_EDITED, updated)

        return updated
