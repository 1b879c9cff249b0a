# tchat/models/models.py
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChatModel(BaseModel):
    """Base model: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# DOMAIN
# ============================================================================

class EventKind(str, Enum):
    MESSAGE_CREATED = "message-created"
    MESSAGE_EDITED = "message-edited"
    PRESENCE_CHANGED = "presence-changed"
    TYPING_CHANGED = "typing-changed"


class User(ChatModel):
    id: str
    name: str
    room: str
    avatar_src: str
    is_online: bool = False
    last_seen: Optional[datetime] = None


class Reply(ChatModel):
    id: int
    room: str
    message: str
    user: User
    created_at: datetime = Field(default_factory=utcnow)


class Message(ChatModel):
    id: int
    room: str
    message: str
    user: User
    likes: Dict[str, bool] = Field(default_factory=dict)
    replies: Optional[List[Reply]] = None
    created_at: datetime = Field(default_factory=utcnow)
    edited_at: Optional[datetime] = None


class Room(ChatModel):
    name: str
    messages: List[Message] = Field(default_factory=list)
    users: List[User] = Field(default_factory=list)


# ============================================================================
# EVENT PAYLOADS
# ============================================================================

class PresenceEvent(ChatModel):
    user: User
    room: str


class TypingEvent(ChatModel):
    text: str = ""
    is_typing: bool
    user: User

    @property
    def room(self) -> str:
        return self.user.room


# ============================================================================
# REQUESTS
# ============================================================================

class CreateRoomRequest(ChatModel):
    name: str = Field(min_length=3)


class CreateUserRequest(ChatModel):
    id: str = Field(min_length=3)
    name: str = Field(min_length=3)
    room: str = Field(min_length=3)
    avatar_src: str = Field(min_length=3)


class SendMessageRequest(ChatModel):
    user_id: str = Field(min_length=1)
    message: str = Field(min_length=1)


class EditMessageRequest(SendMessageRequest):
    pass


class ToggleLikeRequest(ChatModel):
    user_id: str = Field(min_length=1)


class TypingRequest(ChatModel):
    user_id: str = Field(min_length=1)
    text: str = ""
    is_sharable: bool = True


# ============================================================================
# RESPONSES
# ============================================================================

class LoginResponse(ChatModel):
    user: User
    room: Room
