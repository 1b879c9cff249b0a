"""Shared test fixtures."""

from __future__ import annotations

from typing import Any, List

import pytest

from tchat.models.models import User
from tchat.services.broker import EventBroker
from tchat.services.directory import Directory
from tchat.services.typing_tracker import TypingTracker


class FakeClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class Recorder:
    """Broker callback that keeps every payload it receives."""

    def __init__(self) -> None:
        self.events: List[Any] = []

    def __call__(self, payload: Any) -> None:
        self.events.append(payload)


def make_user(user_id: str, room: str = "Main", name: str | None = None) -> User:
    return User(
        id=user_id,
        name=name or f"User {user_id}",
        room=room,
        avatar_src="https://example.com/avatar.png",
    )


@pytest.fixture
def broker() -> EventBroker:
    return EventBroker()


@pytest.fixture
def directory(broker: EventBroker) -> Directory:
    """A Directory with the rooms "Main" and "Other"."""
    return Directory(broker, default_rooms=["Main", "Other"])


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def tracker(broker: EventBroker, clock: FakeClock) -> TypingTracker:
    return TypingTracker(broker, expiry=3.0, interval=1.0, clock=clock)


@pytest.fixture
async def users(directory: Directory) -> dict[str, User]:
    """alice and bob in Main, carol in Other."""
    await directory.create_or_login_user(make_user("alice"), "Main")
    await directory.create_or_login_user(make_user("bob"), "Main")
    await directory.create_or_login_user(make_user("carol", room="Other"), "Other")
    return {uid: directory.get_user(uid) for uid in ("alice", "bob", "carol")}
