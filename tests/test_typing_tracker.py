"""Tests for typing indicators and their expiry."""

from __future__ import annotations

import asyncio

from tchat.models.models import EventKind, TypingEvent
from tchat.services.broker import EventBroker
from tchat.services.typing_tracker import TypingTracker

from conftest import Recorder, make_user


def _typing_recorder(broker) -> Recorder:
    rec = Recorder()
    broker.subscribe(EventKind.TYPING_CHANGED, lambda p: True, rec)
    return rec


def _flags(rec: Recorder) -> list[tuple[str, bool]]:
    return [(e.user.id, e.is_typing) for e in rec.events]


def test_first_signal_publishes_started(tracker, broker):
    rec = _typing_recorder(broker)

    assert tracker.on_typing(make_user("alice"), "he") is True

    assert len(rec.events) == 1
    event = rec.events[0]
    assert isinstance(event, TypingEvent)
    assert event.is_typing is True
    assert event.text == "he"
    assert event.room == "Main"


def test_refresh_with_same_text_is_silent(tracker, broker):
    rec = _typing_recorder(broker)
    alice = make_user("alice")

    tracker.on_typing(alice, "he")
    assert tracker.on_typing(alice, "he") is False

    assert _flags(rec) == [("alice", True)]


def test_changed_draft_republishes(tracker, broker):
    rec = _typing_recorder(broker)
    alice = make_user("alice")

    tracker.on_typing(alice, "he")
    tracker.on_typing(alice, "hello")

    assert [e.text for e in rec.events] == ["he", "hello"]
    assert all(e.is_typing for e in rec.events)


def test_unsharable_typing_is_never_broadcast(tracker, broker, clock):
    rec = _typing_recorder(broker)
    alice = make_user("alice")

    assert tracker.on_typing(alice, "secret plans", is_sharable=False) is True
    tracker.on_typing(alice, "secret plans v2", is_sharable=False)

    assert rec.events == []
    assert tracker.is_typing("alice")
    assert tracker.typing_users("Main") == []

    # the entry stays fresh, and expiry is silent too
    clock.advance(2.5)
    tracker.on_typing(alice, "more", is_sharable=False)
    clock.advance(2.5)
    assert tracker.sweep() == []
    clock.advance(1.0)
    assert tracker.sweep() == ["alice"]
    assert rec.events == []


def test_unsharable_message_sent_publishes_no_stop(tracker, broker):
    rec = _typing_recorder(broker)

    tracker.on_typing(make_user("alice"), "secret", is_sharable=False)

    assert tracker.on_message_sent("alice") is True
    assert rec.events == []


def test_switching_to_unsharable_withdraws_indicator(tracker, broker):
    rec = _typing_recorder(broker)
    alice = make_user("alice")

    tracker.on_typing(alice, "hel")
    tracker.on_typing(alice, "hello", is_sharable=False)
    tracker.on_typing(alice, "hello!", is_sharable=False)
    tracker.on_message_sent("alice")

    assert [(e.is_typing, e.text) for e in rec.events] == [(True, "hel"), (False, "")]


def test_switching_back_to_sharable_announces_again(tracker, broker):
    rec = _typing_recorder(broker)
    alice = make_user("alice")

    tracker.on_typing(alice, "hidden", is_sharable=False)
    tracker.on_typing(alice, "shown")
    tracker.on_message_sent("alice")

    assert [(e.is_typing, e.text) for e in rec.events] == [(True, "shown"), (False, "")]


def test_sweep_expires_after_threshold(tracker, broker, clock):
    rec = _typing_recorder(broker)
    tracker.on_typing(make_user("alice"))

    clock.advance(2.5)
    assert tracker.sweep() == []
    clock.advance(0.5)  # exactly the threshold is still typing
    assert tracker.sweep() == []
    clock.advance(0.25)
    assert tracker.sweep() == ["alice"]

    assert _flags(rec) == [("alice", True), ("alice", False)]
    assert tracker.sweep() == []
    assert tracker.is_typing("alice") is False


def test_expiry_lands_within_one_sweep_interval(tracker, broker, clock):
    rec = _typing_recorder(broker)
    started = clock.now
    tracker.on_typing(make_user("alice"))

    expired_at = None
    for _ in range(10):
        clock.advance(tracker.interval)
        if tracker.sweep():
            expired_at = clock.now
            break

    assert expired_at is not None
    assert tracker.expiry < expired_at - started <= tracker.expiry + tracker.interval
    assert _flags(rec).count(("alice", False)) == 1


def test_message_sent_clears_immediately(tracker, broker, clock):
    rec = _typing_recorder(broker)
    tracker.on_typing(make_user("alice"))

    assert tracker.on_message_sent("alice") is True
    assert _flags(rec) == [("alice", True), ("alice", False)]

    clock.advance(10)
    assert tracker.sweep() == []
    assert _flags(rec).count(("alice", False)) == 1


def test_message_sent_when_idle_is_silent(tracker, broker):
    rec = _typing_recorder(broker)
    assert tracker.on_message_sent("alice") is False
    assert rec.events == []


def test_refresh_keeps_user_typing(tracker, broker, clock):
    rec = _typing_recorder(broker)
    alice = make_user("alice")

    for _ in range(5):
        tracker.on_typing(alice)
        clock.advance(2.0)
        assert tracker.sweep() == []

    assert _flags(rec) == [("alice", True)]


def test_each_user_expires_independently(tracker, broker, clock):
    rec = _typing_recorder(broker)
    tracker.on_typing(make_user("alice"))
    clock.advance(2.0)
    tracker.on_typing(make_user("bob"))

    clock.advance(1.5)
    assert tracker.sweep() == ["alice"]
    tracker.on_typing(make_user("bob"))  # refresh bob while alice is gone

    clock.advance(2.0)
    assert tracker.sweep() == []
    clock.advance(1.5)
    assert tracker.sweep() == ["bob"]

    assert _flags(rec) == [
        ("alice", True),
        ("bob", True),
        ("alice", False),
        ("bob", False),
    ]


def test_typing_users_by_room(tracker):
    tracker.on_typing(make_user("alice"))
    tracker.on_typing(make_user("bob"))
    tracker.on_typing(make_user("carol", room="Other"))

    assert sorted(u.id for u in tracker.typing_users("Main")) == ["alice", "bob"]
    assert [u.id for u in tracker.typing_users("Other")] == ["carol"]
    assert tracker.typing_users("Empty") == []


def test_room_change_restarts_indicator(tracker, broker):
    rec = _typing_recorder(broker)
    tracker.on_typing(make_user("alice", room="Main"))

    assert tracker.on_typing(make_user("alice", room="Other")) is True

    assert [(e.room, e.is_typing) for e in rec.events] == [
        ("Main", True),
        ("Main", False),
        ("Other", True),
    ]


async def test_background_sweep_expires_and_stops():
    broker = EventBroker()
    rec = _typing_recorder(broker)
    tracker = TypingTracker(broker, expiry=0.05, interval=0.01)

    tracker.start()
    assert tracker.running
    tracker.on_typing(make_user("alice"))

    for _ in range(100):
        await asyncio.sleep(0.01)
        if not tracker.is_typing("alice"):
            break

    assert _flags(rec) == [("alice", True), ("alice", False)]

    await tracker.stop()
    assert tracker.running is False


async def test_stop_without_start_is_noop():
    tracker = TypingTracker(EventBroker())
    await tracker.stop()
    assert tracker.running is False


async def test_start_twice_keeps_one_task():
    tracker = TypingTracker(EventBroker(), interval=0.01)
    tracker.start()
    task = tracker._task
    tracker.start()
    assert tracker._task is task
    await tracker.stop()
    assert task.done()
