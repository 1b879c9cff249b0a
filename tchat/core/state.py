# tchat/core/state.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

from fastapi import Request

from tchat.core.config import Settings
from tchat.services.broker import EventBroker
from tchat.services.connection_manager import ConnectionManager
from tchat.services.directory import Directory
from tchat.services.typing_tracker import TypingTracker


@dataclass
class AppState:
    """Everything a request handler may touch, owned by one FastAPI app."""

    broker: EventBroker
    directory: Directory
    typing_tracker: TypingTracker
    connection_manager: ConnectionManager
    app_start_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def build_state(settings: Settings) -> AppState:
    broker = EventBroker()
    directory = Directory(broker, default_rooms=settings.DEFAULT_ROOMS)
    typing_tracker = TypingTracker(
        broker,
        expiry=settings.TYPING_EXPIRY_SECONDS,
        interval=settings.TYPING_SWEEP_INTERVAL_SECONDS,
    )
    connection_manager = ConnectionManager(
        directory, broker, max_queue=settings.SUBSCRIBER_QUEUE_SIZE
    )
    return AppState(
        broker=broker,
        directory=directory,
        typing_tracker=typing_tracker,
        connection_manager=connection_manager,
    )


def get_state(request: Request) -> AppState:
    """FastAPI dependency: the AppState stored on the running app."""
    return request.app.state.chat
