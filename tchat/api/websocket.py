# tchat/api/websocket.py

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from tchat.core.errors import ChatError, NotFoundError
from tchat.core.state import AppState
from tchat.models.models import EventKind

logger = logging.getLogger(__name__)

router = APIRouter()

FORBIDDEN_CLOSE_CODE = 4403

# ============================================================================
# WEBSOCKET ENDPOINT
# ============================================================================

@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, user_id: str = ""):
    """
    WebSocket endpoint for real-time room feeds.

    Protocol:
    =========

    Client -> Server Actions:
    -------------------------
    Subscribe:
        {"action": "subscribe", "room": "Main", "kind": "message-created"}
        Response: {"type": "subscribed", "room": "Main", "kind": "message-created"}
        Already open on this socket: {"type": "already_subscribed", "room": "Main", "kind": "message-created"}

    Unsubscribe:
        {"action": "unsubscribe", "room": "Main", "kind": "message-created"}
        Response: {"type": "unsubscribed", "room": "Main", "kind": "message-created"}

    Typing:
        {"action": "typing", "text": "hel", "is_sharable": true}
        Unsharable signals (is_sharable=false) are tracked but never broadcast

    Send Message:
        {"action": "send_message", "room": "Main", "message": "hello"}
        Response: {"type": "message_sent", "message": {...}}

    Toggle Like:
        {"action": "toggle_like", "room": "Main", "message_id": 3}
        Response: {"type": "like_toggled", "message": {...}}

    Get Room:
        {"action": "get_room", "room": "Main"}
        Response: {"type": "room", "room": {...}}

    Server -> Client Messages:
    -------------------------
    Event:
        {"type": "event", "kind": "message-created", "room": "Main", "payload": {...}}

    Feed dropped because the client fell behind:
        {"type": "unsubscribed", "room": "Main", "kind": "...", "reason": "overflow"}

    Error:
        {"type": "error", "message": "..."}

    Lifecycle:
    ==========
    1. Client connects with a user_id query parameter
    2. Unknown or missing user_id: socket closed with code 4403
    3. Client sends "subscribe" actions for the feeds it wants
    4. On disconnect every feed of this connection is closed
    """
    state: AppState = websocket.app.state.chat
    manager = state.connection_manager

    if not state.directory.is_known_user(user_id):
        logger.info("Rejected WebSocket for unknown user %r", user_id)
        await websocket.close(code=FORBIDDEN_CLOSE_CODE, reason="Forbidden")
        return

    await manager.connect(websocket, user_id)

    try:
        while True:
            data = await websocket.receive_text()

            try:
                message = json.loads(data)
                if not isinstance(message, dict):
                    raise ValueError("Expected a JSON object")
                logger.debug("Websocket input from %s: %s", user_id, message)
                await _handle_action(state, websocket, user_id, message)

            except json.JSONDecodeError:
                await manager.send(websocket, {"type": "error", "message": "Invalid JSON"})
            except ChatError as e:
                await manager.send(websocket, {"type": "error", "message": e.detail})
            except (KeyError, TypeError, ValueError) as e:
                await manager.send(websocket, {"type": "error", "message": f"Bad request: {e}"})

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error("WebSocket error: %s", e)
    finally:
        await manager.disconnect(websocket)


async def _handle_action(state: AppState, websocket: WebSocket, user_id: str, message: dict) -> None:
    manager = state.connection_manager
    action = message.get("action")

    if action == "subscribe":
        room = message["room"]
        kind = EventKind(message["kind"])
        state.directory.get_room(room)
        opened = await manager.subscribe(websocket, room, kind)
        ack = "subscribed" if opened else "already_subscribed"
        await manager.send(websocket, {"type": ack, "room": room, "kind": kind.value})

    elif action == "unsubscribe":
        room = message["room"]
        kind = EventKind(message["kind"])
        await manager.unsubscribe(websocket, room, kind)
        await manager.send(websocket, {"type": "unsubscribed", "room": room, "kind": kind.value})

    elif action == "typing":
        user = state.directory.get_user(user_id)
        if user is None:
            raise NotFoundError(f"User not found: {user_id}")
        state.typing_tracker.on_typing(
            user, str(message.get("text", "")), bool(message.get("is_sharable", True))
        )

    elif action == "send_message":
        posted = await state.directory.post_message(message["room"], user_id, str(message["message"]))
        state.typing_tracker.on_message_sent(user_id)
        await manager.send(
            websocket,
            {"type": "message_sent", "message": posted.model_dump(mode="json", by_alias=True)},
        )

    elif action == "toggle_like":
        updated = await state.directory.toggle_like(message["room"], int(message["message_id"]), user_id)
        await manager.send(
            websocket,
            {"type": "like_toggled", "message": updated.model_dump(mode="json", by_alias=True)},
        )

    elif action == "get_room":
        room = state.directory.get_room(message["room"])
        await manager.send(
            websocket,
            {"type": "room", "room": room.model_dump(mode="json", by_alias=True)},
        )

    else:
        await manager.send(websocket, {"type": "error", "message": f"Unknown action: {action}"})
