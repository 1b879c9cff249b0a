# tchat/api/routes/messages.py

from fastapi import APIRouter, Depends, status

from tchat.core.state import AppState, get_state
from tchat.models.models import (
    EditMessageRequest,
    Message,
    SendMessageRequest,
    ToggleLikeRequest,
)

router = APIRouter(prefix="/rooms/{room}/messages", tags=["messages"])

# ============================================================================
# MESSAGE ENDPOINTS
# ============================================================================

@router.post("", response_model=Message, status_code=status.HTTP_201_CREATED)
async def send_message(room: str, request: SendMessageRequest, state: AppState = Depends(get_state)):
    """
    Post a message to a room.

    Flow:
        1. Directory stores the message (newest first) and publishes
           "message-created" to every subscriber of the room
        2. The author's typing indicator is cleared right away

    Raises:
        404 if room or user is unknown
        403 if the user currently belongs to another room
    """
    message = await state.directory.post_message(room, request.user_id, request.message)
    state.typing_tracker.on_message_sent(request.user_id)
    return message


@router.patch("/{message_id}", response_model=Message)
async def edit_message(
    room: str,
    message_id: int,
    request: EditMessageRequest,
    state: AppState = Depends(get_state),
):
    """Edit the body of a message (author only). Publishes "message-edited"."""
    return await state.directory.edit_message(room, message_id, request.user_id, request.message)


@router.post("/{message_id}/likes", response_model=Message)
async def toggle_like(
    room: str,
    message_id: int,
    request: ToggleLikeRequest,
    state: AppState = Depends(get_state),
):
    """
    Like or unlike a message.

    Calling this twice with the same user leaves the message unliked.
    Publishes "message-edited" with the updated likes.
    """
    return await state.directory.toggle_like(room, message_id, request.user_id)


@router.post("/{message_id}/replies", response_model=Message, status_code=status.HTTP_201_CREATED)
async def add_reply(
    room: str,
    message_id: int,
    request: SendMessageRequest,
    state: AppState = Depends(get_state),
):
    """Reply to a message. Returns the parent message with all its replies."""
    message = await state.directory.add_reply(room, message_id, request.user_id, request.message)
    state.typing_tracker.on_message_sent(request.user_id)
    return message
