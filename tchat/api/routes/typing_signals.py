# tchat/api/routes/typing_signals.py

from fastapi import APIRouter, Depends, status

from tchat.core.errors import NotFoundError
from tchat.core.state import AppState, get_state
from tchat.models.models import TypingRequest

router = APIRouter(tags=["typing"])


@router.post("/typing", status_code=status.HTTP_204_NO_CONTENT)
async def whatcha_typing(request: TypingRequest, state: AppState = Depends(get_state)):
    """
    Signal that a user is composing a message.

    Clients call this on every keystroke. The first call publishes
    "typing-changed" with isTyping=true; the indicator expires on its own
    once the calls stop. With is_sharable=false nothing is published: the
    user is tracked but nobody sees them typing.
    """
    user = state.directory.get_user(request.user_id)
    if user is None:
        raise NotFoundError(f"User not found: {request.user_id}")
    state.typing_tracker.on_typing(user, request.text, request.is_sharable)
