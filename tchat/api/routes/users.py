# tchat/api/routes/users.py

from typing import Optional

from fastapi import APIRouter, Depends

from tchat.core.state import AppState, get_state
from tchat.models.models import CreateUserRequest, LoginResponse, User

router = APIRouter(prefix="/users", tags=["users"])


@router.post("", response_model=LoginResponse)
async def create_or_login_user(request: CreateUserRequest, state: AppState = Depends(get_state)):
    """
    Register a user or log an existing one back in.

    Logging in with the id of an existing user updates that record in
    place (name, avatar, room) instead of creating a duplicate.

    Returns:
        LoginResponse: the stored user and a snapshot of the joined room

    Side Effects:
        - "presence-changed" published to the room
        - any stale typing indicator of this user is cleared
    """
    user = User(
        id=request.id,
        name=request.name,
        room=request.room,
        avatar_src=request.avatar_src,
    )
    state.typing_tracker.stop_typing(user.id)
    room = await state.directory.create_or_login_user(user, request.room)
    return LoginResponse(user=state.directory.get_user(user.id), room=room)


@router.get("/{user_id}", response_model=Optional[User])
async def get_user(user_id: str, state: AppState = Depends(get_state)):
    """Look up a user; returns null for unknown ids."""
    return state.directory.get_user(user_id)


@router.post("/{user_id}/logout", response_model=User)
async def logout(user_id: str, state: AppState = Depends(get_state)):
    """
    Mark a user offline.

    Raises:
        404 if the user is unknown
    """
    user = await state.directory.logout(user_id)
    state.typing_tracker.stop_typing(user_id)
    return user
