# tchat/api/routes/rooms.py

from typing import List

from fastapi import APIRouter, Depends, status

from tchat.core.state import AppState, get_state
from tchat.models.models import CreateRoomRequest, Room, User

router = APIRouter(prefix="/rooms", tags=["rooms"])

# ============================================================================
# ROOM ENDPOINTS
# ============================================================================

@router.get("", response_model=List[str])
async def list_rooms(state: AppState = Depends(get_state)):
    """List the names of all provisioned rooms."""
    return state.directory.list_rooms()


@router.post("", response_model=Room, status_code=status.HTTP_201_CREATED)
async def create_room(request: CreateRoomRequest, state: AppState = Depends(get_state)):
    """
    Provision a room.

    Creating a room that already exists is not an error; the existing
    room is returned unchanged.
    """
    return await state.directory.create_room(request.name)


@router.get("/{room}", response_model=Room)
async def get_room(room: str, state: AppState = Depends(get_state)):
    """
    Get members and message history of a room.

    Returns:
        Room: members plus messages, most recent first

    Raises:
        404 if the room was never provisioned
    """
    return state.directory.get_room(room)


@router.get("/{room}/typing", response_model=List[User])
async def typing_users(room: str, state: AppState = Depends(get_state)):
    """Users currently typing in a room."""
    state.directory.get_room(room)
    return state.typing_tracker.typing_users(room)
