# tchat/api/routes/root.py

from fastapi import APIRouter

from tchat.models.models import EventKind

router = APIRouter()


@router.get("/")
async def root():
    """
    Root endpoint - API information.

    Returns basic info about the API and the event kinds clients can
    subscribe to over the WebSocket.
    """
    return {
        "message": "tchat - real-time room chat",
        "version": "1.0",
        "event_kinds": [kind.value for kind in EventKind],
        "endpoints": {
            "websocket": "/ws?user_id=<id>",
            "rooms": "/rooms",
            "users": "/users",
            "typing": "/typing",
            "health": "/health",
        },
    }
