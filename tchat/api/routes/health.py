# tchat/api/routes/health.py

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from tchat.core.state import AppState, get_state

router = APIRouter()

@router.get("/health")
async def health(state: AppState = Depends(get_state)):
    """
    Health check endpoint.

    Returns current system status, connection counts, room counts and
    whether the typing sweep is alive.

    Returns:
        dict: Status, connections, open channels, broker subscriptions,
              rooms, typing sweep flag and uptime
    """
    uptime = (datetime.now(timezone.utc) - state.app_start_time).total_seconds()
    return {
        "status": "healthy",
        "connections": len(state.connection_manager.connections),
        "channels": state.connection_manager.channel_count(),
        "subscriptions": state.broker.subscriber_count(),
        "rooms": len(state.directory.list_rooms()),
        "typing_sweep_running": state.typing_tracker.running,
        "uptime_seconds": round(uptime, 1),
    }
