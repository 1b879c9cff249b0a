# tchat/main.py

from __future__ import annotations

from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tchat.core.config import Settings, settings as default_settings
from tchat.core.errors import install_error_handlers
from tchat.core.logging import setup_logging, get_logger
from tchat.core.state import build_state
from tchat.api.routes import root, health, rooms, users, messages, typing_signals
from tchat.api import websocket as websocket_module

# Configure logging first
setup_logging()
logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Create the FastAPI app with its own Directory, Broker and Typing Tracker."""
    settings = settings or default_settings

    app = FastAPI(title="tchat - Real-time Room Chat")
    app.state.chat = build_state(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials="*" not in settings.CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    install_error_handlers(app)

    # REST routes
    app.include_router(root.router)
    app.include_router(health.router)
    app.include_router(rooms.router)
    app.include_router(users.router)
    app.include_router(messages.router)
    app.include_router(typing_signals.router)

    # WebSocket routes
    app.include_router(websocket_module.router)

    @app.on_event("startup")
    async def startup_event():
        logger.info("🚀 Application starting - rooms: %s", ", ".join(settings.DEFAULT_ROOMS))
        app.state.chat.typing_tracker.start()

    @app.on_event("shutdown")
    async def on_shutdown():
        chat = app.state.chat
        await chat.typing_tracker.stop()
        await chat.connection_manager.close_all()
        chat.broker.clear()
        logger.info("Application stopped")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("tchat.main:app", host="0.0.0.0", port=8080)
