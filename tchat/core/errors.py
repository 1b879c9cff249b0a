# tchat/core/errors.py

from __future__ import annotations

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse


class ChatError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class NotFoundError(ChatError):
    """Unknown user, room or message."""

    status_code = status.HTTP_404_NOT_FOUND


class ForbiddenError(ChatError):
    """Caller is not a known user, or not allowed to touch the entity."""

    status_code = status.HTTP_403_FORBIDDEN


class ConflictError(ChatError):
    status_code = status.HTTP_409_CONFLICT


async def chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


def install_error_handlers(app: FastAPI) -> None:
    """Render every ChatError subclass as ``{"detail": ...}`` with its status code."""
    app.add_exception_handler(ChatError, chat_error_handler)
