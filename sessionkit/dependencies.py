from typing import Any

from fastapi import Depends, HTTPException, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from sessionkit.services.session_context import SessionContext

limiter = Limiter(key_func=get_remote_address)


def get_session_context(request: Request) -> SessionContext:
    """SessionContext installed by SessionMiddleware."""
    context = getattr(request.state, "session", None)
    if context is None:
        raise RuntimeError("SessionMiddleware is not installed")
    return context


async def optional_session(context: SessionContext = Depends(get_session_context)) -> Any | None:
    """Current session payload, or None."""
    return await context.get()


async def required_session(context: SessionContext = Depends(get_session_context)) -> Any:
    """Current session payload. 401 when there is no valid session."""
    outcome = await context.load()
    if not outcome.is_active:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return outcome.payload


def get_session_manager(request: Request):
    """Get SessionManager from app state"""
    return request.app.state.session_manager
