from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from sessionkit.dependencies import get_session_context, get_session_manager, limiter, required_session
from sessionkit.services.session_context import SessionContext

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["session"])
metrics_router = APIRouter(tags=["monitoring"])


@router.post("/do_login", response_class=PlainTextResponse)
@limiter.limit("10/minute")
async def do_login(request: Request):
    """Start a session for the user name sent as the request body"""
    context = get_session_context(request)
    try:
        username = (await request.body()).decode("utf-8").strip()
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="User name must be UTF-8")
    if not username:
        raise HTTPException(status_code=400, detail="Missing user name")
    logger.info("Logging in %s", username)
    await context.set_session(username)
    return "ok"


@router.post("/do_logout", response_class=PlainTextResponse)
async def do_logout(
    request: Request,
    session: str = Depends(required_session),
    context: SessionContext = Depends(get_session_context),
):
    """Invalidate the current session"""
    logger.info("Logging out %s", session)
    await context.invalidate()
    return "ok"


@router.post("/do_logout_everywhere", response_class=PlainTextResponse)
async def do_logout_everywhere(
    request: Request,
    session: str = Depends(required_session),
    context: SessionContext = Depends(get_session_context),
):
    """Invalidate the current session and every refresh token issued for it"""
    removed = await get_session_manager(request).revoke_everywhere(session)
    logger.info("Logging out %s everywhere (%d refresh tokens)", session, removed)
    await context.invalidate()
    return "ok"


@router.get("/current_login", response_class=PlainTextResponse)
async def current_login(session: str = Depends(required_session)):
    """Return the user name of the current session"""
    logger.info("Current session: %s", session)
    return session


@metrics_router.get("/metrics")
async def metrics():
    """Prometheus scrape endpoint"""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
