"""Demo application: login / logout / current session behind sessionkit.

Run with: uvicorn --factory sessionkit.demo.main:create_app
(requires SESSION_SERVER_SECRET in the environment or .env)
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from contextlib import asynccontextmanager
from typing import Callable

from fastapi import FastAPI
from slowapi.errors import RateLimitExceeded
from starlette.responses import JSONResponse

from sessionkit.config import SessionConfig
from sessionkit.demo.routes import metrics_router
from sessionkit.demo.routes import router as session_router
from sessionkit.dependencies import limiter
from sessionkit.middleware.session_middleware import SessionMiddleware
from sessionkit.services.serializers import StringSerializer
from sessionkit.services.session_manager import SessionManager
from sessionkit.stores.base import RefreshTokenStore
from sessionkit.stores.memory import InMemoryRefreshTokenStore
from sessionkit.utils.logging import setup_logging

logger = logging.getLogger(__name__)


def _rate_limit_handler(request, exc: RateLimitExceeded):
    return JSONResponse(
        {"detail": f"Rate limit exceeded: {exc.detail}"},
        status_code=429,
        headers={"Retry-After": "60"},
    )


def _sensitive_headers(config: SessionConfig) -> set[str]:
    names = {"cookie", "authorization", config.csrf_submit_header}
    for pair in (config.session_header, config.csrf_header, config.refresh_header):
        names.update((pair.send_to_client, pair.get_from_client))
    return {n.lower() for n in names}


def _filter_sensitive_data(sensitive: set[str]):
    """Strip session, csrf and refresh tokens from Sentry events."""

    def before_send(event, hint):
        if "request" in event:
            headers = event["request"].get("headers", {})
            for key in list(headers.keys()):
                if key.lower() in sensitive:
                    headers[key] = "[FILTERED]"
        return event

    return before_send


async def _purge_loop(store: InMemoryRefreshTokenStore, interval: int, clock: Callable[[], float]) -> None:
    while True:
        await asyncio.sleep(interval)
        await store.purge_expired(clock())


def create_app(
    config: SessionConfig | None = None,
    store: RefreshTokenStore | None = None,
    clock: Callable[[], float] = time.time,
) -> FastAPI:
    config = config or SessionConfig()
    if store is None:
        store = InMemoryRefreshTokenStore()
    manager = SessionManager(config, StringSerializer(), store=store, clock=clock)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if config.sentry_dsn:
            import sentry_sdk
            sentry_sdk.init(
                dsn=config.sentry_dsn,
                environment=config.environment,
                traces_sample_rate=0.2,
                send_default_pii=False,
                include_local_variables=False,  # stack frames may hold raw tokens
                before_send=_filter_sensitive_data(_sensitive_headers(config)),
            )

        setup_logging(config.log_level)
        logger.info(
            "Starting sessionkit demo (refreshable=%s, encrypted=%s)",
            manager.refreshable, config.encrypt_data,
            extra={"transport": config.transport},
        )
        purge_task = None
        if isinstance(store, InMemoryRefreshTokenStore):
            purge_task = asyncio.create_task(_purge_loop(store, config.store_purge_interval, clock))

        yield

        if purge_task is not None:
            purge_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await purge_task
        logger.info("sessionkit demo stopped")

    app = FastAPI(
        title="sessionkit demo",
        description="Signed session tokens, CSRF protection and rotating refresh tokens",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.session_manager = manager

    # Rate limiting (slowapi)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_handler)

    app.add_middleware(SessionMiddleware, session_manager=manager)
    app.include_router(session_router)
    app.include_router(metrics_router)

    @app.get("/")
    async def root():
        return {"status": "running", "service": "sessionkit-demo"}

    return app
