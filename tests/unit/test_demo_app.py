"""Demo app plumbing: Sentry header scrubbing, purge loop, lifespan."""
from __future__ import annotations

import asyncio
import contextlib
import logging

import pytest

from sessionkit.demo.main import _filter_sensitive_data, _purge_loop, _sensitive_headers, create_app
from sessionkit.stores import RefreshTokenRecord
from sessionkit.utils.logging import StructuredFormatter


@pytest.mark.unit
class TestSentryFilter:
    def test_session_headers_are_filtered(self, make_config):
        before_send = _filter_sensitive_data(_sensitive_headers(make_config(transport="header")))
        event = {
            "request": {
                "headers": {
                    "Cookie": "_sessiondata=tok",
                    "Authorization": "tok",
                    "Refresh-Token": "sel:val",
                    "XSRF-Token": "c",
                    "X-XSRF-TOKEN": "c",
                    "User-Agent": "pytest",
                }
            }
        }
        headers = before_send(event, None)["request"]["headers"]
        assert headers["User-Agent"] == "pytest"
        assert all(v == "[FILTERED]" for k, v in headers.items() if k != "User-Agent")

    def test_event_without_request_untouched(self, config):
        event = {"message": "boom"}
        assert _filter_sensitive_data(_sensitive_headers(config))(event, None) == {"message": "boom"}


@pytest.mark.unit
class TestPurgeLoop:
    async def test_purges_expired_records(self, store, clock):
        await store.create(RefreshTokenRecord("old", "h", "alice", clock.now - 1))
        await store.create(RefreshTokenRecord("new", "h", "alice", clock.now + 60))

        task = asyncio.create_task(_purge_loop(store, 0, clock))
        for _ in range(5):
            await asyncio.sleep(0)
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

        assert await store.get("old") is None
        assert await store.get("new") is not None

    async def test_lifespan_starts_and_stops(self, config, store, clock):
        root = logging.getLogger()
        saved = list(root.handlers), root.level
        app = create_app(config, store=store, clock=clock)
        try:
            async with app.router.lifespan_context(app):
                assert app.state.session_manager.refreshable
                assert any(isinstance(h.formatter, StructuredFormatter) for h in root.handlers)
        finally:
            root.handlers[:] = saved[0]
            root.setLevel(saved[1])
            audit = logging.getLogger("audit")
            audit.handlers.clear()
            audit.propagate = True
