"""Shared test constants and helpers."""
from __future__ import annotations

from httpx import ASGITransport, AsyncClient

SECRET = (
    "c05ll3lesrinf39t7mc5h6un6r0c69lgfno69dsak3vabeqamouq4328cuaekros"
    "401ajdpkh60rrtpd8ro24rbuqmgtnd1ebag6ljnb65i8a55d482ok7o0nch0bfbe"
)
OTHER_SECRET = "z" * 64

SESSION_TTL = 60
REFRESH_TTL = 3600


class FakeClock:
    """Injectable server clock (seconds since epoch)."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def cookie_header(**cookies: str) -> dict[str, str]:
    """Explicit Cookie request header, bypassing the client cookie jar."""
    return {"Cookie": "; ".join(f"{k}={v}" for k, v in cookies.items())}


def make_client(app) -> AsyncClient:
    """httpx AsyncClient talking to ``app`` in-process, with its own cookie jar."""
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
