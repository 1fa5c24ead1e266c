from __future__ import annotations

from typing import Generic, TypeVar

from sessionkit.services.session_manager import (
    Active,
    SessionManager,
    SessionOutcome,
    Unauthenticated,
    UnauthenticatedReason,
)
from sessionkit.transport import SlotAction, TransportDirectives, TransportValues

T = TypeVar("T")


class SessionContext(Generic[T]):
    """
    Session state of one request.

    The session is resolved lazily (first ``load()``) and only once, so public
    routes never redeem refresh tokens. Every operation accumulates transport
    directives that the middleware applies to the response.
    """

    def __init__(self, manager: SessionManager[T], values: TransportValues):
        self._manager = manager
        self.values = values
        self._outcome: SessionOutcome | None = None
        self._directives = TransportDirectives()

    @property
    def directives(self) -> TransportDirectives:
        return self._directives

    @property
    def csrf_token(self) -> str | None:
        """CSRF token the client will hold after this response."""
        pending = self._directives.csrf
        if pending.action is SlotAction.SET:
            return pending.value
        if pending.action is SlotAction.CLEAR:
            return None
        return self.values.csrf

    async def load(self) -> SessionOutcome:
        if self._outcome is None:
            self._outcome = await self._manager.resolve(self.values)
            self._merge(self._outcome.directives)
        return self._outcome

    async def get(self) -> T | None:
        outcome = await self.load()
        return outcome.payload if outcome.is_active else None

    async def set_session(self, payload: T) -> None:
        self._merge(await self._manager.login(payload, self._pending_values()))
        self._outcome = Active(payload)

    async def invalidate(self) -> None:
        self._merge(await self._manager.logout(self._pending_values()))
        self._outcome = Unauthenticated(UnauthenticatedReason.LOGGED_OUT)

    async def touch(self) -> bool:
        """Extend an active session. Returns False when there is none."""
        outcome = await self.load()
        if not outcome.is_active:
            return False
        self._merge(self._manager.touch(outcome.payload))
        return True

    def ensure_csrf_token(self) -> str:
        if self.csrf_token is None:
            self._merge(self._manager.issue_csrf_token())
        return self.csrf_token

    def new_csrf_token(self) -> str:
        self._merge(self._manager.issue_csrf_token())
        return self.csrf_token

    def _merge(self, directives: TransportDirectives) -> None:
        self._directives = self._directives.merge(directives)

    def _pending_values(self) -> TransportValues:
        return TransportValues(
            session=self.values.session,
            csrf=self.csrf_token,
            refresh=self.values.refresh,
        )
