from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Generic, TypeVar

from sessionkit.config import SessionConfig
from sessionkit.errors import DecodeError, RefreshError, StoreError
from sessionkit.services.csrf_guard import CsrfGuard
from sessionkit.services.refresh_tokens import RefreshTokenManager
from sessionkit.services.serializers import SessionSerializer
from sessionkit.services.token_codec import TokenCodec
from sessionkit.stores.base import RefreshTokenStore
from sessionkit.transport import SlotDirective, TransportDirectives, TransportValues, build_transport
from sessionkit.utils.logging import audit_log
from sessionkit.utils.metrics import SESSION_DECODE_FAILURES, SESSIONS_ISSUED, STORE_ERRORS

logger = logging.getLogger(__name__)

T = TypeVar("T")


class UnauthenticatedReason(str, Enum):
    NO_SESSION = "no_session"
    TAMPERED = "tampered"
    EXPIRED = "expired"
    REFRESH_FAILED = "refresh_failed"
    STORE_UNAVAILABLE = "store_unavailable"
    LOGGED_OUT = "logged_out"


@dataclass(frozen=True)
class Active(Generic[T]):
    payload: T
    directives: TransportDirectives = field(default_factory=TransportDirectives)
    refreshed: bool = False

    is_active = True


@dataclass(frozen=True)
class Unauthenticated:
    reason: UnauthenticatedReason
    directives: TransportDirectives = field(default_factory=TransportDirectives)

    is_active = False
    payload = None


SessionOutcome = Active | Unauthenticated


class SessionManager(Generic[T]):
    """
    Per-request session decisions.

    resolve():
    - session token decodes              -> Active
    - expired/absent + refresh token     -> redeem -> Active (re-set session + refresh)
                                                     or Unauthenticated (clear refresh)
    - malformed / bad signature          -> Unauthenticated, never refreshed
    - refresh store unavailable          -> Unauthenticated (fail closed)

    Sessions are refreshable when a store is given and refresh is enabled,
    one-off otherwise.
    """

    def __init__(
        self,
        config: SessionConfig,
        serializer: SessionSerializer[T],
        store: RefreshTokenStore | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.codec: TokenCodec[T] = TokenCodec(config, serializer, clock)
        self.transport = build_transport(config)
        self.csrf = CsrfGuard(config.csrf_exempt_paths)
        self.refresh: RefreshTokenManager[T] | None = None
        if store is not None and config.refresh_enabled:
            self.refresh = RefreshTokenManager(store, serializer, config.refresh_max_age, clock)

    @property
    def refreshable(self) -> bool:
        return self.refresh is not None

    async def resolve(self, values: TransportValues) -> SessionOutcome:
        expired = False
        if values.session:
            try:
                return Active(self.codec.decode(values.session))
            except DecodeError as e:
                SESSION_DECODE_FAILURES.labels(kind=e.kind.value).inc()
                if e.is_tampering:
                    logger.warning("Session token rejected: %s", e.kind.value)
                    return Unauthenticated(
                        UnauthenticatedReason.TAMPERED,
                        TransportDirectives(session=SlotDirective.clear()),
                    )
                expired = True

        if self.refresh is None or not values.refresh:
            if expired:
                return Unauthenticated(
                    UnauthenticatedReason.EXPIRED,
                    TransportDirectives(session=SlotDirective.clear()),
                )
            return Unauthenticated(UnauthenticatedReason.NO_SESSION)

        return await self._renew(values.refresh, had_session=values.session is not None)

    async def _renew(self, raw_refresh: str, had_session: bool) -> SessionOutcome:
        try:
            redeemed = await self.refresh.redeem(raw_refresh)
        except RefreshError as e:
            logger.info("Session refresh failed: %s", e.kind.value, extra={"outcome": e.kind.value})
            return Unauthenticated(
                UnauthenticatedReason.REFRESH_FAILED,
                TransportDirectives(
                    session=SlotDirective.clear() if had_session else SlotDirective.keep(),
                    refresh=SlotDirective.clear(),
                ),
            )
        except StoreError as e:
            # fail closed, but leave the client's tokens alone: the store may come back
            STORE_ERRORS.labels(kind=e.kind.value, operation="redeem").inc()
            logger.warning("Refresh store error during redeem, treating session as absent: %s", e)
            return Unauthenticated(UnauthenticatedReason.STORE_UNAVAILABLE)

        token = self.codec.encode_for(redeemed.payload, self.config.session_max_age)
        SESSIONS_ISSUED.labels(reason="refresh").inc()
        return Active(
            redeemed.payload,
            TransportDirectives(
                session=SlotDirective.set(token),
                refresh=SlotDirective.set(redeemed.raw_token),
            ),
            refreshed=True,
        )

    async def login(self, payload: T, values: TransportValues) -> TransportDirectives:
        """Start (or replace) a session: session token, refresh token, csrf token."""
        token = self.codec.encode_for(payload, self.config.session_max_age)
        directives = TransportDirectives(session=SlotDirective.set(token))

        if self.refresh is not None:
            if values.refresh:
                await self._revoke_quietly(values.refresh)
            try:
                raw = await self.refresh.issue(payload)
                directives = directives.merge(TransportDirectives(refresh=SlotDirective.set(raw)))
            except StoreError as e:
                STORE_ERRORS.labels(kind=e.kind.value, operation="issue").inc()
                logger.warning("Refresh token not issued, session is one-off: %s", e)
                if values.refresh:
                    directives = directives.merge(TransportDirectives(refresh=SlotDirective.clear()))

        if self.config.csrf_rotate_on_login:
            csrf = self.csrf.new_token()
        else:
            csrf = self.csrf.ensure_token(values.csrf)
        if csrf != values.csrf:
            directives = directives.merge(TransportDirectives(csrf=SlotDirective.set(csrf)))

        SESSIONS_ISSUED.labels(reason="login").inc()
        audit_log("session_login", refreshable=self.refreshable)
        return directives

    async def logout(self, values: TransportValues) -> TransportDirectives:
        """Clear every slot and revoke the presented refresh token."""
        if self.refresh is not None and values.refresh:
            await self._revoke_quietly(values.refresh)
        audit_log("session_logout")
        return TransportDirectives.clear_all()

    async def revoke_everywhere(self, payload: T) -> int:
        """Revoke every refresh chain of ``payload``; 0 when one-off or the store fails."""
        if self.refresh is None:
            return 0
        try:
            removed = await self.refresh.revoke_all(payload)
        except StoreError as e:
            STORE_ERRORS.labels(kind=e.kind.value, operation="revoke_all").inc()
            logger.warning("Refresh token revoke_all failed: %s", e)
            return 0
        audit_log("session_revoke_all", removed=removed)
        return removed

    def touch(self, payload: T) -> TransportDirectives:
        """Re-issue the session token with a fresh expiry (sliding sessions)."""
        SESSIONS_ISSUED.labels(reason="touch").inc()
        token = self.codec.encode_for(payload, self.config.session_max_age)
        return TransportDirectives(session=SlotDirective.set(token))

    def issue_csrf_token(self) -> TransportDirectives:
        return TransportDirectives(csrf=SlotDirective.set(self.csrf.new_token()))

    async def _revoke_quietly(self, raw_refresh: str) -> None:
        try:
            await self.refresh.revoke(raw_refresh)
        except StoreError as e:
            STORE_ERRORS.labels(kind=e.kind.value, operation="revoke").inc()
            logger.warning("Refresh token revoke failed: %s", e)
