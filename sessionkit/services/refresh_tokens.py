from __future__ import annotations

import hashlib
import logging
import secrets
import time
from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

from sessionkit.errors import RefreshError, RefreshErrorKind, StoreError, StoreErrorKind
from sessionkit.services.serializers import SessionSerializer
from sessionkit.stores.base import RefreshTokenRecord, RefreshTokenStore
from sessionkit.utils.logging import audit_log
from sessionkit.utils.metrics import REFRESH_REDEMPTIONS

logger = logging.getLogger(__name__)

T = TypeVar("T")

SEP = ":"
SELECTOR_BYTES = 16
VALIDATOR_BYTES = 32


def hash_validator(validator: str) -> str:
    return hashlib.sha256(validator.encode("utf-8")).hexdigest()


def _matches(record: RefreshTokenRecord, validator: str) -> bool:
    return secrets.compare_digest(record.validator_hash, hash_validator(validator))


def split_token(raw: str) -> tuple[str, str]:
    """``selector:validator`` -> (selector, validator). RefreshError(UNKNOWN) if malformed."""
    selector, sep, validator = (raw or "").partition(SEP)
    if not sep or not selector or not validator:
        raise RefreshError(RefreshErrorKind.UNKNOWN, "malformed refresh token")
    return selector, validator


@dataclass(frozen=True)
class RedeemedToken(Generic[T]):
    payload: T
    raw_token: str


class RefreshTokenManager(Generic[T]):
    """
    Selector/validator refresh tokens with mandatory rotation.

    - raw token handed to the client: ``selector:validator``
    - store keeps sha256(validator), never the validator itself
    - every successful redeem rotates the validator and bumps the sequence,
      so only the newest raw token of a chain is ever valid
    - a known selector with a wrong validator is a replayed (rotated-out)
      token: the whole chain is revoked
    """

    def __init__(
        self,
        store: RefreshTokenStore,
        serializer: SessionSerializer[T],
        max_age: int,
        clock: Callable[[], float] = time.time,
    ):
        self._store = store
        self._serializer = serializer
        self._max_age = max_age
        self._clock = clock

    async def issue(self, payload: T) -> str:
        selector = secrets.token_urlsafe(SELECTOR_BYTES)
        validator = secrets.token_urlsafe(VALIDATOR_BYTES)
        record = RefreshTokenRecord(
            selector=selector,
            validator_hash=hash_validator(validator),
            payload=self._serializer.serialize(payload),
            expires_at=self._clock() + self._max_age,
            sequence_no=0,
        )
        await self._store.create(record)
        logger.info("Refresh token issued", extra={"selector": selector})
        return f"{selector}{SEP}{validator}"

    async def redeem(self, raw: str) -> RedeemedToken[T]:
        try:
            return await self._redeem(raw)
        except RefreshError as e:
            REFRESH_REDEMPTIONS.labels(outcome=e.kind.value).inc()
            raise

    async def _redeem(self, raw: str) -> RedeemedToken[T]:
        selector, validator = split_token(raw)

        record = await self._store.get(selector)
        if record is None:
            raise RefreshError(RefreshErrorKind.UNKNOWN)

        if not _matches(record, validator):
            await self._store.delete(selector)
            logger.warning(
                "Refresh token replay detected, chain revoked",
                extra={"selector": selector, "sequence_no": record.sequence_no},
            )
            audit_log("refresh_token_replay", selector=selector, sequence_no=record.sequence_no)
            raise RefreshError(RefreshErrorKind.STOLEN)

        if record.is_expired(self._clock()):
            await self._store.delete(selector)
            raise RefreshError(RefreshErrorKind.EXPIRED)

        try:
            payload = self._serializer.deserialize(record.payload)
        except ValueError:
            await self._store.delete(selector)
            logger.error("Corrupt refresh token record removed: selector=%s", selector)
            raise RefreshError(RefreshErrorKind.UNKNOWN, "corrupt record")

        new_validator = secrets.token_urlsafe(VALIDATOR_BYTES)
        rotated = await self._rotate(record, validator, new_validator)

        REFRESH_REDEMPTIONS.labels(outcome="success").inc()
        audit_log("refresh_token_rotated", selector=selector, sequence_no=rotated.sequence_no)
        return RedeemedToken(payload=payload, raw_token=f"{selector}{SEP}{new_validator}")

    async def _rotate(self, record: RefreshTokenRecord, validator: str, new_validator: str) -> RefreshTokenRecord:
        new_hash = hash_validator(new_validator)
        new_expires_at = self._clock() + self._max_age
        try:
            return await self._store.compare_and_rotate(
                record.selector, record.sequence_no, new_hash, new_expires_at
            )
        except StoreError as e:
            if e.kind is not StoreErrorKind.CONFLICT:
                raise
            logger.info("Refresh rotation conflict, retrying once: selector=%s", record.selector)

        # Re-fetch once. If the validator no longer matches, a concurrent redeem
        # of this same token won the rotation: report UNKNOWN, keep its chain.
        current = await self._store.get(record.selector)
        if current is None or not _matches(current, validator):
            raise RefreshError(RefreshErrorKind.UNKNOWN, "concurrent rotation")
        try:
            return await self._store.compare_and_rotate(
                current.selector, current.sequence_no, new_hash, new_expires_at
            )
        except StoreError as e:
            if e.kind is StoreErrorKind.CONFLICT:
                raise RefreshError(RefreshErrorKind.UNKNOWN, "rotation conflict") from e
            raise

    async def revoke(self, raw_or_selector: str) -> None:
        """Delete a chain. Accepts a raw ``selector:validator`` token or a bare selector."""
        selector = (raw_or_selector or "").partition(SEP)[0]
        if not selector:
            return
        await self._store.delete(selector)
        logger.info("Refresh token revoked", extra={"selector": selector})

    async def revoke_all(self, payload: T) -> int:
        """Delete every chain issued for ``payload`` (log out everywhere)."""
        removed = await self._store.delete_for_session(self._serializer.serialize(payload))
        logger.info("Revoked %d refresh tokens for session", removed)
        return removed
