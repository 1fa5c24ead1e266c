"""In-memory refresh token store.

Single-process only: records are lost on restart and not shared between
workers. Suitable for development, tests and single-instance deployments.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import replace

from sessionkit.errors import StoreError, StoreErrorKind
from sessionkit.stores.base import RefreshTokenRecord, RefreshTokenStore

logger = logging.getLogger(__name__)


class InMemoryRefreshTokenStore(RefreshTokenStore):
    def __init__(self) -> None:
        self._records: dict[str, RefreshTokenRecord] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._records)

    async def create(self, record: RefreshTokenRecord) -> None:
        async with self._lock:
            if record.selector in self._records:
                raise StoreError(StoreErrorKind.CONFLICT, f"selector already exists: {record.selector}")
            self._records[record.selector] = record

    async def get(self, selector: str) -> RefreshTokenRecord | None:
        return self._records.get(selector)

    async def compare_and_rotate(
        self,
        selector: str,
        expected_sequence: int,
        new_validator_hash: str,
        new_expires_at: float,
    ) -> RefreshTokenRecord:
        async with self._lock:
            current = self._records.get(selector)
            if current is None:
                raise StoreError(StoreErrorKind.CONFLICT, f"record gone: {selector}")
            if current.sequence_no != expected_sequence:
                raise StoreError(
                    StoreErrorKind.CONFLICT,
                    f"sequence moved: {selector} expected={expected_sequence} actual={current.sequence_no}",
                )
            rotated = replace(
                current,
                validator_hash=new_validator_hash,
                expires_at=new_expires_at,
                sequence_no=current.sequence_no + 1,
            )
            self._records[selector] = rotated
            return rotated

    async def delete(self, selector: str) -> None:
        async with self._lock:
            self._records.pop(selector, None)

    async def delete_for_session(self, payload: str) -> int:
        async with self._lock:
            selectors = [s for s, r in self._records.items() if r.payload == payload]
            for s in selectors:
                del self._records[s]
            return len(selectors)

    async def purge_expired(self, now: float) -> int:
        """Drop expired records. Returns the number removed."""
        async with self._lock:
            expired = [s for s, r in self._records.items() if r.is_expired(now)]
            for s in expired:
                del self._records[s]
        if expired:
            logger.info("Purged %d expired refresh tokens", len(expired))
        return len(expired)
