from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RefreshTokenRecord:
    selector: str
    validator_hash: str  # sha256 hex of the validator; the validator itself is never stored
    payload: str  # serialized session payload
    expires_at: float
    sequence_no: int = 0

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class RefreshTokenStore(ABC):
    """
    Durable refresh token storage, keyed by selector.

    Implementations wrap their own I/O failures into
    ``StoreError(StoreErrorKind.UNAVAILABLE)``. ``compare_and_rotate`` must be
    atomic per selector: of two callers passing the same expected sequence,
    exactly one succeeds.
    """

    @abstractmethod
    async def create(self, record: RefreshTokenRecord) -> None:
        """Insert a new record. StoreError(CONFLICT) if the selector exists."""

    @abstractmethod
    async def get(self, selector: str) -> RefreshTokenRecord | None: ...

    @abstractmethod
    async def compare_and_rotate(
        self,
        selector: str,
        expected_sequence: int,
        new_validator_hash: str,
        new_expires_at: float,
    ) -> RefreshTokenRecord:
        """Replace validator hash + expiry and bump the sequence, only if the
        stored sequence equals ``expected_sequence``. Returns the rotated record.
        StoreError(CONFLICT) if the record is gone or the sequence moved on."""

    @abstractmethod
    async def delete(self, selector: str) -> None:
        """Remove a record. Missing selectors are ignored."""

    @abstractmethod
    async def delete_for_session(self, payload: str) -> int:
        """Remove every record carrying ``payload``. Returns the number removed."""
