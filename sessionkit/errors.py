from __future__ import annotations

from enum import Enum


class DecodeErrorKind(str, Enum):
    MALFORMED = "malformed"
    BAD_SIGNATURE = "bad_signature"
    EXPIRED = "expired"


class RefreshErrorKind(str, Enum):
    UNKNOWN = "unknown"
    STOLEN = "stolen"
    EXPIRED = "expired"


class CsrfErrorKind(str, Enum):
    MISSING = "missing"
    MISMATCH = "mismatch"


class StoreErrorKind(str, Enum):
    UNAVAILABLE = "unavailable"
    CONFLICT = "conflict"


class SessionError(Exception):
    """Base class for every failure raised by the session core."""


class _KindedError(SessionError):
    def __init__(self, kind, message: str | None = None):
        self.kind = kind
        super().__init__(message or kind.value)


class DecodeError(_KindedError):
    """Session token could not be decoded.

    ``EXPIRED`` is the only kind that may lead to a refresh attempt;
    ``MALFORMED`` and ``BAD_SIGNATURE`` are treated as tampering.
    """

    kind: DecodeErrorKind

    @property
    def is_tampering(self) -> bool:
        return self.kind is not DecodeErrorKind.EXPIRED


class RefreshError(_KindedError):
    """Refresh token redemption failed."""

    kind: RefreshErrorKind


class CsrfError(_KindedError):
    """CSRF verification failed. Both kinds map to the same HTTP response."""

    kind: CsrfErrorKind


class StoreError(_KindedError):
    """Refresh token store failure."""

    kind: StoreErrorKind
