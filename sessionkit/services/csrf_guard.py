from __future__ import annotations

import re
import secrets

from sessionkit.errors import CsrfError, CsrfErrorKind

UNSAFE_METHODS = frozenset({"POST", "PUT", "DELETE", "PATCH"})
TOKEN_BYTES = 32


class CsrfGuard:
    """
    Double-submit CSRF protection.
    - token: independent random value (never derived from the session token)
    - stored: the transport's csrf slot (cookie or header pair)
    - submitted: the verification header echoed by the client
    - only state-changing methods are checked
    """

    def __init__(self, exempt_paths: list[str] | None = None):
        self._exempt = [re.compile(p) for p in exempt_paths or []]

    @staticmethod
    def new_token() -> str:
        return secrets.token_urlsafe(TOKEN_BYTES)

    def ensure_token(self, current: str | None) -> str:
        """Existing token, or a fresh one when none is present."""
        return current if current else self.new_token()

    def requires_check(self, method: str, path: str = "") -> bool:
        if method.upper() not in UNSAFE_METHODS:
            return False
        return not any(p.match(path) for p in self._exempt)

    def check(self, submitted: str | None, stored: str | None) -> None:
        if not submitted or not stored:
            raise CsrfError(CsrfErrorKind.MISSING)
        if not secrets.compare_digest(submitted.encode("utf-8"), stored.encode("utf-8")):
            raise CsrfError(CsrfErrorKind.MISMATCH)

    def verify(self, submitted: str | None, stored: str | None) -> bool:
        try:
            self.check(submitted, stored)
        except CsrfError:
            return False
        return True
