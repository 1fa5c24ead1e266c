"""Refresh token store that fails on demand, for outage and conflict tests."""
from __future__ import annotations

from sessionkit.errors import StoreError, StoreErrorKind
from sessionkit.stores.base import RefreshTokenRecord
from sessionkit.stores.memory import InMemoryRefreshTokenStore


class FaultyRefreshTokenStore(InMemoryRefreshTokenStore):
    """
    In-memory store raising StoreError from selected methods.
    - fail_after: calls allowed per method before failures start (0: fail immediately)
    - fail_kind: UNAVAILABLE simulates an outage, CONFLICT a lost rotation race
    """

    def __init__(
        self,
        fail_after: int = 0,
        fail_kind: StoreErrorKind = StoreErrorKind.UNAVAILABLE,
        fail_message: str = "Simulated store failure",
        fail_on_methods: list[str] | None = None,
    ):
        super().__init__()
        self._fail_after = fail_after
        self._fail_kind = fail_kind
        self._fail_message = fail_message
        self._fail_on_methods = fail_on_methods or ["get", "compare_and_rotate"]
        self._call_counts: dict[str, int] = {}

    def _check_failure(self, method_name: str) -> None:
        if method_name not in self._fail_on_methods:
            return
        count = self._call_counts.get(method_name, 0) + 1
        self._call_counts[method_name] = count
        if count > self._fail_after:
            raise StoreError(self._fail_kind, self._fail_message)

    async def create(self, record: RefreshTokenRecord) -> None:
        self._check_failure("create")
        await super().create(record)

    async def get(self, selector: str) -> RefreshTokenRecord | None:
        self._check_failure("get")
        return await super().get(selector)

    async def compare_and_rotate(self, selector, expected_sequence, new_validator_hash, new_expires_at):
        self._check_failure("compare_and_rotate")
        return await super().compare_and_rotate(selector, expected_sequence, new_validator_hash, new_expires_at)

    async def delete(self, selector: str) -> None:
        self._check_failure("delete")
        await super().delete(selector)

    async def delete_for_session(self, payload: str) -> int:
        self._check_failure("delete_for_session")
        return await super().delete_for_session(payload)

    def call_count(self, method_name: str) -> int:
        return self._call_counts.get(method_name, 0)

    def disable_failures(self) -> None:
        """Store recovered: every method works again."""
        self._call_counts.clear()
        self._fail_on_methods = []
