from sessionkit.stores.base import RefreshTokenRecord, RefreshTokenStore
from sessionkit.stores.faulty import FaultyRefreshTokenStore
from sessionkit.stores.memory import InMemoryRefreshTokenStore

__all__ = [
    "RefreshTokenRecord",
    "RefreshTokenStore",
    "InMemoryRefreshTokenStore",
    "FaultyRefreshTokenStore",
]
