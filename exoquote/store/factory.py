from __future__ import annotations

from exoquote.config import Settings
from exoquote.store.base import Store


def build_store(settings: Settings) -> Store:
    """PostgreSQL when USE_DATABASE is set, the in-memory store otherwise."""
    if settings.use_database:
        from exoquote.store.sql import SqlStore

        return SqlStore.from_url(settings.database_url)

    from exoquote.store.memory import MemoryStore

    return MemoryStore()
