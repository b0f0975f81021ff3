from pathlib import Path
from typing import Tuple

from app.config import Settings
from app.stores.base import OrderStore, SessionStore
from app.stores.memory import MemoryOrderStore, MemorySessionStore
from app.stores.sql import SqlOrderStore, SqlSessionStore


def build_stores(settings: Settings) -> Tuple[SessionStore, OrderStore]:
    """Pick the storage backend configured by STORE_BACKEND."""
    if settings.store_backend == "sql":
        from app.database import build_session_factory

        factory = build_session_factory(settings.database_url)
        return SqlSessionStore(factory), SqlOrderStore(factory)

    if settings.store_backend == "file":
        data_dir = Path(settings.data_dir)
        return (
            MemorySessionStore(data_dir / "conversations.json"),
            MemoryOrderStore(data_dir / "payments.json"),
        )

    return MemorySessionStore(), MemoryOrderStore()


__all__ = [
    "OrderStore",
    "SessionStore",
    "MemoryOrderStore",
    "MemorySessionStore",
    "SqlOrderStore",
    "SqlSessionStore",
    "build_stores",
]
