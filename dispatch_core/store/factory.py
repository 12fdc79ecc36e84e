"""
Entity store factory.
Configures which storage backend the core runs against.
"""

from dispatch_core.core.config import get_settings
from dispatch_core.db.session import get_session_factory
from dispatch_core.store.interface import EntityStore
from dispatch_core.store.memory_store import InMemoryEntityStore
from dispatch_core.store.sqlalchemy_store import SQLAlchemyEntityStore


def build_entity_store() -> EntityStore:
    """
    Build the configured store.

    Backend selection via ENTITY_STORE_BACKEND:
    - sqlalchemy: PostgreSQL through async SQLAlchemy (default)
    - memory: process-local, nothing persisted
    """
    settings = get_settings()

    if settings.ENTITY_STORE_BACKEND == "memory":
        return InMemoryEntityStore()
    return SQLAlchemyEntityStore(get_session_factory(), batch_size=settings.STORE_QUERY_BATCH_SIZE)


# Singleton instance
_store: EntityStore | None = None


def get_entity_store() -> EntityStore:
    """Get entity store singleton."""
    global _store
    if _store is None:
        _store = build_entity_store()
    return _store


def reset_entity_store() -> None:
    global _store
    _store = None
