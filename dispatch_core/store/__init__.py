"""
Storage layer. Business logic only ever sees the EntityStore contract.
"""

from .interface import EntityStore
from .memory_store import InMemoryEntityStore
from .sqlalchemy_store import SQLAlchemyEntityStore

__all__ = ['EntityStore', 'InMemoryEntityStore', 'SQLAlchemyEntityStore']
