"""
Database layer — Message persistence.

Backends:
  - SQL (PostgreSQL / MySQL / SQLite via SQLAlchemy async)
  - In-memory (dict-based, for development/testing)

Quick start:
  from database import create_store
  store = create_store(DatabaseConfig(store_backend="memory"))
  msg = await store.create("+905551111111", "Hello")
"""
from database.models import Base, MessageRow
from database.session import get_engine, get_session, init_db, close_db
from database.store_base import BaseMessageStore
from database.store import SqlMessageStore
from database.store_memory import InMemoryMessageStore
from database.store_factory import create_store

__all__ = [
    # ORM models
    "Base", "MessageRow",
    # Session management
    "get_engine", "get_session", "init_db", "close_db",
    # Store interface
    "BaseMessageStore",
    # Store backends
    "SqlMessageStore", "InMemoryMessageStore",
    # Factory
    "create_store",
]
