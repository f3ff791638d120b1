"""
Database package: public API.

This makes `from chatspace.db import get_db, Base, engine, etc.` work
and keeps imports consistent across models, services and routes.
"""

from .session import (
    engine,
    AsyncSessionLocal,
    Base,
    get_db,
    init_db,
    close_db,
)

__all__ = [
    "engine",
    "AsyncSessionLocal",
    "Base",
    "get_db",
    "init_db",
    "close_db",
]
