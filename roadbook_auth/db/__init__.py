"""
Database package public API.

``from roadbook_auth.db import Base, AsyncSessionLocal, init_db`` and friends.
"""

from .session import (
    engine,
    AsyncSessionLocal,
    Base,
    make_engine,
    make_session_factory,
    init_db,
    close_db,
)

__all__ = [
    "engine",
    "AsyncSessionLocal",
    "Base",
    "make_engine",
    "make_session_factory",
    "init_db",
    "close_db",
]
