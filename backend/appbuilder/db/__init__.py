"""Database package — shared engine and session factory."""

from appbuilder.db.base import Base, build_session_factory, close_db, get_session_factory, init_db

__all__ = [
    "Base",
    "build_session_factory",
    "close_db",
    "get_session_factory",
    "init_db",
]
