"""Database package: async engine, session dependency and table lifecycle."""

from .session import Base, get_db, init_db, close_db

__all__ = ["Base", "get_db", "init_db", "close_db"]
