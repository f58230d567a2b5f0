"""Database helpers (declarative base and the Database handle)."""

from .session import Base, Database

__all__ = ["Base", "Database"]
