"""Utility script to create the initial database schema."""
from __future__ import annotations

from sqlalchemy.exc import SQLAlchemyError

from tokengate.core.config import get_settings

from .session import Database


def create_all() -> None:
    db = Database.from_settings(get_settings()).connect()
    try:
        db.create_all()
    finally:
        db.close()


if __name__ == "__main__":
    try:
        create_all()
        print("Database tables created successfully.")
    except SQLAlchemyError as exc:
        raise SystemExit(f"Failed to create tables: {exc}") from exc
