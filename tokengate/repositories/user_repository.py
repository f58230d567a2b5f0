"""SQL-backed user directory used by the action services."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, Protocol

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError

from tokengate.db.models import User
from tokengate.db.session import Database
from tokengate.domain.errors import StoreUnavailable


class UserNotFoundError(LookupError):
    pass


class UserDirectory(Protocol):
    def find_by_subject_id(self, subject_id: int) -> Optional[User]: ...

    def find_by_email(self, email: str) -> Optional[User]: ...

    def update_credential(self, subject_id: int, secret_hash: str) -> None: ...

    def mark_email_verified(self, subject_id: int) -> None: ...


class SQLUserRepository:
    """CRUD helpers wrapping the SQLAlchemy session for the users table."""

    def __init__(self, db: Database) -> None:
        self.db = db

    def find_by_subject_id(self, subject_id: int) -> Optional[User]:
        try:
            with self.db.session() as session:
                return session.get(User, subject_id)
        except SQLAlchemyError as exc:
            raise StoreUnavailable("User store unavailable.") from exc

    def find_by_email(self, email: str) -> Optional[User]:
        value = (email or "").strip().lower()
        if not value:
            return None
        try:
            with self.db.session() as session:
                return session.execute(select(User).where(func.lower(User.email) == value)).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise StoreUnavailable("User store unavailable.") from exc

    def create_user(self, email: str, password_hash: str = "", *, subject_id: int | None = None) -> User:
        now = datetime.now(timezone.utc)
        with self.db.session() as session:
            user = User(email=(email or "").strip(), password_hash=password_hash, created_at=now, updated_at=now)
            if subject_id is not None:
                user.id = subject_id
            session.add(user)
            session.commit()
            session.refresh(user)
            return user

    def update_credential(self, subject_id: int, secret_hash: str) -> None:
        if not secret_hash:
            raise ValueError("secret_hash must not be empty")
        with self.db.session() as session:
            stmt = (
                update(User)
                .where(User.id == subject_id)
                .values(password_hash=secret_hash, updated_at=datetime.now(timezone.utc))
                .execution_options(synchronize_session=False)
            )
            result = session.execute(stmt)
            updated = result.rowcount
            session.commit()
        if updated != 1:
            raise UserNotFoundError(f"user {subject_id} not found")

    def mark_email_verified(self, subject_id: int) -> None:
        now = datetime.now(timezone.utc)
        with self.db.session() as session:
            stmt = (
                update(User)
                .where(User.id == subject_id)
                .values(email_verified_at=func.coalesce(User.email_verified_at, now), updated_at=now)
                .execution_options(synchronize_session=False)
            )
            result = session.execute(stmt)
            updated = result.rowcount
            session.commit()
        if updated != 1:
            raise UserNotFoundError(f"user {subject_id} not found")
