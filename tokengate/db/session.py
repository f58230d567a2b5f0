"""Engine/session helpers for the SQL backend."""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker, Session

from tokengate.core.config import Settings

Base = declarative_base()


class Database:
    """
    Explicitly constructed database handle.

    The app creates one at startup, calls ``connect()``, hands it to the
    repositories and calls ``close()`` on shutdown.
    """

    def __init__(self, url: str, *, timeout: float = 5.0) -> None:
        url = (url or "").strip()
        if not url:
            raise RuntimeError("DATABASE_URL must be configured to use the SQL backend.")
        self.url = url
        self.timeout = timeout
        self._engine: Optional[Engine] = None
        self._sessionmaker: Optional[sessionmaker] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(settings.database_url, timeout=settings.store_timeout_seconds)

    def _engine_kwargs(self) -> dict:
        kwargs: dict = {"future": True, "pool_pre_ping": True}
        if self.url.startswith("sqlite"):
            # busy timeout do sqlite limita a espera por locks de escrita
            kwargs["connect_args"] = {"timeout": self.timeout, "check_same_thread": False}
            if ":memory:" not in self.url and self.url not in ("sqlite://", "sqlite:///"):
                kwargs["pool_timeout"] = self.timeout
        else:
            kwargs["pool_timeout"] = self.timeout
            kwargs["connect_args"] = {"connect_timeout": max(1, int(self.timeout))}
        return kwargs

    def connect(self) -> "Database":
        if self._engine is None:
            self._engine = create_engine(self.url, **self._engine_kwargs())
            self._sessionmaker = sessionmaker(bind=self._engine, autoflush=False, autocommit=False, future=True)
        return self

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("Database.connect() must be called first.")
        return self._engine

    def create_all(self) -> None:
        from . import models  # noqa: F401  # ensure models are imported for metadata

        Base.metadata.create_all(bind=self.engine)

    def drop_all(self) -> None:
        from . import models  # noqa: F401

        Base.metadata.drop_all(bind=self.engine)

    def health_check(self) -> bool:
        if self._engine is None:
            return False
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            return False
        return True

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
        self._engine = None
        self._sessionmaker = None

    @contextmanager
    def session(self) -> Iterator[Session]:
        if self._sessionmaker is None:
            raise RuntimeError("Database.connect() must be called first.")
        session: Session = self._sessionmaker()
        try:
            yield session
        finally:
            session.close()
