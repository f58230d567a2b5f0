from __future__ import annotations

from datetime import datetime, timedelta, timezone
import re
import sys
import threading
from pathlib import Path

import pytest

# Garante que o pacote tokengate seja importável durante os testes locais
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from tokengate.core import config as core_config  # noqa: E402
from tokengate.core.mailer import Message  # noqa: E402
from tokengate.db.session import Database  # noqa: E402
from tokengate.domain.errors import DeliveryFailed  # noqa: E402
from tokengate.repositories.token_store import TokenStore  # noqa: E402
from tokengate.repositories.user_repository import SQLUserRepository  # noqa: E402
from tokengate.services.action_service import ActionAuthorizer  # noqa: E402

TOKEN_RE = re.compile(r"token=([A-Za-z0-9_\-]+)")


class FrozenClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
        self._lock = threading.Lock()

    def __call__(self) -> datetime:
        with self._lock:
            return self.current

    def advance(self, **kwargs) -> None:
        with self._lock:
            self.current = self.current + timedelta(**kwargs)


class RecordingNotifier:
    """Keeps delivered messages in memory; ``failures`` makes the next N deliveries fail."""

    def __init__(self, failures: int = 0) -> None:
        self.sent: list[tuple[str, Message]] = []
        self.failures = failures
        self.attempts = 0
        self.connected = False
        self._lock = threading.Lock()

    def connect(self) -> None:
        self.connected = True

    def health_check(self) -> bool:
        return self.connected

    def close(self) -> None:
        self.connected = False

    def deliver(self, to_email: str, message: Message) -> None:
        with self._lock:
            self.attempts += 1
            if self.failures > 0:
                self.failures -= 1
                raise DeliveryFailed("smtp down")
            self.sent.append((to_email, message))

    def last_token(self) -> str:
        assert self.sent, "nenhum e-mail enviado"
        match = TOKEN_RE.search(self.sent[-1][1].text_body or "")
        assert match, "link sem token"
        return match.group(1)


@pytest.fixture()
def settings(tmp_path, monkeypatch):
    """Configura um SQLite temporário e reseta o cache de settings."""
    db_file = tmp_path / "test.db"
    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_file}")
    monkeypatch.setenv("PUBLIC_BASE_URL", "https://contas.example.com/")
    monkeypatch.setenv("STORE_TIMEOUT_SECONDS", "30")
    monkeypatch.setenv("PASSWORD_RESET_TTL", "3600")
    monkeypatch.setenv("EMAIL_VERIFICATION_TTL_SECONDS", "86400")
    monkeypatch.setenv("DELIVERY_ATTEMPTS", "2")
    for name in ("SMTP_HOST", "SMTP_USER", "SMTP_PASSWORD", "SMTP_FROM"):
        monkeypatch.delenv(name, raising=False)
    core_config.get_settings.cache_clear()
    yield core_config.get_settings()
    core_config.get_settings.cache_clear()


@pytest.fixture()
def db(settings):
    database = Database.from_settings(settings).connect()
    database.create_all()
    yield database
    try:
        database.drop_all()
    finally:
        database.close()


@pytest.fixture()
def clock():
    return FrozenClock()


@pytest.fixture()
def store(db, settings, clock):
    return TokenStore.from_settings(db, settings, clock=clock)


@pytest.fixture()
def users(db):
    return SQLUserRepository(db)


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture()
def authorizer(settings, store, users, notifier):
    return ActionAuthorizer.from_settings(settings, store, users, notifier)
