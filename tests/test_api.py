from __future__ import annotations

import dataclasses

import pytest
from fastapi.testclient import TestClient

from tokengate.app import create_app
from tokengate.core.security import hash_password, verify_password
from tokengate.db.session import Database
from tokengate.domain.errors import GENERIC_TOKEN_MESSAGE
from tokengate.repositories.user_repository import SQLUserRepository
from tokengate.routers.actions import REQUEST_ACCEPTED, UNAVAILABLE

from conftest import RecordingNotifier


@pytest.fixture()
def client(settings, notifier, clock):
    app = create_app(settings, notifier=notifier, clock=clock)
    with TestClient(app) as test_client:
        SQLUserRepository(app.state.database).create_user("ana@example.com", hash_password("senha-antiga-1"), subject_id=42)
        yield test_client


def test_request_response_does_not_reveal_account(client, notifier):
    known = client.post("/auth/actions/request", json={"email": "ana@example.com", "action": "password_reset"})
    unknown = client.post("/auth/actions/request", json={"email": "ninguem@example.com", "action": "password_reset"})

    assert known.status_code == 202
    assert unknown.status_code == 202
    assert known.json() == unknown.json() == {"ok": True, "message": REQUEST_ACCEPTED}
    assert len(notifier.sent) == 1


def test_delivery_failure_is_reported_as_accepted(client, notifier):
    notifier.failures = 10
    resp = client.post("/auth/actions/request", json={"email": "ana@example.com", "action": "password_reset"})
    assert resp.status_code == 202
    assert resp.json()["ok"] is True


def test_full_password_reset_flow(client, notifier):
    client.post("/auth/actions/request", json={"email": "ana@example.com", "action": "password_reset"})
    token = notifier.last_token()

    check = client.get("/auth/actions/check", params={"token": token, "action": "password_reset"})
    assert check.json() == {"valid": True}

    done = client.post("/auth/actions/complete", json={"token": token, "action": "password_reset", "password": "senha-nova-123"})
    assert done.status_code == 200
    assert done.json()["ok"] is True
    user = SQLUserRepository(client.app.state.database).find_by_subject_id(42)
    assert verify_password("senha-nova-123", user.password_hash)

    replay = client.post("/auth/actions/complete", json={"token": token, "action": "password_reset", "password": "senha-nova-456"})
    assert replay.status_code == 400
    assert replay.json()["detail"] == GENERIC_TOKEN_MESSAGE
    assert client.get("/auth/actions/check", params={"token": token, "action": "password_reset"}).json() == {"valid": False}


def test_token_failures_share_generic_message(client, notifier, clock):
    client.post("/auth/actions/request", json={"email": "ana@example.com", "action": "email_verification"})
    token = notifier.last_token()

    missing = client.post("/auth/actions/complete", json={"token": "inexistente", "action": "email_verification"})
    clock.advance(hours=25)
    expired = client.post("/auth/actions/complete", json={"token": token, "action": "email_verification"})

    assert missing.status_code == expired.status_code == 400
    assert missing.json() == expired.json() == {"detail": GENERIC_TOKEN_MESSAGE}


def test_short_password_is_rejected_at_boundary(client, notifier):
    client.post("/auth/actions/request", json={"email": "ana@example.com", "action": "password_reset"})
    token = notifier.last_token()

    resp = client.post("/auth/actions/complete", json={"token": token, "action": "password_reset", "password": "curta"})
    assert resp.status_code == 422
    # token intacto
    assert client.get("/auth/actions/check", params={"token": token, "action": "password_reset"}).json() == {"valid": True}


def test_unknown_action_is_rejected(client):
    resp = client.post("/auth/actions/request", json={"email": "ana@example.com", "action": "delete_account"})
    assert resp.status_code == 422


def test_request_rate_limit(client, settings):
    for _ in range(settings.request_rate_limit):
        assert client.post("/auth/actions/request", json={"email": "ana@example.com", "action": "password_reset"}).status_code == 202
    resp = client.post("/auth/actions/request", json={"email": "ana@example.com", "action": "password_reset"})
    assert resp.status_code == 429


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "database": True, "notifier": True}


class BrokenCredentialUsers(SQLUserRepository):
    def update_credential(self, subject_id: int, secret_hash: str) -> None:
        raise RuntimeError("disk full")


def test_apply_failure_returns_conflict_and_burns_token(client, notifier):
    client.post("/auth/actions/request", json={"email": "ana@example.com", "action": "password_reset"})
    token = notifier.last_token()
    client.app.state.authorizer.users = BrokenCredentialUsers(client.app.state.database)

    resp = client.post("/auth/actions/complete", json={"token": token, "action": "password_reset", "password": "senha-nova-123"})

    assert resp.status_code == 409
    assert "novo link" in resp.json()["detail"]
    assert client.get("/auth/actions/check", params={"token": token, "action": "password_reset"}).json() == {"valid": False}
    replay = client.post("/auth/actions/complete", json={"token": token, "action": "password_reset", "password": "senha-nova-123"})
    assert replay.status_code == 400


@pytest.fixture()
def offline_client(settings, clock, tmp_path):
    # prod nao cria o schema no startup, entao o arquivo inacessivel so falha nas requisicoes
    database = Database(f"sqlite:///{tmp_path / 'nao' / 'existe' / 'x.db'}", timeout=0.5)
    app = create_app(dataclasses.replace(settings, app_env="prod"), database=database, notifier=RecordingNotifier(), clock=clock)
    with TestClient(app) as test_client:
        yield test_client


def test_unavailable_store_returns_503_on_every_endpoint(offline_client):
    known = offline_client.post("/auth/actions/request", json={"email": "ana@example.com", "action": "password_reset"})
    unknown = offline_client.post("/auth/actions/request", json={"email": "ninguem@example.com", "action": "password_reset"})
    complete = offline_client.post("/auth/actions/complete", json={"token": "x", "action": "email_verification"})
    check = offline_client.get("/auth/actions/check", params={"token": "x", "action": "password_reset"})

    assert known.status_code == unknown.status_code == 503
    assert known.json() == unknown.json() == {"detail": UNAVAILABLE}
    assert complete.status_code == 503
    assert complete.json() == {"detail": UNAVAILABLE}
    assert check.status_code == 503


def test_health_reports_unavailable_database(offline_client):
    resp = offline_client.get("/health")
    assert resp.json() == {"ok": False, "database": False, "notifier": True}
