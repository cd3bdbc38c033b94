"""
tests/test_api_routes.py -- Integration tests for the /auth endpoints.

These tests exercise the full stack: FastAPI routing -> request validation
-> AuthService -> SQLStore -> response models and the error envelope.

Coverage:
  - Register: 200 body, 409 on duplicate, 400 on each password policy rule,
    empty/missing/unknown fields
  - Login: 200 with three-segment token, 401 for wrong password and unknown
    user with identical bodies, 400 on empty fields
  - /auth/me with and without a bearer token
  - Error envelope shape on every failure status, including 503 when the
    store is down
  - Cache-Control: no-store on credential responses
  - Audit log lines never contain the password; failed ones carry the
    error message, access lines carry the user-agent

Fixtures used (from conftest.py):
  - api_client: TestClient against a fresh in-memory store per test
"""

from __future__ import annotations

import json
import logging

import pytest
from fastapi.testclient import TestClient

from core.errors import InfrastructureError

PASSWORD = "Secret123!"
ERROR_FIELDS = {"statusCode", "message", "error", "timestamp", "path"}


def _register(client: TestClient, username: str = "alice", password: str = PASSWORD):
    return client.post("/auth/register", json={"username": username, "password": password})


def _login(client: TestClient, username: str = "alice", password: str = PASSWORD):
    return client.post("/auth/login", json={"username": username, "password": password})


class TestRegister:
    def test_register_success(self, api_client: TestClient) -> None:
        resp = _register(api_client)
        assert resp.status_code == 200
        assert resp.json() == {"message": "User registered successfully", "username": "alice"}
        assert resp.headers["Cache-Control"] == "no-store"

    def test_duplicate_returns_409(self, api_client: TestClient) -> None:
        assert _register(api_client).status_code == 200
        resp = _register(api_client, password="Another456?")
        assert resp.status_code == 409
        body = resp.json()
        assert set(body) == ERROR_FIELDS
        assert body["statusCode"] == 409
        assert body["message"] == "Username already exists"
        assert body["error"] == "Conflict"
        assert body["path"] == "/auth/register"

    @pytest.mark.parametrize(
        "password",
        [
            "Short1!",  # too short
            "test1234!@#",  # no uppercase
            "TEST1234!@#",  # no lowercase
            "TestPassword!@#",  # no digit
            "Test12345",  # no special character
            "Aa1!" + "x" * 69,  # longer than bcrypt's 72 bytes
            "Aa1!" + "ä" * 68,  # 72 characters but 140 bytes
        ],
    )
    def test_password_policy(self, api_client: TestClient, password: str) -> None:
        resp = _register(api_client, username="policy_user", password=password)
        assert resp.status_code == 400
        assert resp.json()["statusCode"] == 400
        assert resp.json()["error"] == "Bad Request"

    @pytest.mark.parametrize(
        "body",
        [
            {"username": "", "password": PASSWORD},
            {"username": "   ", "password": PASSWORD},
            {"password": PASSWORD},
            {"username": "carol"},
            {"username": "carol", "password": PASSWORD, "role": "admin"},
        ],
    )
    def test_invalid_bodies(self, api_client: TestClient, body: dict) -> None:
        resp = api_client.post("/auth/register", json=body)
        assert resp.status_code == 400
        assert set(resp.json()) == ERROR_FIELDS

    def test_password_limit_counts_bytes(self, api_client: TestClient) -> None:
        too_long = "Aa1!" + "ä" * 68
        resp = _register(api_client, username="umlaut", password=too_long)
        assert resp.status_code == 400
        assert "72 bytes" in resp.json()["message"]
        # Nothing was stored, so a password sharing the first 72 bytes cannot log in.
        assert _login(api_client, username="umlaut", password=too_long[:-1] + "ö").status_code == 401

    def test_multibyte_password_at_byte_limit_accepted(self, api_client: TestClient) -> None:
        password = "Aa1!" + "ä" * 34  # exactly 72 bytes
        assert _register(api_client, username="umlaut", password=password).status_code == 200
        assert _login(api_client, username="umlaut", password=password).status_code == 200
        assert _login(api_client, username="umlaut", password=password[:-1] + "ö").status_code == 401

    def test_validation_message_names_the_rule(self, api_client: TestClient) -> None:
        resp = _register(api_client, password="Test12345")
        assert "special character" in resp.json()["message"]


class TestLogin:
    def test_login_success(self, api_client: TestClient) -> None:
        _register(api_client)
        resp = _login(api_client)
        assert resp.status_code == 200
        body = resp.json()
        assert body["username"] == "alice"
        assert len(body["token"].split(".")) == 3
        assert resp.headers["Cache-Control"] == "no-store"

    def test_wrong_password_and_unknown_user_look_the_same(self, api_client: TestClient) -> None:
        _register(api_client)
        wrong = _login(api_client, password="wrong")
        unknown = _login(api_client, username="bob", password="x")
        assert wrong.status_code == unknown.status_code == 401

        wrong_body, unknown_body = wrong.json(), unknown.json()
        wrong_body.pop("timestamp")
        unknown_body.pop("timestamp")
        assert wrong_body == unknown_body == {
            "statusCode": 401,
            "message": "Invalid credentials",
            "error": "Unauthorized",
            "path": "/auth/login",
        }

    def test_login_does_not_apply_registration_policy(self, api_client: TestClient) -> None:
        """A short password at login is a credential mismatch, not a validation error."""
        assert _login(api_client, password="x").status_code == 401

    @pytest.mark.parametrize(
        "body",
        [
            {"username": "", "password": PASSWORD},
            {"username": "alice", "password": ""},
            {"password": PASSWORD},
            {"username": "alice"},
        ],
    )
    def test_invalid_bodies(self, api_client: TestClient, body: dict) -> None:
        resp = api_client.post("/auth/login", json=body)
        assert resp.status_code == 400
        assert resp.json()["statusCode"] == 400


class TestScenario:
    def test_alice_and_bob(self, api_client: TestClient) -> None:
        """Register, re-register, good login, bad password, unknown user."""
        first = _register(api_client, "alice", "Secret123!")
        assert first.json() == {"message": "User registered successfully", "username": "alice"}

        assert _register(api_client, "alice", "Secret123!").status_code == 409

        token = _login(api_client, "alice", "Secret123!").json()["token"]
        assert token.count(".") == 2

        assert _login(api_client, "alice", "wrong").status_code == 401
        assert _login(api_client, "bob", "x").status_code == 401


class TestMe:
    def test_me_with_token(self, api_client: TestClient) -> None:
        _register(api_client)
        token = _login(api_client).json()["token"]
        resp = api_client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 200
        assert resp.json() == {"username": "alice"}

    def test_me_without_token(self, api_client: TestClient) -> None:
        resp = api_client.get("/auth/me")
        assert resp.status_code == 401
        assert set(resp.json()) == ERROR_FIELDS

    def test_me_with_garbage_token(self, api_client: TestClient) -> None:
        resp = api_client.get("/auth/me", headers={"Authorization": "Bearer not.a.token"})
        assert resp.status_code == 401


class TestErrorEnvelope:
    def test_store_outage_returns_503(self, api_client: TestClient, monkeypatch) -> None:
        store = api_client.app.state.store

        def down(*args, **kwargs):
            raise InfrastructureError()

        monkeypatch.setattr(store, "get", down)
        resp = _login(api_client)
        assert resp.status_code == 503
        body = resp.json()
        assert set(body) == ERROR_FIELDS
        assert body["message"] == "Service unavailable"
        assert "Traceback" not in resp.text

    @pytest.mark.parametrize("method", ["exists", "set_if_absent"])
    def test_store_outage_during_register_returns_503(
        self, api_client: TestClient, monkeypatch, method: str
    ) -> None:
        store = api_client.app.state.store

        def down(*args, **kwargs):
            raise InfrastructureError()

        monkeypatch.setattr(store, method, down)
        resp = _register(api_client, username="frank")
        assert resp.status_code == 503
        body = resp.json()
        assert set(body) == ERROR_FIELDS
        assert body["error"] == "Service Unavailable"
        assert body["path"] == "/auth/register"

    @pytest.mark.parametrize(
        "record",
        [
            {"username": "grace", "passwordHash": None},
            {"username": 5, "passwordHash": "$2b$04$abcdefghijklmnopqrstuuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"},
        ],
    )
    def test_corrupt_record_returns_503(self, api_client: TestClient, record: dict) -> None:
        api_client.app.state.store.set("user:grace", json.dumps(record))
        resp = _login(api_client, username="grace")
        assert resp.status_code == 503
        assert resp.json()["message"] == "Service unavailable"

    def test_unknown_route_uses_envelope(self, api_client: TestClient) -> None:
        resp = api_client.get("/nope")
        assert resp.status_code == 404
        assert set(resp.json()) == ERROR_FIELDS


class TestAuditLogging:
    def test_login_failure_is_audited_without_password(self, api_client: TestClient, caplog) -> None:
        caplog.set_level(logging.INFO, logger="credvault.audit")
        _login(api_client, username="mallory", password="Hunter2-Secret!")
        audit = [r.getMessage() for r in caplog.records if r.name == "credvault.audit"]
        assert any("LOGIN FAILED" in line and "Username: mallory" in line for line in audit)
        assert "Hunter2-Secret!" not in caplog.text

    def test_register_success_is_audited(self, api_client: TestClient, caplog) -> None:
        caplog.set_level(logging.INFO, logger="credvault.audit")
        _register(api_client, username="dave")
        audit = [r.getMessage() for r in caplog.records if r.name == "credvault.audit"]
        assert any("REGISTER SUCCESS" in line and "Username: dave" in line for line in audit)

    def test_forwarded_ip_is_logged(self, api_client: TestClient, caplog) -> None:
        caplog.set_level(logging.INFO, logger="credvault.audit")
        api_client.post(
            "/auth/login",
            json={"username": "erin", "password": "x"},
            headers={"X-Forwarded-For": "203.0.113.7, 10.0.0.1"},
        )
        assert "IP: 203.0.113.7" in caplog.text

    def test_failed_audit_line_carries_error_message(self, api_client: TestClient, caplog) -> None:
        caplog.set_level(logging.INFO, logger="credvault.audit")
        _register(api_client, username="heidi")
        _register(api_client, username="heidi")
        audit = [r.getMessage() for r in caplog.records if r.name == "credvault.audit"]
        assert audit[0].endswith("Status: 200")
        assert audit[1].endswith("Status: 409 - Error: Username already exists")

    def test_access_line_includes_user_agent(self, api_client: TestClient, caplog) -> None:
        caplog.set_level(logging.INFO, logger="credvault.api")
        _login(api_client, username="ivan")
        api_client.get("/health", headers={"User-Agent": "uptime-check/1.0"})
        access = [r.getMessage() for r in caplog.records if r.name == "credvault.api"]
        assert any(line.startswith("POST /auth/login 401") and line.endswith("testclient") for line in access)
        assert any(line.startswith("GET /health 200") and line.endswith("uptime-check/1.0") for line in access)

    def test_debug_body_line_redacts_password(self, api_client: TestClient, caplog) -> None:
        caplog.set_level(logging.DEBUG, logger="credvault.api")
        _login(api_client, username="judy", password="Hunter2-Secret!")
        debug = [r.getMessage() for r in caplog.records if r.name == "credvault.api" and r.levelno == logging.DEBUG]
        assert any('"username": "judy"' in line and '"password": "[REDACTED]"' in line for line in debug)
        assert "Hunter2-Secret!" not in caplog.text
