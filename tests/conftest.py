"""Pytest shared fixtures."""
import dataclasses
import json
import os
import pathlib
import sys

# Add project root to Python path
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Configure test environment BEFORE any app imports
os.environ.setdefault("DEMO_MODE", "true")

import pytest
import requests

from iam_import.config import get_settings, reset_settings
from iam_import.core import provisioning_service
from scripts import audit


# ─────────────────────────────────────────────────────────────────────────────
# Network Guard Rails
# ─────────────────────────────────────────────────────────────────────────────
class StubResponse:
    def __init__(self, payload=None, status_code: int = 200, headers=None, url: str = ""):
        self._payload = payload
        self.status_code = status_code
        self.headers = headers or {}
        self.url = url
        self.text = json.dumps(payload) if payload is not None else ""

    def json(self):
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(response=self)


@pytest.fixture(autouse=True)
def _block_network(monkeypatch, request):
    """
    Prevent unit tests from reaching a live Keycloak.

    Only the token endpoint answers; every other call fails loudly. Integration
    tests marked with @pytest.mark.integration skip this fixture.
    """
    if request.node.get_closest_marker("integration"):
        return

    def _stub_post(url, *args, **kwargs):
        if url.endswith("/protocol/openid-connect/token"):
            return StubResponse({"access_token": "test-token", "expires_in": 300}, url=url)
        raise RuntimeError(f"Unexpected HTTP POST in unit test: {url}")

    def _stub_get(url, *args, **kwargs):
        raise RuntimeError(f"Unexpected HTTP GET in unit test: {url}")

    def _stub_request(method, url, *args, **kwargs):
        raise RuntimeError(f"Unexpected HTTP {method} in unit test: {url}")

    monkeypatch.setattr(requests, "post", _stub_post)
    monkeypatch.setattr(requests, "get", _stub_get)
    monkeypatch.setattr(requests, "request", _stub_request)


@pytest.fixture(autouse=True)
def _reset_cached_state():
    """Settings and the service client are process-wide caches."""
    yield
    reset_settings()
    provisioning_service.reset_service_client()


@pytest.fixture(autouse=True)
def temp_audit_dir(monkeypatch, tmp_path):
    """Isolated audit directory for each test."""
    audit_dir = tmp_path / "audit"
    audit_file = audit_dir / "admin-events.jsonl"

    monkeypatch.setattr(audit, "AUDIT_LOG_DIR", audit_dir)
    monkeypatch.setattr(audit, "AUDIT_LOG_FILE", audit_file)
    monkeypatch.setenv("AUDIT_LOG_SIGNING_KEY", "test-signing-key-for-audit-trail")

    return audit_dir, audit_file


# ─────────────────────────────────────────────────────────────────────────────
# Flask Test Client
# ─────────────────────────────────────────────────────────────────────────────
@pytest.fixture()
def app_config():
    """Demo settings with cookies usable over plain HTTP."""
    return dataclasses.replace(get_settings(), session_cookie_secure=False)


@pytest.fixture()
def flask_app(monkeypatch, tmp_path, app_config):
    from iam_import.flask_app import create_app

    monkeypatch.setenv("FLASK_SESSION_DIR", str(tmp_path / "sessions"))
    application = create_app(app_config)
    application.config.update(TESTING=True)
    return application


@pytest.fixture()
def client(flask_app):
    with flask_app.test_client() as test_client:
        with flask_app.app_context():
            yield test_client


# ─────────────────────────────────────────────────────────────────────────────
# Authentication Helpers
# ─────────────────────────────────────────────────────────────────────────────
def authenticate_with_roles(client, roles: list[str], username: str = "alice"):
    """Authenticate test client with specific roles."""
    with client.session_transaction() as session:
        session["token"] = {"access_token": "stub", "id_token": "stub"}
        session["userinfo"] = {
            "preferred_username": username,
            "realm_access": {"roles": roles},
        }
        session["id_claims"] = {
            "preferred_username": username,
            "realm_access": {"roles": roles},
        }


def get_csrf_token(client) -> str:
    """Get CSRF token from session."""
    client.get("/health")
    with client.session_transaction() as session:
        return session.get("_csrf_token", "")
