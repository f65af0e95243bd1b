"""Tests for Keycloak user provisioning over a fake admin client."""
from types import SimpleNamespace

import pytest
import requests

from iam_import.core.keycloak import (
    KeycloakAPIError,
    KeycloakClient,
    RoleNotFoundError,
    UserAlreadyExistsError,
    UserNotFoundError,
    UserService,
)
from iam_import.core.keycloak.users import split_display_name


class FakeAdminClient:
    """Records admin calls; GET answers come from ``users`` and ``roles``."""

    def __init__(self, users=None, roles=None, location="http://kc/admin/realms/demo/users/new-id", post_error=None):
        self.users = users or []
        self.roles = roles if roles is not None else {"user": "role-user", "admin": "role-admin"}
        self.location = location
        self.post_error = post_error
        self.calls = []

    def get(self, path, params=None, **kwargs):
        self.calls.append(("GET", path, params))
        if path.endswith("/users"):
            return SimpleNamespace(json=lambda: [u for u in self.users if u["email"].lower() == params["email"].lower()])
        role = path.rsplit("/", 1)[-1]
        if role not in self.roles:
            raise KeycloakAPIError(404, "Could not find role", path)
        return SimpleNamespace(json=lambda: {"id": self.roles[role], "name": role})

    def post(self, path, json=None, data=None, **kwargs):
        self.calls.append(("POST", path, json))
        if path.endswith("/users") and self.post_error:
            raise self.post_error
        return SimpleNamespace(headers={"Location": self.location} if path.endswith("/users") else {})

    def put(self, path, json=None, **kwargs):
        self.calls.append(("PUT", path, json))
        return SimpleNamespace(headers={})


def _paths(client, method):
    return [call[1] for call in client.calls if call[0] == method]


@pytest.mark.parametrize("name,expected", [
    ("Alice", ("Alice", "")),
    ("Alice Johnson", ("Alice", "Johnson")),
    ("Mary Ann  Smith", ("Mary", "Ann  Smith")),
    ("   ", ("", "")),
])
def test_split_display_name(name, expected):
    assert split_display_name(name) == expected


def test_create_account_full_flow():
    client = FakeAdminClient()
    service = UserService(client)

    user_id = service.create_account("demo", "alice@example.com", "Alice Johnson", "admin", "premium", "Temp123!")

    assert user_id == "new-id"
    created = next(call[2] for call in client.calls if call[0] == "POST" and call[1].endswith("/users"))
    assert created["username"] == "alice@example.com"
    assert created["firstName"] == "Alice"
    assert created["lastName"] == "Johnson"
    assert created["attributes"]["entitlement"] == ["premium"]
    assert created["requiredActions"] == ["UPDATE_PASSWORD"]
    assert "/admin/realms/demo/users/new-id/reset-password" in _paths(client, "PUT")
    assert ("POST", "/admin/realms/demo/users/new-id/role-mappings/realm",
            [{"id": "role-admin", "name": "admin"}]) in client.calls
    assert not any("execute-actions-email" in path for path in _paths(client, "PUT"))


def test_create_account_without_entitlement_has_no_attribute():
    client = FakeAdminClient()
    UserService(client).create_account("demo", "bob@example.com", "Bob", "user", None, "pw")
    created = next(call[2] for call in client.calls if call[0] == "POST" and call[1].endswith("/users"))
    assert created["attributes"] == {}


def test_create_account_sends_invite_when_requested():
    client = FakeAdminClient()
    UserService(client).create_account("demo", "bob@example.com", "Bob", "user", None, "pw", send_invite=True)
    assert ("PUT", "/admin/realms/demo/users/new-id/execute-actions-email", ["UPDATE_PASSWORD"]) in client.calls


def test_existing_user_is_rejected_before_create():
    client = FakeAdminClient(users=[{"id": "u1", "email": "Alice@Example.com"}])
    with pytest.raises(UserAlreadyExistsError, match="already exists"):
        UserService(client).create_account("demo", "alice@example.com", "Alice", "user", None, "pw")
    assert _paths(client, "POST") == []


def test_conflict_from_keycloak_maps_to_already_exists():
    client = FakeAdminClient(post_error=KeycloakAPIError(409, "User exists with same username", "/users"))
    with pytest.raises(UserAlreadyExistsError):
        UserService(client).create_account("demo", "alice@example.com", "Alice", "user", None, "pw")


def test_unknown_role():
    client = FakeAdminClient(roles={})
    with pytest.raises(RoleNotFoundError):
        UserService(client).create_account("demo", "alice@example.com", "Alice", "ghost", None, "pw")


def test_missing_location_falls_back_to_lookup():
    client = FakeAdminClient(location="")
    client_get = client.get
    created = []

    def get(path, params=None, **kwargs):
        if path.endswith("/users") and created:
            client.calls.append(("GET", path, params))
            return SimpleNamespace(json=lambda: [{"id": "looked-up", "email": params["email"]}])
        created.append(True)
        return client_get(path, params, **kwargs)

    client.get = get
    assert UserService(client).create_account("demo", "a@example.com", "A", "user", None, "pw") == "looked-up"


def test_missing_location_and_lookup_fails():
    client = FakeAdminClient(location="")
    with pytest.raises(UserNotFoundError):
        UserService(client).create_account("demo", "a@example.com", "A", "user", None, "pw")


class TestKeycloakClient:
    def test_requests_carry_bearer_token(self, monkeypatch):
        seen = {}

        def fake_request(method, url, headers=None, timeout=None, **kwargs):
            seen.update(method=method, url=url, headers=headers, timeout=timeout)
            return SimpleNamespace(status_code=200, text="", url=url)

        monkeypatch.setattr(requests, "request", fake_request)
        client = KeycloakClient("http://kc/")
        client.authenticate_service_account("demo", "automation-cli", "secret")
        client.get("/admin/realms/demo/users")

        assert seen["url"] == "http://kc/admin/realms/demo/users"
        assert seen["headers"]["Authorization"] == "Bearer test-token"
        assert seen["timeout"] == client.timeout

    def test_http_error_raises(self, monkeypatch):
        monkeypatch.setattr(
            requests,
            "request",
            lambda method, url, **kwargs: SimpleNamespace(status_code=500, text="boom", url=url),
        )
        client = KeycloakClient("http://kc")
        client.authenticate_service_account("demo", "automation-cli", "secret")
        with pytest.raises(KeycloakAPIError) as exc_info:
            client.post("/admin/realms/demo/users", json={})
        assert exc_info.value.status_code == 500

    def test_unauthenticated_client_refuses_requests(self):
        with pytest.raises(KeycloakAPIError):
            KeycloakClient("http://kc").get("/admin/realms/demo/users")

    def test_token_failure(self, monkeypatch):
        monkeypatch.setattr(
            requests,
            "post",
            lambda url, **kwargs: SimpleNamespace(status_code=401, text="unauthorized_client"),
        )
        with pytest.raises(KeycloakAPIError):
            KeycloakClient("http://kc").authenticate_service_account("demo", "automation-cli", "wrong")
