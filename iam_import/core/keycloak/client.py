"""Keycloak Admin REST transport.

One authenticated client per process is enough: the bulk import only ever
acts as the service account configured in settings.
"""
from __future__ import annotations
import os
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from .exceptions import KeycloakAPIError

REQUEST_TIMEOUT = 5

# Keycloak's default access token lifespan is 60s; renew a little early.
TOKEN_LIFETIME = 60
TOKEN_RENEW_MARGIN = 10


@dataclass
class _ServiceCredentials:
    auth_realm: str
    client_id: str
    client_secret: str


class KeycloakClient:
    """Admin API client authenticated with client credentials.

    Usage:
        client = KeycloakClient("http://keycloak:8080")
        client.authenticate_service_account("demo", "automation-cli", "secret")
        users = client.get("/admin/realms/demo/users", params={"email": "a@example.com"}).json()
    """

    def __init__(self, base_url: Optional[str] = None, timeout: float = REQUEST_TIMEOUT):
        self.base_url = (base_url or os.environ.get("KEYCLOAK_URL", "http://keycloak:8080")).rstrip("/")
        self.timeout = timeout
        self._credentials: Optional[_ServiceCredentials] = None
        self._token: Optional[str] = None
        self._renew_at = 0.0

    def authenticate_service_account(self, auth_realm: str, client_id: str, client_secret: str) -> str:
        """Obtain a token and remember the credentials so it can be renewed.

        Raises:
            KeycloakAPIError: When the token endpoint refuses the credentials
        """
        self._credentials = _ServiceCredentials(auth_realm, client_id, client_secret)
        return self._renew_token()

    def _renew_token(self) -> str:
        creds = self._credentials
        token_url = f"{self.base_url}/realms/{creds.auth_realm}/protocol/openid-connect/token"
        resp = requests.post(
            token_url,
            data={
                "grant_type": "client_credentials",
                "client_id": creds.client_id,
                "client_secret": creds.client_secret,
            },
            timeout=self.timeout,
        )
        if resp.status_code != 200:
            raise KeycloakAPIError(resp.status_code, resp.text, token_url)
        self._token = resp.json()["access_token"]
        self._renew_at = time.monotonic() + TOKEN_LIFETIME - TOKEN_RENEW_MARGIN
        return self._token

    def _bearer(self) -> str:
        if self._credentials is None:
            raise KeycloakAPIError(401, "Not authenticated - call authenticate_service_account first", self.base_url)
        if time.monotonic() >= self._renew_at:
            self._renew_token()
        return f"Bearer {self._token}"

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        headers = dict(kwargs.pop("headers", None) or {})
        headers["Authorization"] = self._bearer()
        resp = requests.request(method, f"{self.base_url}{path}", headers=headers, timeout=self.timeout, **kwargs)
        if resp.status_code >= 400:
            raise KeycloakAPIError(resp.status_code, resp.text, resp.url)
        return resp

    # All three raise KeycloakAPIError for any 4xx/5xx answer.
    def get(self, path: str, params: Optional[Dict] = None, **kwargs) -> requests.Response:
        return self._request("GET", path, params=params, **kwargs)

    def post(self, path: str, json: Optional[Any] = None, data: Optional[Dict] = None, **kwargs) -> requests.Response:
        return self._request("POST", path, json=json, data=data, **kwargs)

    def put(self, path: str, json: Optional[Any] = None, **kwargs) -> requests.Response:
        return self._request("PUT", path, json=json, **kwargs)
