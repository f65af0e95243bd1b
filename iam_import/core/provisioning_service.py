"""
Provisioning Service Layer — account creation against Keycloak

This module is the identity-provisioning collaborator of the bulk import
pipeline. It is used by the Flask admin routes and by the CLI, so both
surfaces share the same validation, error mapping and Keycloak access.

Architecture:
    Admin API (/admin/import/*) ──┐
                                  ├──> provisioning_service.py ──> iam_import.core.keycloak ──> Keycloak
    CLI (scripts/bulk_import.py) ─┘

Features:
    - Role guard against the configured assignable roles
    - Shared, auto-refreshing service-account client
    - Standardized error handling via ProvisioningError
"""

from __future__ import annotations
import logging
import secrets
import string
import threading
from typing import Optional

import requests

from iam_import.config.settings import get_settings
from iam_import.core.keycloak import (
    KeycloakClient,
    KeycloakAPIError,
    RoleNotFoundError,
    UserAlreadyExistsError,
    UserNotFoundError,
    UserService,
)

logger = logging.getLogger(__name__)

_CLIENT: Optional[KeycloakClient] = None
_CLIENT_LOCK = threading.Lock()


# ─────────────────────────────────────────────────────────────────────────────
# Custom Exceptions
# ─────────────────────────────────────────────────────────────────────────────

class ProvisioningError(Exception):
    """Provisioning failure with HTTP status and optional error type."""

    def __init__(self, status: int, detail: str, error_type: Optional[str] = None):
        self.status = status
        self.detail = detail
        self.error_type = error_type
        super().__init__(detail)

    def to_dict(self) -> dict:
        """Convert to an error response body."""
        error_dict = {"status": self.status, "detail": self.detail}
        if self.error_type:
            error_dict["type"] = self.error_type
        return error_dict


# ─────────────────────────────────────────────────────────────────────────────
# Utility Functions
# ─────────────────────────────────────────────────────────────────────────────

def generate_temp_password(length: int = 16) -> str:
    """
    Generate a secure temporary password.

    Args:
        length: Password length (default: 16)

    Returns:
        Random password containing uppercase, lowercase, digits, and special chars
    """
    alphabet = string.ascii_letters + string.digits + "!@#$%^&*"
    return ''.join(secrets.choice(alphabet) for _ in range(length))


# ─────────────────────────────────────────────────────────────────────────────
# Service Client Management
# ─────────────────────────────────────────────────────────────────────────────

def get_service_client() -> KeycloakClient:
    """Return the shared service-account client, authenticating on first use."""
    global _CLIENT
    with _CLIENT_LOCK:
        if _CLIENT is not None:
            return _CLIENT
        cfg = get_settings()
        client = KeycloakClient(cfg.keycloak_url)
        try:
            client.authenticate_service_account(
                cfg.keycloak_service_realm,
                cfg.keycloak_service_client_id,
                cfg.service_client_secret_resolved,
            )
        except (KeycloakAPIError, requests.RequestException, ValueError) as exc:
            raise ProvisioningError(500, f"Failed to obtain service token: {exc}")
        _CLIENT = client
        return client


def reset_service_client() -> None:
    """Forget the cached service client (used after credential rotation and in tests)."""
    global _CLIENT
    with _CLIENT_LOCK:
        _CLIENT = None


# ─────────────────────────────────────────────────────────────────────────────
# Core Service Functions
# ─────────────────────────────────────────────────────────────────────────────

def create_account(
    identity_key: str,
    display_name: str,
    role_tag: str,
    entitlement_tag: Optional[str] = None,
    correlation_id: Optional[str] = None,
) -> str:
    """Create one account in the configured realm.

    Args:
        identity_key: Email address identifying the account
        display_name: Display name for the account
        role_tag: Realm role to grant
        entitlement_tag: Optional entitlement stored on the account
        correlation_id: Optional correlation ID for tracing

    Returns:
        Keycloak id of the new account

    Raises:
        ProvisioningError: 400 for an unassignable role, 409 when the account
            already exists, 500 when the created account cannot be found,
            502/504 when Keycloak fails or is unreachable
    """
    cfg = get_settings()

    if role_tag.lower() not in [r.lower() for r in cfg.assignable_roles]:
        raise ProvisioningError(400, f"Role '{role_tag}' is not assignable", "invalidValue")

    service = UserService(get_service_client())
    try:
        user_id = service.create_account(
            cfg.keycloak_realm,
            identity_key,
            display_name,
            role_tag,
            entitlement_tag,
            generate_temp_password(),
            require_password_update=True,
            send_invite=cfg.send_invites,
        )
    except UserAlreadyExistsError as exc:
        raise ProvisioningError(409, str(exc), "uniqueness")
    except RoleNotFoundError as exc:
        raise ProvisioningError(400, str(exc), "invalidValue")
    except UserNotFoundError as exc:
        raise ProvisioningError(500, str(exc))
    except KeycloakAPIError as exc:
        raise ProvisioningError(502, f"Failed to create user: {exc.message or exc}")
    except requests.Timeout:
        raise ProvisioningError(504, "Identity service timed out")
    except requests.RequestException as exc:
        raise ProvisioningError(502, f"Identity service unavailable: {exc}")

    logger.info(
        "Provisioned account %s (id=%s, role=%s, correlation_id=%s)",
        identity_key, user_id, role_tag, correlation_id,
    )
    return user_id


def lookup_account(identity_key: str) -> Optional[dict]:
    """Return the Keycloak representation for an email, or None.

    Raises:
        ProvisioningError: When Keycloak cannot be queried
    """
    cfg = get_settings()
    service = UserService(get_service_client())
    try:
        return service.get_user_by_email(cfg.keycloak_realm, identity_key)
    except KeycloakAPIError as exc:
        raise ProvisioningError(502, f"Failed to look up user: {exc.message or exc}")
    except requests.RequestException as exc:
        raise ProvisioningError(502, f"Identity service unavailable: {exc}")
