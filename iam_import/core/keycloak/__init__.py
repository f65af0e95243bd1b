"""Just enough of the Keycloak Admin API to provision imported accounts.

- client.py: service-account token handling and the HTTP verbs
- users.py: lookup by email, account creation, realm role grant, invitations
- exceptions.py: errors the provisioning service maps to outcomes

Usage:
    from iam_import.core.keycloak import KeycloakClient, UserService

    client = KeycloakClient("http://keycloak:8080")
    client.authenticate_service_account("demo", "automation-cli", "secret")

    users = UserService(client)
    user_id = users.create_account("demo", "alice@example.com", "Alice", "user", None, "Temp123!")
"""
from .client import KeycloakClient, REQUEST_TIMEOUT
from .exceptions import (
    KeycloakError,
    KeycloakAPIError,
    UserNotFoundError,
    UserAlreadyExistsError,
    RoleNotFoundError,
)
from .users import UserService, ENTITLEMENT_ATTRIBUTE, split_display_name

__all__ = [
    # Client
    "KeycloakClient",
    "REQUEST_TIMEOUT",

    # Exceptions
    "KeycloakError",
    "KeycloakAPIError",
    "UserNotFoundError",
    "UserAlreadyExistsError",
    "RoleNotFoundError",

    # Services
    "UserService",
    "ENTITLEMENT_ATTRIBUTE",
    "split_display_name",
]
