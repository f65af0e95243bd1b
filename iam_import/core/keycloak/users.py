"""Keycloak user provisioning operations."""
from __future__ import annotations
import sys
from typing import Optional, List

from .client import KeycloakClient
from .exceptions import KeycloakAPIError, RoleNotFoundError, UserAlreadyExistsError, UserNotFoundError

ENTITLEMENT_ATTRIBUTE = "entitlement"


def split_display_name(display_name: str) -> tuple[str, str]:
    """Split a free-form display name into Keycloak first/last name fields."""
    parts = display_name.strip().split(None, 1)
    if not parts:
        return "", ""
    if len(parts) == 1:
        return parts[0], ""
    return parts[0], parts[1]


class UserService:
    """Service for provisioning Keycloak users."""

    def __init__(self, client: KeycloakClient):
        """Initialize user service.

        Args:
            client: Authenticated Keycloak client
        """
        self.client = client

    def get_user_by_email(self, realm: str, email: str) -> Optional[dict]:
        """Return the user representation whose email exactly matches.

        Keycloak compares emails case-insensitively, so the match here does too.

        Args:
            realm: Realm name
            email: Email address to search for

        Returns:
            User representation or None if not found
        """
        resp = self.client.get(f"/admin/realms/{realm}/users", params={"email": email, "exact": "true"})
        for user in resp.json() or []:
            if (user.get("email") or "").lower() == email.lower():
                return user
        return None

    def create_account(
        self,
        realm: str,
        email: str,
        display_name: str,
        role: str,
        entitlement: Optional[str],
        temp_password: str,
        require_password_update: bool = True,
        send_invite: bool = False,
    ) -> str:
        """Create a new account, assign its realm role and bootstrap password.

        Args:
            realm: Realm name
            email: Email address, also used as the Keycloak username
            display_name: Human readable name, split into first/last name
            role: Realm role to assign
            entitlement: Optional entitlement tag stored as a user attribute
            temp_password: Temporary password
            require_password_update: Require password change on first login
            send_invite: Send Keycloak's execute-actions email to the new user

        Returns:
            Keycloak user id of the created account

        Raises:
            UserAlreadyExistsError: If an account with this email exists
            RoleNotFoundError: If the role does not exist in the realm
            KeycloakAPIError: On any other HTTP failure
        """
        if self.get_user_by_email(realm, email):
            raise UserAlreadyExistsError(f"User with email '{email}' already exists")

        first, last = split_display_name(display_name)
        attributes = {}
        if entitlement:
            attributes[ENTITLEMENT_ATTRIBUTE] = [entitlement]
            attributes[f"{ENTITLEMENT_ATTRIBUTE}Active"] = ["true"]

        payload = {
            "username": email,
            "email": email,
            "firstName": first,
            "lastName": last,
            "enabled": True,
            "emailVerified": False,
            "attributes": attributes,
            "requiredActions": ["UPDATE_PASSWORD"] if require_password_update else [],
        }
        try:
            resp = self.client.post(f"/admin/realms/{realm}/users", json=payload)
        except KeycloakAPIError as exc:
            if exc.status_code == 409:
                raise UserAlreadyExistsError(f"User with email '{email}' already exists") from exc
            raise

        user_id = self._user_id_from_location(resp.headers.get("Location", ""))
        if not user_id:
            created = self.get_user_by_email(realm, email)
            if not created:
                raise UserNotFoundError(f"User '{email}' created but not found in realm '{realm}'")
            user_id = created["id"]
        print(f"[bulk-import] User '{email}' created (id={user_id})", file=sys.stderr)

        self.client.put(
            f"/admin/realms/{realm}/users/{user_id}/reset-password",
            json={"type": "password", "temporary": require_password_update, "value": temp_password},
        )

        self.assign_realm_role(realm, user_id, role)
        print(f"[bulk-import] Assigned role '{role}' to '{email}'", file=sys.stderr)

        if send_invite:
            self.send_required_actions_email(realm, user_id, ["UPDATE_PASSWORD"])
            print(f"[bulk-import] Invitation email requested for '{email}'", file=sys.stderr)

        return user_id

    def assign_realm_role(self, realm: str, user_id: str, role: str) -> None:
        """Grant a realm role to a user.

        Raises:
            RoleNotFoundError: If the role does not exist in the realm
        """
        try:
            role_rep = self.client.get(f"/admin/realms/{realm}/roles/{role}").json()
        except KeycloakAPIError as exc:
            if exc.status_code == 404:
                raise RoleNotFoundError(f"Role '{role}' not found in realm '{realm}'") from exc
            raise
        self.client.post(
            f"/admin/realms/{realm}/users/{user_id}/role-mappings/realm",
            json=[{"id": role_rep["id"], "name": role_rep["name"]}],
        )

    def send_required_actions_email(self, realm: str, user_id: str, actions: List[str]) -> None:
        """Ask Keycloak to email the user a link to complete the given actions."""
        self.client.put(f"/admin/realms/{realm}/users/{user_id}/execute-actions-email", json=actions)

    @staticmethod
    def _user_id_from_location(location: str) -> str:
        # Keycloak answers 201 with Location: .../admin/realms/<realm>/users/<id>
        if "/users/" not in location:
            return ""
        return location.rstrip("/").rsplit("/", 1)[-1]
