"""Operator identity and roles from the server-side session.

The login flow stores the OIDC ``token``, ``id_claims`` and ``userinfo`` in
the session; the import endpoints only ever read them.
"""
from __future__ import annotations
from typing import Iterable, Optional

from flask import session


def _role_lists(claims: dict) -> Iterable[list]:
    realm_access = claims.get("realm_access")
    if isinstance(realm_access, dict):
        yield realm_access.get("roles", [])
    resource_access = claims.get("resource_access")
    if isinstance(resource_access, dict):
        for client_access in resource_access.values():
            if isinstance(client_access, dict):
                yield client_access.get("roles", [])


def collect_roles(*sources) -> list[str]:
    """Realm and client roles from every claims dict, first occurrence order."""
    roles: list[str] = []
    for claims in sources:
        if not isinstance(claims, dict):
            continue
        for role_list in _role_lists(claims):
            roles.extend(role for role in role_list if role not in roles)
    return roles


def is_authenticated() -> bool:
    return bool(session.get("token"))


def current_user_context() -> tuple[Optional[dict], dict, dict, list[str]]:
    """(token, id_claims, userinfo, roles) for the session, empty when anonymous."""
    token = session.get("token")
    if not token:
        return None, {}, {}, []

    id_claims = session.get("id_claims") or {}
    userinfo = session.get("userinfo") or {}
    return token, id_claims, userinfo, collect_roles(id_claims, userinfo)


def has_any_role(roles: list[str], allowed: list[str]) -> bool:
    """Case-insensitive intersection test."""
    return not {role.lower() for role in allowed}.isdisjoint(role.lower() for role in roles)


def current_username() -> str:
    """Name recorded as operator in the audit trail ("" when anonymous)."""
    _, id_claims, userinfo, _ = current_user_context()
    for claims in (userinfo, id_claims):
        for key in ("preferred_username", "email", "name"):
            value = claims.get(key)
            if isinstance(value, str) and value:
                return value
    return ""
