"""Errors raised by the Keycloak layer."""


class KeycloakError(Exception):
    """Root of every Keycloak failure the import can hit."""


class KeycloakAPIError(KeycloakError):
    """Keycloak answered with an HTTP error status.

    ``message`` is the response body, ``endpoint`` the URL that was called.
    """

    def __init__(self, status_code: int, message: str, endpoint: str):
        self.status_code = status_code
        self.message = message
        self.endpoint = endpoint
        super().__init__(f"[{status_code}] {endpoint}: {message}")


class UserNotFoundError(KeycloakError):
    """No account matches the requested email."""


class UserAlreadyExistsError(KeycloakError):
    """An account with this email (used as username) is already registered."""


class RoleNotFoundError(KeycloakError):
    """The requested realm role is not defined."""
