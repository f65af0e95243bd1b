"""Settings loader: environment variables, Docker secrets and demo defaults.

Secrets are looked up in ``/run/secrets/<name>`` first, then in the
environment. With ``DEMO_MODE=true`` missing values fall back to throwaway
demo defaults so the service runs against a local Keycloak without setup.
"""
from __future__ import annotations
import os
import secrets
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

SECRETS_DIR = "/run/secrets"


def _load_secret_from_file(secret_name: str, env_var: str | None = None) -> str | None:
    """Docker secret ``secret_name`` if mounted and non-empty, else ``env_var``."""
    secret_file = Path(SECRETS_DIR) / secret_name
    if secret_file.is_file():
        try:
            value = secret_file.read_text().strip()
        except OSError as e:
            print(f"[settings] ✗ Failed to read {secret_file}: {e}")
        else:
            if value:
                print(f"[settings] ✓ Loaded {secret_name} from {SECRETS_DIR}")
                return value
    if env_var:
        return os.getenv(env_var) or None
    return None


@dataclass
class AppConfig:
    """Everything the API, the CLI and the provisioning layer read at runtime."""
    demo_mode: bool
    secret_key: str
    session_cookie_secure: bool = True

    # Keycloak target and service account
    keycloak_url: str = ""
    keycloak_realm: str = "demo"
    keycloak_service_realm: str = "demo"
    keycloak_service_client_id: str = "automation-cli"
    keycloak_service_client_secret: str = ""

    # Operators allowed to import, roles an import may grant
    realm_admin_role: str = "realm-admin"
    iam_operator_role: str = "iam-operator"
    assignable_roles: list[str] = field(default_factory=lambda: ["user", "staff", "admin"])

    # Bulk import behaviour
    default_role: str = "user"
    delimiter: str = ","
    header_token: str = "email"
    max_workers: int = 1
    max_records: int = 1000
    case_insensitive_keys: bool = False
    send_invites: bool = False
    entitlements: list[str] = field(default_factory=lambda: ["basic", "premium", "enterprise"])

    log_level: str = "INFO"

    @property
    def service_client_secret_resolved(self) -> str:
        """Client secret of the service account used for provisioning.

        Demo mode always uses "demo-service-secret". Otherwise the configured
        value wins, then a mounted Docker secret, then the environment.

        Raises:
            ValueError: If no secret is available outside demo mode
        """
        if self.demo_mode:
            return "demo-service-secret"
        if self.keycloak_service_client_secret:
            return self.keycloak_service_client_secret

        for secret_name in ("keycloak_service_client_secret", "keycloak-service-client-secret"):
            secret_path = Path(SECRETS_DIR) / secret_name
            if secret_path.exists():
                value = secret_path.read_text().strip()
                if value:
                    return value

        from_env = os.environ.get("KEYCLOAK_SERVICE_CLIENT_SECRET")
        if from_env:
            return from_env
        raise ValueError(
            "KEYCLOAK_SERVICE_CLIENT_SECRET not found. "
            "Set DEMO_MODE=true or provide secret via Docker secrets or environment variable."
        )


def _get_or_generate(var_name: str, demo_default: Optional[str] = None, required: bool = True, demo_mode: bool = False) -> str:
    """Environment value, or the demo default (exported for child processes) in demo mode."""
    value = os.environ.get(var_name)
    if value:
        return value
    if demo_mode and demo_default is not None:
        print(f"[demo-mode] Using default for {var_name}")
        os.environ[var_name] = demo_default
        return demo_default
    if required:
        raise RuntimeError(f"Environment variable {var_name} is required in production mode.")
    return ""


def _env_flag(var_name: str, default: bool) -> bool:
    return os.environ.get(var_name, str(default)).strip().lower() == "true"


def _env_int(var_name: str, default: int, minimum: int = 1) -> int:
    raw = os.environ.get(var_name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise RuntimeError(f"{var_name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise RuntimeError(f"{var_name} must be >= {minimum}, got {value}")
    return value


def _env_list(var_name: str, default: list[str]) -> list[str]:
    """Comma separated, lowercased; an empty value means ``default``."""
    raw = os.environ.get(var_name, ",".join(default))
    values = [item.strip().lower() for item in raw.split(",") if item.strip()]
    return values or list(default)


def _load_secrets(demo_mode: bool) -> str:
    """Export mounted secrets to the environment and return the Flask secret key."""
    secret_key = _load_secret_from_file("flask_secret_key", "FLASK_SECRET_KEY")
    if not secret_key:
        if not demo_mode:
            raise RuntimeError("FLASK_SECRET_KEY not found in /run/secrets or environment")
        secret_key = secrets.token_urlsafe(48)
        os.environ["FLASK_SECRET_KEY"] = secret_key
        print("[demo-mode] Generated temporary FLASK_SECRET_KEY")

    service_secret = _load_secret_from_file("keycloak_service_client_secret", "KEYCLOAK_SERVICE_CLIENT_SECRET")
    if service_secret:
        os.environ["KEYCLOAK_SERVICE_CLIENT_SECRET"] = service_secret

    # scripts.audit reads its signing key from the environment
    signing_key = _load_secret_from_file("audit_log_signing_key", "AUDIT_LOG_SIGNING_KEY")
    if signing_key:
        os.environ["AUDIT_LOG_SIGNING_KEY"] = signing_key
    elif demo_mode:
        os.environ["AUDIT_LOG_SIGNING_KEY"] = os.environ.get(
            "AUDIT_LOG_SIGNING_KEY_DEMO", "demo-audit-signing-key-change-in-production"
        )
    return secret_key


def _keycloak_settings(demo_mode: bool) -> dict[str, Any]:
    realm = os.environ.get("KEYCLOAK_REALM", "demo")
    return dict(
        keycloak_url=_get_or_generate("KEYCLOAK_URL", "http://127.0.0.1:8080", demo_mode=demo_mode).rstrip("/"),
        keycloak_realm=realm,
        keycloak_service_realm=os.environ.get("KEYCLOAK_SERVICE_REALM", realm),
        keycloak_service_client_id=_get_or_generate(
            "KEYCLOAK_SERVICE_CLIENT_ID", "automation-cli", demo_mode=demo_mode
        ),
        keycloak_service_client_secret=_get_or_generate(
            "KEYCLOAK_SERVICE_CLIENT_SECRET",
            os.environ.get("KEYCLOAK_SERVICE_CLIENT_SECRET_DEMO") or "demo-service-secret",
            demo_mode=demo_mode,
        ),
    )


def _bulk_import_settings() -> dict[str, Any]:
    default_role = os.environ.get("BULK_IMPORT_DEFAULT_ROLE", "user").strip().lower() or "user"
    assignable_roles = _env_list("KEYCLOAK_ASSIGNABLE_ROLES", ["user", "staff", "admin"])
    # Records without a role get the default, so it must be grantable
    if default_role not in assignable_roles:
        assignable_roles.append(default_role)

    delimiter = os.environ.get("BULK_IMPORT_DELIMITER", ",")
    if not delimiter:
        raise RuntimeError("BULK_IMPORT_DELIMITER must not be empty")

    return dict(
        realm_admin_role=os.environ.get("REALM_ADMIN_ROLE", "realm-admin").strip().lower(),
        iam_operator_role=os.environ.get("IAM_OPERATOR_ROLE", "iam-operator").strip().lower(),
        assignable_roles=assignable_roles,
        default_role=default_role,
        delimiter=delimiter,
        header_token=os.environ.get("BULK_IMPORT_HEADER_TOKEN", "email").strip().lower() or "email",
        max_workers=_env_int("BULK_IMPORT_MAX_WORKERS", 1),
        max_records=_env_int("BULK_IMPORT_MAX_RECORDS", 1000),
        case_insensitive_keys=_env_flag("BULK_IMPORT_CASE_INSENSITIVE_KEYS", False),
        send_invites=_env_flag("BULK_IMPORT_SEND_INVITES", False),
        entitlements=_env_list("BULK_IMPORT_ENTITLEMENTS", ["basic", "premium", "enterprise"]),
    )


def load_settings() -> AppConfig:
    """Build an AppConfig from the current environment and /run/secrets."""
    demo_mode = os.environ.get("DEMO_MODE", "false").lower() == "true"

    cfg = AppConfig(
        demo_mode=demo_mode,
        secret_key=_load_secrets(demo_mode),
        session_cookie_secure=_env_flag("FLASK_SESSION_COOKIE_SECURE", True),
        log_level=os.environ.get("LOG_LEVEL", "INFO").strip().upper() or "INFO",
        **_keycloak_settings(demo_mode),
        **_bulk_import_settings(),
    )

    mode_label = "DEMO" if demo_mode else "PRODUCTION"
    print(f"[settings] Mode={mode_label}; realm={cfg.keycloak_realm}; workers={cfg.max_workers}")
    if demo_mode:
        print("[settings] WARNING: Demo credentials in use. Do not deploy with these defaults.")
    return cfg


_SETTINGS: Optional[AppConfig] = None


def get_settings() -> AppConfig:
    """Process-wide settings, loaded on first use."""
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = load_settings()
    return _SETTINGS


def reset_settings() -> None:
    """Forget the cached settings; the next get_settings() rereads the environment."""
    global _SETTINGS
    _SETTINGS = None
