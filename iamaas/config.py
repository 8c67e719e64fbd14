from __future__ import annotations

from dataclasses import dataclass
import os

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off", ""}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUTHY:
        return True
    if value in _FALSY:
        return False
    raise ValueError(f"Invalid boolean for {name}: {raw!r}")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid number for {name}: {raw!r}") from exc


@dataclass(frozen=True)
class Settings:
    fail_on_mail_error: bool = False

    keycloak_base_url: str = "http://localhost:8080"
    keycloak_admin_realm: str = "master"
    keycloak_client_id: str = "admin-cli"
    keycloak_client_secret: str | None = None
    keycloak_admin_username: str | None = None
    keycloak_admin_password: str | None = None
    keycloak_timeout_sec: float = 10.0

    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_username: str | None = None
    smtp_password: str | None = None
    smtp_sender: str = "no-reply@iamaas.local"
    smtp_starttls: bool = True
    smtp_timeout_sec: float = 10.0


def load_settings() -> Settings:
    return Settings(
        fail_on_mail_error=_env_bool("IAMAAS_FAIL_ON_MAIL_ERROR", False),
        keycloak_base_url=os.getenv("KEYCLOAK_BASE_URL", "http://localhost:8080").rstrip("/"),
        keycloak_admin_realm=os.getenv("KEYCLOAK_ADMIN_REALM", "master"),
        keycloak_client_id=os.getenv("KEYCLOAK_CLIENT_ID", "admin-cli"),
        keycloak_client_secret=os.getenv("KEYCLOAK_CLIENT_SECRET") or None,
        keycloak_admin_username=os.getenv("KEYCLOAK_ADMIN_USERNAME") or None,
        keycloak_admin_password=os.getenv("KEYCLOAK_ADMIN_PASSWORD") or None,
        keycloak_timeout_sec=_env_float("KEYCLOAK_TIMEOUT_SEC", 10.0),
        smtp_host=os.getenv("SMTP_HOST") or None,
        smtp_port=int(_env_float("SMTP_PORT", 587)),
        smtp_username=os.getenv("SMTP_USERNAME") or None,
        smtp_password=os.getenv("SMTP_PASSWORD") or None,
        smtp_sender=os.getenv("SMTP_SENDER", "no-reply@iamaas.local"),
        smtp_starttls=_env_bool("SMTP_STARTTLS", True),
        smtp_timeout_sec=_env_float("SMTP_TIMEOUT_SEC", 10.0),
    )


settings = load_settings()


def get_settings() -> Settings:
    return settings
