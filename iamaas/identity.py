from __future__ import annotations

from dataclasses import dataclass
import logging
import threading
import time
from typing import Any, Protocol

import httpx

from iamaas.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)

_TOKEN_EXPIRY_MARGIN_SEC = 30.0
REALM_ADMIN_CLIENT = "realm-management"
REALM_ADMIN_ROLE = "realm-admin"


class IdentityProviderError(RuntimeError):
    def __init__(self, message: str, *, status_code: int | None = None, detail: str = "") -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(self._build_message(message))

    def _build_message(self, message: str) -> str:
        detail = self.detail.strip()
        if len(detail) > 400:
            detail = f"{detail[:397]}..."
        return f"{message} (status={self.status_code}, detail={detail!r})"


class RealmConflictError(IdentityProviderError):
    """The identity provider already holds a realm with the requested name."""


@dataclass(frozen=True)
class RealmResult:
    name: str
    exists: bool
    changed: bool


class IdentityProvider(Protocol):
    def create_realm(self, name: str) -> RealmResult: ...

    def create_admin_user(self, realm: str, username: str, password: str, temporary: bool) -> None: ...

    def delete_realm(self, name: str) -> RealmResult: ...


class KeycloakAdapter:
    """Identity provider backed by the Keycloak admin REST API."""

    def __init__(
        self,
        *,
        base_url: str,
        admin_realm: str = "master",
        client_id: str = "admin-cli",
        client_secret: str | None = None,
        username: str | None = None,
        password: str | None = None,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._admin_realm = admin_realm
        self._client_id = client_id
        self._client_secret = client_secret
        self._username = username
        self._password = password
        self._timeout = timeout
        self._transport = transport
        self._http: httpx.Client | None = None
        self._http_lock = threading.Lock()
        self._token: str | None = None
        self._token_expires_at = 0.0
        self._token_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings, *, transport: httpx.BaseTransport | None = None) -> KeycloakAdapter:
        return cls(
            base_url=settings.keycloak_base_url,
            admin_realm=settings.keycloak_admin_realm,
            client_id=settings.keycloak_client_id,
            client_secret=settings.keycloak_client_secret,
            username=settings.keycloak_admin_username,
            password=settings.keycloak_admin_password,
            timeout=settings.keycloak_timeout_sec,
            transport=transport,
        )

    def create_realm(self, name: str) -> RealmResult:
        logger.info("Creating Keycloak realm: %s", name)
        response = self._request(
            "POST",
            "/admin/realms",
            json={"realm": name, "enabled": True},
            expected=(201,),
            error_message=f"Failed to create realm {name}",
            conflict_error=RealmConflictError,
        )
        logger.debug("Keycloak accepted realm %s (status=%s)", name, response.status_code)
        return RealmResult(name=name, exists=True, changed=True)

    def create_admin_user(self, realm: str, username: str, password: str, temporary: bool) -> None:
        logger.info("Creating admin user '%s' in realm %s", username, realm)
        self._request(
            "POST",
            f"/admin/realms/{realm}/users",
            json={
                "username": username,
                "enabled": True,
                "credentials": [{"type": "password", "value": password, "temporary": temporary}],
            },
            expected=(201,),
            error_message=f"Failed to create user {username} in realm {realm}",
        )
        user_id = self._find_user_id(realm, username)
        client_uuid = self._find_client_uuid(realm, REALM_ADMIN_CLIENT)
        role = self._request(
            "GET",
            f"/admin/realms/{realm}/clients/{client_uuid}/roles/{REALM_ADMIN_ROLE}",
            error_message=f"Failed to look up role {REALM_ADMIN_ROLE} in realm {realm}",
        ).json()
        self._request(
            "POST",
            f"/admin/realms/{realm}/users/{user_id}/role-mappings/clients/{client_uuid}",
            json=[role],
            expected=(204,),
            error_message=f"Failed to grant {REALM_ADMIN_ROLE} to {username} in realm {realm}",
        )
        logger.info("Granted %s to '%s' in realm %s", REALM_ADMIN_ROLE, username, realm)

    def delete_realm(self, name: str) -> RealmResult:
        logger.info("Deleting Keycloak realm: %s", name)
        response = self._request(
            "DELETE",
            f"/admin/realms/{name}",
            expected=(204, 404),
            error_message=f"Failed to delete realm {name}",
        )
        if response.status_code == 404:
            logger.info("Realm was already absent: %s", name)
            return RealmResult(name=name, exists=False, changed=False)
        return RealmResult(name=name, exists=False, changed=True)

    def close(self) -> None:
        with self._http_lock:
            if self._http is not None:
                self._http.close()
                self._http = None

    def _find_user_id(self, realm: str, username: str) -> str:
        users = self._request(
            "GET",
            f"/admin/realms/{realm}/users",
            params={"username": username, "exact": "true"},
            error_message=f"Failed to look up user {username} in realm {realm}",
        ).json()
        if not users:
            raise IdentityProviderError(f"User {username} not found in realm {realm} after creation")
        return users[0]["id"]

    def _find_client_uuid(self, realm: str, client_id: str) -> str:
        clients = self._request(
            "GET",
            f"/admin/realms/{realm}/clients",
            params={"clientId": client_id},
            error_message=f"Failed to look up client {client_id} in realm {realm}",
        ).json()
        if not clients:
            raise IdentityProviderError(f"Client {client_id} not found in realm {realm}")
        return clients[0]["id"]

    def _client(self) -> httpx.Client:
        # Shared across request threads; build one client only.
        with self._http_lock:
            if self._http is None:
                self._http = httpx.Client(base_url=self._base_url, timeout=self._timeout, transport=self._transport)
            return self._http

    def _access_token(self) -> str:
        with self._token_lock:
            return self._cached_or_fresh_token()

    def _cached_or_fresh_token(self) -> str:
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token

        if self._client_secret:
            form: dict[str, Any] = {
                "grant_type": "client_credentials",
                "client_id": self._client_id,
                "client_secret": self._client_secret,
            }
        else:
            form = {
                "grant_type": "password",
                "client_id": self._client_id,
                "username": self._username or "",
                "password": self._password or "",
            }
        url = f"/realms/{self._admin_realm}/protocol/openid-connect/token"
        try:
            response = self._client().post(url, data=form)
        except httpx.HTTPError as exc:
            raise IdentityProviderError("Failed to reach Keycloak token endpoint", detail=str(exc)) from exc
        if response.status_code != 200:
            raise IdentityProviderError(
                "Failed to obtain Keycloak admin token",
                status_code=response.status_code,
                detail=response.text,
            )
        payload = response.json()
        self._token = payload["access_token"]
        expires_in = float(payload.get("expires_in", 60))
        self._token_expires_at = time.monotonic() + max(expires_in - _TOKEN_EXPIRY_MARGIN_SEC, 0.0)
        logger.debug("Obtained Keycloak admin token (expires_in=%s)", expires_in)
        return self._token

    def _request(
        self,
        method: str,
        path: str,
        *,
        error_message: str,
        expected: tuple[int, ...] = (200,),
        conflict_error: type[IdentityProviderError] = IdentityProviderError,
        **kwargs: Any,
    ) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self._access_token()}"}
        try:
            response = self._client().request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            raise IdentityProviderError(error_message, detail=str(exc)) from exc
        if response.status_code in expected:
            return response
        error_cls = conflict_error if response.status_code == 409 else IdentityProviderError
        raise error_cls(error_message, status_code=response.status_code, detail=response.text)


identity_provider = KeycloakAdapter.from_settings(default_settings)
