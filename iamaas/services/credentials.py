from __future__ import annotations

import base64
from dataclasses import dataclass, field
import secrets
from typing import Callable

ADMIN_USERNAME = "admin"
PASSWORD_BYTES = 16

RandomBytes = Callable[[int], bytes]


@dataclass(frozen=True)
class Credential:
    username: str
    password: str = field(repr=False)
    console_url: str


def generate_password(random_bytes: RandomBytes = secrets.token_bytes) -> str:
    """Return 16 random bytes, base64 encoded."""
    raw = random_bytes(PASSWORD_BYTES)
    if len(raw) != PASSWORD_BYTES:
        raise ValueError(f"Expected {PASSWORD_BYTES} random bytes, got {len(raw)}")
    return base64.b64encode(raw).decode("ascii")


def build_console_url(base_url: str, realm_name: str) -> str:
    return f"{base_url.rstrip('/')}/admin/{realm_name}/console"


def issue_admin_credential(
    *,
    base_url: str,
    realm_name: str,
    random_bytes: RandomBytes = secrets.token_bytes,
) -> Credential:
    return Credential(
        username=ADMIN_USERNAME,
        password=generate_password(random_bytes),
        console_url=build_console_url(base_url, realm_name),
    )
