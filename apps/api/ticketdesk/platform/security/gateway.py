from __future__ import annotations

import base64
import binascii
import hmac
from dataclasses import dataclass

from ticketdesk.core.config import Settings


@dataclass(frozen=True, slots=True)
class AdminGatewayConfig:
    """Read-only admin credential snapshot taken once at startup."""

    user: str | None
    password: str | None
    realm: str
    protected_prefixes: tuple[str, ...]

    @classmethod
    def from_settings(cls, settings: Settings) -> AdminGatewayConfig:
        return cls(
            user=settings.admin_user or None,
            password=settings.admin_password or None,
            realm=settings.admin_realm,
            protected_prefixes=tuple(prefix.rstrip("/") for prefix in settings.admin_path_prefixes if prefix.strip("/")),
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.user) and bool(self.password)

    def challenge(self) -> str:
        realm = self.realm.replace('"', "")
        return f'Basic realm="{realm}"'


@dataclass(frozen=True, slots=True)
class GatewayDecision:
    allowed: bool
    status_code: int | None = None
    reason: str | None = None

    @classmethod
    def allow(cls, reason: str) -> GatewayDecision:
        return cls(allowed=True, reason=reason)

    @classmethod
    def deny(cls, status_code: int, reason: str) -> GatewayDecision:
        return cls(allowed=False, status_code=status_code, reason=reason)


def is_protected_path(config: AdminGatewayConfig, path: str) -> bool:
    return any(path == prefix or path.startswith(prefix + "/") for prefix in config.protected_prefixes)


def parse_basic_credentials(header: str | None) -> tuple[str, str] | None:
    if not header:
        return None
    scheme, _, encoded = header.strip().partition(" ")
    if scheme.lower() != "basic" or not encoded.strip():
        return None
    try:
        decoded = base64.b64decode(encoded.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None
    user, separator, password = decoded.partition(":")
    if not separator:
        return None
    return user, password


def _constant_time_equals(supplied: str, expected: str) -> bool:
    return hmac.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8"))


def authorize(config: AdminGatewayConfig, path: str, authorization: str | None) -> GatewayDecision:
    if not is_protected_path(config, path):
        return GatewayDecision.allow("unprotected")

    if not config.is_configured:
        return GatewayDecision.deny(503, "admin_not_configured")

    credentials = parse_basic_credentials(authorization)
    if credentials is None:
        return GatewayDecision.deny(401, "missing_credentials")

    user, password = credentials
    # Both comparisons always run so timing does not reveal which half mismatched.
    user_ok = _constant_time_equals(user, config.user or "")
    password_ok = _constant_time_equals(password, config.password or "")
    if not (user_ok and password_ok):
        return GatewayDecision.deny(401, "invalid_credentials")

    return GatewayDecision.allow("authenticated")
