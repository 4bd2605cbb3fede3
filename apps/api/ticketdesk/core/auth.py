import uuid
from dataclasses import dataclass, field
from typing import Any

from jose import JWTError, jwt
from starlette.requests import Request

from ticketdesk.core.config import get_settings
from ticketdesk.core.context import get_request_context
from ticketdesk.platform.security.errors import UnauthorizedError


@dataclass
class AuthUser:
    sub: str
    roles: list[str]
    org_id: uuid.UUID | None = None
    profile_id: uuid.UUID | None = None
    claims: dict = field(default_factory=dict, repr=False)

    @property
    def is_anonymous(self) -> bool:
        return self.sub == "anonymous"


ANONYMOUS = AuthUser(sub="anonymous", roles=["guest"])


def _optional_uuid(raw: object) -> uuid.UUID | None:
    if raw is None:
        return None
    try:
        return uuid.UUID(str(raw))
    except ValueError:
        return None


def bearer_token(authorization: str | None) -> str:
    if not authorization or not authorization.startswith("Bearer "):
        return ""
    return authorization[len("Bearer "):].strip()


def decode_claims(token: str) -> dict[str, Any]:
    settings = get_settings()
    return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])


def subject_or_anonymous(authorization: str | None) -> str:
    """Best-effort caller id for keying; never raises."""
    token = bearer_token(authorization)
    if not token:
        return "anonymous"
    try:
        subject = decode_claims(token).get("sub")
    except JWTError:
        return "anonymous"
    return str(subject) if subject is not None else "anonymous"


async def get_current_user(request: Request) -> AuthUser:
    token = bearer_token(request.headers.get("authorization"))
    if not token:
        return ANONYMOUS

    try:
        payload = decode_claims(token)
    except JWTError as exc:
        raise UnauthorizedError("invalid bearer token") from exc

    subject = str(payload.get("sub", "anonymous"))
    roles = payload.get("roles", ["member"])
    if not isinstance(roles, list):
        roles = ["member"]
    context = get_request_context(request)
    if context is not None:
        context.user_id = subject
    return AuthUser(
        sub=subject,
        roles=[str(role) for role in roles],
        org_id=_optional_uuid(payload.get("org_id")),
        profile_id=_optional_uuid(payload.get("profile_id", subject)),
        claims=payload,
    )
