from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from passlib.exc import UnknownHashError

from timeclock.errors import ApiError
from timeclock.settings import get_settings

kiosk_token_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
bearer_scheme = HTTPBearer(auto_error=False)

KIOSK_TOKEN_BYTES = 32


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_kiosk_token() -> str:
    return secrets.token_hex(KIOSK_TOKEN_BYTES)


def hash_kiosk_token(token: str) -> str:
    return kiosk_token_context.hash(token)


def verify_kiosk_token(token: str, token_hash: str) -> bool:
    if not token or not token_hash:
        return False
    try:
        return kiosk_token_context.verify(token, token_hash)
    except (ValueError, TypeError, UnknownHashError):
        return False


def create_identity_token(
    *,
    sub: str,
    name: str | None = None,
    email: str | None = None,
    admin: bool = False,
    expires_delta: timedelta = timedelta(hours=1),
) -> str:
    """Mint an identity token.

    Production tokens come from the identity provider; this exists for local
    provisioning and tests and produces the same claim layout.
    """
    settings = get_settings()
    now = _utcnow()
    claims = {
        "sub": sub,
        "name": name,
        "email": email,
        "admin": admin,
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "iat": int(now.timestamp()),
        "exp": int((now + expires_delta).timestamp()),
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm="HS256")


def decode_identity_token(token: str) -> dict[str, Any]:
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=["HS256"],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            options={"require_sub": True, "require_exp": True},
        )
    except JWTError as exc:
        raise ApiError(status_code=403, code="INVALID_TOKEN", message="Token is invalid or expired.") from exc

    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject:
        raise ApiError(status_code=403, code="INVALID_TOKEN", message="Token subject is invalid.")
    return payload


def require_identity(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> dict[str, Any]:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise ApiError(status_code=401, code="MISSING_TOKEN", message="Missing bearer token.")

    claims = decode_identity_token(credentials.credentials)
    request.state.actor = "employee"
    request.state.actor_id = str(claims["sub"])
    return claims


def require_admin(
    request: Request,
    claims: dict[str, Any] = Depends(require_identity),
) -> dict[str, Any]:
    if claims.get("admin") is not True:
        raise ApiError(
            status_code=403,
            code="FORBIDDEN",
            message="Administrator privileges required.",
        )
    request.state.actor = "admin"
    return claims
