from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt

from app.core.settings import settings


def decode_token(token: str) -> dict[str, Any]:
    """Verify an identity-provider access token and return its claims."""
    options = {"verify_aud": bool(settings.jwt_audience)}
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience or None,
            options=options,
        )
    except JWTError as exc:
        raise ValueError("Invalid token") from exc


def create_access_token(
    subject: str,
    *,
    email: str | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """Mint a token the way the identity provider does; used by tooling and tests."""
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(hours=1))
    to_encode: dict[str, Any] = {"sub": subject, "exp": expire}
    if email:
        to_encode["email"] = email
    if settings.jwt_audience:
        to_encode["aud"] = settings.jwt_audience
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)
