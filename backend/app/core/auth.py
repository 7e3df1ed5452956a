"""
Access token verification.

Sign-up, login and password recovery live in the external auth service.
This module only verifies the HS256 tokens it issues: `sub` carries the
user's auth id, optional `name` and `phone` claims seed the local profile.
"""
import hmac
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Header, HTTPException
from pydantic import BaseModel

from backend.app.core.settings import get_settings

JWT_ALGORITHM = "HS256"


class TokenClaims(BaseModel):
    """Identity extracted from a verified access token."""
    auth_id: str
    name: Optional[str] = None
    phone: Optional[str] = None


def _jwt_secret() -> str:
    settings = get_settings()
    secret = settings.JWT_SECRET or settings.ADMIN_SECRET
    if not secret:
        raise HTTPException(status_code=503, detail="Authentication not configured (JWT_SECRET missing)")
    return secret


def create_user_jwt(auth_id: str, name: Optional[str] = None, phone: Optional[str] = None) -> str:
    """
    Create an access token. Used by operator scripts and tests; production
    tokens come from the auth service with the same claims.
    """
    now = datetime.now(timezone.utc)
    payload = {
        "sub": auth_id,
        "exp": now + timedelta(hours=get_settings().JWT_EXPIRY_HOURS),
        "iat": now,
    }
    if name:
        payload["name"] = name
    if phone:
        payload["phone"] = phone
    return jwt.encode(payload, _jwt_secret(), algorithm=JWT_ALGORITHM)


def decode_user_jwt(token: str) -> Optional[TokenClaims]:
    """Return the token's claims, or None if it is invalid or expired."""
    try:
        payload = jwt.decode(token, _jwt_secret(), algorithms=[JWT_ALGORITHM])
        sub = payload["sub"]
    except (jwt.InvalidTokenError, KeyError):
        return None
    if not sub:
        return None
    return TokenClaims(auth_id=str(sub), name=payload.get("name"), phone=payload.get("phone"))


def _bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing Authorization header")
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(
            status_code=401,
            detail="Invalid Authorization header format. Expected: Bearer <token>"
        )
    return parts[1]


async def get_token_claims(authorization: Optional[str] = Header(None)) -> TokenClaims:
    """
    FastAPI dependency: verify the Bearer token and return its claims.

    Raises:
        HTTPException 401: missing, malformed, invalid or expired token
    """
    claims = decode_user_jwt(_bearer_token(authorization))
    if claims is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return claims


def is_valid_admin_token(token: Optional[str]) -> bool:
    """Compare an X-Admin-Token header with ADMIN_SECRET in constant time."""
    secret = get_settings().ADMIN_SECRET
    if not secret or not token:
        return False
    return hmac.compare_digest(token.encode(), secret.encode())
