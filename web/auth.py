"""Authentication for the web API: platform-issued JWTs and role checks."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

import config

http_bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class TokenUser:
    """Caller identity taken from a verified token. Users themselves live in the auth service."""

    username: str
    role: str

    @property
    def is_staff(self) -> bool:
        return self.role.lower() in config.STAFF_ROLES


def create_access_token(username: str, role: str, expires_in: timedelta = timedelta(days=7)) -> str:
    """Issue a token in the platform's format (used by tooling and tests)."""
    expire = datetime.now(timezone.utc) + expires_in
    payload = {"sub": username, "role": role, "exp": expire}
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    try:
        return jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except jwt.InvalidTokenError:
        return None


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
    x_auth_token: Optional[str] = Header(None, alias="X-Auth-Token"),
) -> Optional[TokenUser]:
    """Return current user from JWT, or None if not authenticated. Accepts Authorization: Bearer or X-Auth-Token (fallback for proxies that strip Authorization)."""
    token = None
    if credentials and credentials.credentials:
        token = credentials.credentials
    elif x_auth_token:
        token = x_auth_token
    if not token:
        return None
    payload = decode_token(token)
    if not payload:
        return None
    username = payload.get("sub")
    if not username:
        return None
    return TokenUser(username=username, role=str(payload.get("role") or "user"))


async def require_user(
    user: Optional[TokenUser] = Depends(get_current_user),
) -> TokenUser:
    """Require authenticated user. Raises 401 if not logged in."""
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def require_staff(user: TokenUser) -> TokenUser:
    """Require a staff role. Raises 403 if insufficient."""
    if not user.is_staff:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Unauthorized: Staff access required")
    return user


async def require_staff_user(
    user: TokenUser = Depends(require_user),
) -> TokenUser:
    """Dependency: require logged-in staff or admin."""
    return require_staff(user)
