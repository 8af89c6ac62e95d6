"""
Mediation Engine - Authentication Utilities
JWT tokens and caller-resolution dependencies

Accounts, passwords and OAuth live in the identity service. This module
only verifies its bearer tokens and resolves them to a Caller.
"""
import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt

from .services.casework.activity_log import Actor

# Configuration
SECRET_KEY = os.getenv("JWT_SECRET_KEY", "mediation-engine-secret-key-change-in-production")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_HOURS = 24

ROLES = ("admin", "panelist", "client")

# Bearer token security
security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Caller:
    """Authenticated principal resolved from token claims."""
    user_id: str
    role: str = "client"
    panelist_id: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def as_actor(self) -> Actor:
        if self.role == "admin":
            return Actor.admin(self.user_id)
        if self.role == "panelist":
            return Actor.panelist(self.panelist_id or self.user_id)
        return Actor.client(self.user_id)


def create_access_token(
    user_id: str,
    role: str = "client",
    panelist_id: Optional[str] = None,
    expires_in: timedelta = timedelta(hours=ACCESS_TOKEN_EXPIRE_HOURS),
) -> str:
    """Create a JWT access token with role claim."""
    to_encode = {
        "sub": user_id,
        "role": role,
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    if panelist_id:
        to_encode["panelist_id"] = panelist_id
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    """Decode and validate a JWT token. Expired tokens fail validation."""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        return payload
    except JWTError:
        return None


def _caller_from_token(token: str) -> Caller:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = decode_token(token)
    if payload is None:
        raise credentials_exception

    user_id = payload.get("sub")
    role = payload.get("role", "client")
    if user_id is None or role not in ROLES:
        raise credentials_exception

    return Caller(user_id=user_id, role=role, panelist_id=payload.get("panelist_id"))


async def get_current_caller(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Caller:
    """
    Dependency to get the current authenticated caller.
    Validates the JWT and maps its claims to a Caller.
    """
    return _caller_from_token(credentials.credentials)


async def get_optional_caller(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_security),
) -> Optional[Caller]:
    """Intake may be started anonymously; a token, when present, must be valid."""
    if credentials is None:
        return None
    return _caller_from_token(credentials.credentials)


async def require_admin(caller: Caller = Depends(get_current_caller)) -> Caller:
    """
    Dependency to require admin role.
    Use this on admin-only routes.
    """
    if caller.role != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return caller


async def require_panelist(caller: Caller = Depends(get_current_caller)) -> Caller:
    """Dependency to require a panelist identity."""
    if caller.role != "panelist" or not caller.panelist_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Panelist access required"
        )
    return caller
