# medibot/security.py
# Tokens are issued by the external auth provider; this module only verifies
# them and turns the claims into an Actor.
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import ValidationError as PydanticValidationError

from . import schemas
from .config import get_settings
from .models import UserRole

security_logger = logging.getLogger("security")

bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Mint an access token signed with SECRET_KEY.

    Production tokens come from the external auth provider. This exists for
    local development and the test suite, which need tokens the API accepts.
    """
    settings = get_settings()
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_expire_minutes)

    to_encode.update({
        "exp": expire,
        "type": "access",
        "iat": datetime.now(timezone.utc),
        "jti": secrets.token_urlsafe(16),
    })

    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def verify_token(token: str, token_type: str = "access") -> Optional[Dict[str, Any]]:
    """Verify and decode JWT token"""
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])

        if payload.get("type") != token_type:
            return None

        return payload
    except JWTError:
        return None


def actor_from_claims(payload: Dict[str, Any]) -> Optional[schemas.Actor]:
    user_id = payload.get("sub") or payload.get("user_id")
    if not user_id:
        return None
    try:
        return schemas.Actor(user_id=str(user_id), role=payload.get("role", UserRole.patient.value))
    except PydanticValidationError:
        return None


async def get_current_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> schemas.Actor:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise credentials_exception

    payload = verify_token(credentials.credentials)
    if payload is None:
        security_logger.warning("Rejected invalid or expired access token")
        raise credentials_exception

    actor = actor_from_claims(payload)
    if actor is None:
        security_logger.warning("Access token carried no usable subject or role")
        raise credentials_exception
    return actor


def require_role(*allowed_roles: str):
    """Dependency factory for role-based access control"""
    def role_dependency(actor: schemas.Actor = Depends(get_current_actor)) -> schemas.Actor:
        if actor.role.value not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required roles: {', '.join(allowed_roles)}"
            )
        return actor

    return role_dependency


require_admin = require_role("admin")
require_patient = require_role("patient", "admin")
