"""
Authentication Helpers
======================

Resolves the calling account for the lifecycle endpoints:

1. `Authorization: Bearer <jwt>` (HS256, account id in `sub`)
2. `X-User-Id` header (legacy callers; not accepted on admin routes by default)

Admin endpoints additionally require the ADMIN role; the sweep endpoint is
protected by the shared cron secret instead of a user identity.
"""

import os
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

import jwt
from fastapi import Depends, Header, HTTPException

from .config import get_settings
from .db.models import AppUser, UserRole
from .db.session import get_db_session

logger = logging.getLogger(__name__)

# JWT configuration
JWT_SECRET_KEY = os.environ.get("JWT_SECRET_KEY", "dev-secret-key-change-in-production")
JWT_ALGORITHM = "HS256"
JWT_ACCESS_TOKEN_EXPIRE_MINUTES = int(os.environ.get("JWT_ACCESS_TOKEN_EXPIRE_MINUTES", "60"))


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token"""
    to_encode = data.copy()
    if "sub" in to_encode:
        to_encode["sub"] = str(to_encode["sub"])
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=JWT_ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    """Decode and validate a JWT token"""
    try:
        return jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except jwt.PyJWTError as e:
        logger.warning(f"Invalid JWT token: {e}")
        return None


# =============================================================================
# AUTH CONTEXT
# =============================================================================

@dataclass
class AuthContext:
    """Authorization context for a request"""
    user_id: int
    email: str
    role: UserRole
    company_name: Optional[str] = None
    via_token: bool = False

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


def _parse_user_id(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def get_auth_context(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    authorization: Optional[str] = Header(None, alias="Authorization"),
) -> AuthContext:
    """
    Get auth context from either:
    - `Authorization: Bearer <jwt>` (preferred when present)
    - `X-User-Id` (legacy, when ALLOW_USER_ID_HEADER is on)

    A token that is present but invalid is rejected outright.
    """
    if authorization and authorization.lower().startswith("bearer "):
        payload = decode_token(authorization.split(" ", 1)[1].strip())
        if not payload:
            raise HTTPException(status_code=401, detail="Invalid or expired token")
        user_id = _parse_user_id(payload.get("sub"))
        via_token = True
    elif x_user_id and get_settings().allow_user_id_header:
        user_id = _parse_user_id(x_user_id)
        via_token = False
    else:
        user_id = None

    if user_id is None:
        raise HTTPException(status_code=401, detail="Authentication required")

    # Short-lived session: the handler opens its own transaction
    with get_db_session() as db:
        user = db.query(AppUser).filter(AppUser.id == user_id).first()
        if user is None or not user.is_active:
            logger.warning(f"Auth failed: user_id={user_id}")
            raise HTTPException(status_code=401, detail="User not found or inactive")

        return AuthContext(
            user_id=user.id,
            email=user.email,
            role=user.role,
            company_name=user.company_name,
            via_token=via_token,
        )


def require_admin(auth: AuthContext = Depends(get_auth_context)) -> AuthContext:
    """Dependency: caller must be an admin, identified by a token unless configured otherwise"""
    if not auth.via_token and get_settings().admin_requires_token:
        logger.warning(f"Admin route called with X-User-Id only: user_id={auth.user_id}")
        raise HTTPException(status_code=401, detail="Bearer token required")
    if not auth.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return auth


def require_cron_secret(x_cron_secret: Optional[str] = Header(None, alias="x-cron-secret")) -> None:
    """Dependency: caller must present the configured cron secret"""
    expected = get_settings().cron_secret
    if not expected or not x_cron_secret or not secrets.compare_digest(x_cron_secret, expected):
        logger.warning("Rejected sweep call with missing or invalid cron secret")
        raise HTTPException(status_code=401, detail="Unauthorized")
