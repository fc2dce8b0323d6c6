"""
Authentication and authorization dependencies.

Supports bearer-token auth (production) with demo-header fallback when
AUTH_MODE=demo. Demo headers: X-User-Id, X-Tenant-Id.
"""

import os
from fastapi import HTTPException, Header, Depends
from sqlalchemy.orm import Session
from typing import Optional

from timelink.database import get_db
from timelink.models.user import ROLE_MANAGER
from timelink.schemas.tenant import UserRecord
from timelink.services import storage
from timelink.services.auth import decode_access_token

AUTH_MODE = os.getenv("AUTH_MODE", "demo")  # "demo" or "token"

# Demo placeholders, used only when AUTH_MODE=demo and no token is provided
DEMO_TENANT_ID = os.getenv("DEMO_TENANT_ID", "t-acme")
DEMO_USER_ID = os.getenv("DEMO_USER_ID", "u1")


def _token_claims(authorization: Optional[str]) -> Optional[dict]:
    if not authorization:
        return None
    token = authorization.removeprefix("Bearer ").strip()
    if not token:
        return None
    claims = decode_access_token(token)
    if not claims:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return claims


def get_current_tenant_id(
    authorization: Optional[str] = Header(default=None),
    x_tenant_id: Optional[str] = Header(default=None),
) -> str:
    claims = _token_claims(authorization)
    if claims:
        return claims["tenant_id"]
    if AUTH_MODE == "demo":
        return x_tenant_id or DEMO_TENANT_ID
    raise HTTPException(status_code=401, detail="Not authenticated")


def get_current_user_id(
    authorization: Optional[str] = Header(default=None),
    x_user_id: Optional[str] = Header(default=None),
) -> str:
    claims = _token_claims(authorization)
    if claims:
        return claims["sub"]
    if AUTH_MODE == "demo":
        return x_user_id or DEMO_USER_ID
    raise HTTPException(status_code=401, detail="Not authenticated")


def get_current_user(
    user_id: str = Depends(get_current_user_id),
    tenant_id: str = Depends(get_current_tenant_id),
    db: Session = Depends(get_db),
) -> UserRecord:
    """Profile of the caller, looked up inside the caller's tenant only."""
    user = storage.get_user(db, tenant_id, user_id)
    if not user:
        raise HTTPException(status_code=401, detail="User not found in tenant")
    return user


def get_current_role(user: UserRecord = Depends(get_current_user)) -> str:
    """Role comes from the stored profile, never from a client header."""
    return user.role


def require_manager(role: str = Depends(get_current_role)) -> str:
    """Require the MANAGER role. Returns the role."""
    if role != ROLE_MANAGER:
        raise HTTPException(status_code=403, detail="Manager access required")
    return role
