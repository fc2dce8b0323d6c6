"""
Authentication router: redirect to the identity provider, handle its callback, whoami.
"""

import os
import logging
import secrets
from typing import Iterator, Optional

import httpx
from fastapi import APIRouter, Cookie, Depends, HTTPException, Query, Response
from fastapi.responses import RedirectResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from timelink.database import get_db
from timelink.dependencies import get_current_user
from timelink.schemas.tenant import UserRecord
from timelink.services.auth import (
    LOGIN_STATE_TTL_SECONDS,
    create_access_token,
    sign_login_state,
    verify_login_state,
)
from timelink.services.identity import (
    IDP_TIMEOUT,
    IdentityError,
    exchange_code,
    get_authenticated_user,
    initiate_login,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

LOGIN_STATE_COOKIE = "timelink_login_state"
AUTH_COOKIE_SECURE = os.getenv("AUTH_COOKIE_SECURE", "false").lower() == "true"


# ---------- schemas ----------

class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserRecord


# ---------- dependencies ----------

def get_idp_client() -> Iterator[httpx.Client]:
    client = httpx.Client(timeout=IDP_TIMEOUT)
    try:
        yield client
    finally:
        client.close()


# ---------- endpoints ----------

@router.get("/login")
def login():
    state = secrets.token_urlsafe(16)
    response = RedirectResponse(initiate_login(state))
    response.set_cookie(
        LOGIN_STATE_COOKIE,
        sign_login_state(state),
        max_age=LOGIN_STATE_TTL_SECONDS,
        path="/auth",
        httponly=True,
        samesite="lax",
        secure=AUTH_COOKIE_SECURE,
    )
    return response


@router.get("/callback", response_model=LoginResponse)
def callback(
    response: Response,
    code: str = Query(..., min_length=1),
    state: Optional[str] = Query(None),
    login_state: Optional[str] = Cookie(None, alias=LOGIN_STATE_COOKIE),
    db: Session = Depends(get_db),
    client: httpx.Client = Depends(get_idp_client),
):
    if not verify_login_state(login_state, state):
        logger.warning("Login callback rejected: missing or mismatched state")
        raise HTTPException(status_code=401, detail="Invalid login state")
    response.delete_cookie(LOGIN_STATE_COOKIE, path="/auth")

    try:
        identity = exchange_code(code, client=client)
    except IdentityError as e:
        logger.warning("Login callback failed: %s", e)
        raise HTTPException(status_code=401, detail="Authentication failed")

    user = get_authenticated_user(db, identity["email"], identity.get("name"))
    if not user:
        raise HTTPException(status_code=401, detail="No tenant is registered for this email domain")

    token = create_access_token(user.id, user.tenant_id, user.role)
    return LoginResponse(access_token=token, user=user)


@router.get("/me", response_model=UserRecord)
def me(user: UserRecord = Depends(get_current_user)):
    return user
