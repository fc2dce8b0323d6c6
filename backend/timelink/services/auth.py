"""
Bearer tokens for authenticated sessions, and signed login-state cookies.

Token layout: ``user_id.tenant_id.role.exp.signature`` where the signature is
an HMAC-SHA256 over the dotted payload.
"""

import os
import hmac
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

logger = logging.getLogger(__name__)

AUTH_SECRET = os.getenv("AUTH_SECRET", "timelink-dev-secret-change-in-prod")
AUTH_TOKEN_EXPIRY_HOURS = int(os.getenv("AUTH_TOKEN_EXPIRY_HOURS", "24"))


def _sign(payload: str) -> str:
    return hmac.new(AUTH_SECRET.encode(), payload.encode(), "sha256").hexdigest()[:32]


def create_access_token(user_id: str, tenant_id: str, role: str, expires_delta: Optional[timedelta] = None) -> str:
    exp_at = datetime.now(timezone.utc) + (expires_delta or timedelta(hours=AUTH_TOKEN_EXPIRY_HOURS))
    payload = f"{user_id}.{tenant_id}.{role}.{int(exp_at.timestamp())}"
    return f"{payload}.{_sign(payload)}"


def decode_access_token(token: str) -> Optional[dict]:
    """Returns {sub, tenant_id, role} or None when the token is malformed, forged or expired."""
    parts = token.rsplit(".", 1)
    if len(parts) != 2:
        return None
    payload, sig = parts
    if not hmac.compare_digest(sig, _sign(payload)):
        return None

    fields = payload.split(".")
    if len(fields) != 4:
        return None
    user_id, tenant_id, role, exp_s = fields
    try:
        expired = int(exp_s) < int(datetime.now(timezone.utc).timestamp())
    except ValueError:
        return None
    if expired:
        logger.info("Rejected expired token for user %s", user_id)
        return None
    return {"sub": user_id, "tenant_id": tenant_id, "role": role}


# ── Login state ──
# The state handed to the identity provider is echoed back on the callback;
# a signed, short-lived cookie ties that callback to the browser that started the login.

LOGIN_STATE_TTL_SECONDS = int(os.getenv("LOGIN_STATE_TTL_SECONDS", "600"))


def _sign_state(payload: str) -> str:
    # separate namespace so a state cookie can never verify as an access token
    return _sign(f"login-state:{payload}")


def sign_login_state(state: str, ttl_seconds: int = LOGIN_STATE_TTL_SECONDS) -> str:
    exp = int(datetime.now(timezone.utc).timestamp()) + ttl_seconds
    payload = f"{state}.{exp}"
    return f"{payload}.{_sign_state(payload)}"


def verify_login_state(cookie: Optional[str], state: Optional[str]) -> bool:
    """True when ``cookie`` was issued for ``state`` and has not expired."""
    if not cookie or not state:
        return False
    parts = cookie.rsplit(".", 2)
    if len(parts) != 3:
        return False
    cookie_state, exp_s, sig = parts
    if not hmac.compare_digest(sig.encode(), _sign_state(f"{cookie_state}.{exp_s}").encode()):
        return False
    if not hmac.compare_digest(cookie_state.encode(), state.encode()):
        return False
    try:
        return int(exp_s) >= int(datetime.now(timezone.utc).timestamp())
    except ValueError:
        return False
