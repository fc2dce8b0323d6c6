"""
Identity federation.

Login is delegated to an external OpenID-style provider. After the redirect
round trip the callback trades the authorization code for the user's email
and name, and ``get_authenticated_user`` maps that identity onto a profile,
provisioning a contractor in the tenant that owns the email domain.
"""

import os
import logging
import secrets
from typing import Optional
from urllib.parse import urlencode

import httpx
from sqlalchemy.orm import Session

from timelink.models.user import ROLE_CONTRACTOR, new_id
from timelink.schemas.tenant import UserRecord
from timelink.services import storage

logger = logging.getLogger(__name__)

IDP_AUTHORIZE_URL = os.getenv("IDP_AUTHORIZE_URL", "https://login.microsoftonline.com/common/oauth2/v2.0/authorize").strip()
IDP_TOKEN_URL = os.getenv("IDP_TOKEN_URL", "https://login.microsoftonline.com/common/oauth2/v2.0/token").strip()
IDP_USERINFO_URL = os.getenv("IDP_USERINFO_URL", "https://graph.microsoft.com/oidc/userinfo").strip()
IDP_CLIENT_ID = os.getenv("IDP_CLIENT_ID", "").strip()
IDP_CLIENT_SECRET = os.getenv("IDP_CLIENT_SECRET", "").strip()
IDP_REDIRECT_URI = os.getenv("IDP_REDIRECT_URI", "http://localhost:8000/auth/callback").strip()
IDP_TIMEOUT = float(os.getenv("IDP_TIMEOUT_SECONDS", "15"))


class IdentityError(Exception):
    """The identity provider round trip failed or produced an unusable identity."""


def initiate_login(state: Optional[str] = None) -> str:
    """URL of the provider's sign-in page. Control leaves the application here."""
    query = urlencode({
        "client_id": IDP_CLIENT_ID,
        "response_type": "code",
        "redirect_uri": IDP_REDIRECT_URI,
        "scope": "openid email profile",
        "state": state or secrets.token_urlsafe(16),
    })
    return f"{IDP_AUTHORIZE_URL}?{query}"


def exchange_code(code: str, client: Optional[httpx.Client] = None) -> dict:
    """Trade an authorization code for ``{"email", "name"}``."""
    own_client = client is None
    client = client or httpx.Client(timeout=IDP_TIMEOUT)
    try:
        r = client.post(IDP_TOKEN_URL, data={
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": IDP_REDIRECT_URI,
            "client_id": IDP_CLIENT_ID,
            "client_secret": IDP_CLIENT_SECRET,
        })
        if r.status_code >= 400:
            raise IdentityError(f"Token exchange failed: {r.status_code}")
        access_token = r.json().get("access_token")
        if not access_token:
            raise IdentityError("Token exchange returned no access token")

        r = client.get(IDP_USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"})
        if r.status_code >= 400:
            raise IdentityError(f"Userinfo lookup failed: {r.status_code}")
        info = r.json()
    except httpx.HTTPError as e:
        raise IdentityError(f"Identity provider unreachable: {e}") from e
    finally:
        if own_client:
            client.close()

    email = (info.get("email") or info.get("preferred_username") or "").strip().lower()
    if "@" not in email:
        raise IdentityError("Identity has no usable email")
    name = info.get("name") or info.get("preferred_username") or email.split("@")[0]
    return {"email": email, "name": name}


def get_authenticated_user(db: Session, email: str, name: Optional[str] = None) -> Optional[UserRecord]:
    """Existing profile for ``email``, or a new contractor in the tenant owning its domain.

    Returns None when the domain belongs to no tenant; the caller ends the session.
    """
    email = email.strip().lower()
    user = storage.get_user_by_email(db, email)
    if user:
        return user

    domain = email.split("@", 1)[1] if "@" in email else ""
    tenant = storage.get_tenant_by_domain(db, domain) if domain else None
    if not tenant:
        logger.error("No tenant found for domain: %s", domain)
        return None

    profile = UserRecord(
        id=new_id(),
        tenant_id=tenant.id,
        name=name or email.split("@")[0],
        email=email,
        role=ROLE_CONTRACTOR,
    )
    created = storage.save_user(db, tenant.id, profile)
    logger.info("Provisioned contractor %s in tenant %s", email, tenant.id)
    return created
