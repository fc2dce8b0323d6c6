"""Tests for identity federation, provisioning and bearer tokens."""

from datetime import timedelta
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from timelink.services.auth import (
    create_access_token,
    decode_access_token,
    sign_login_state,
    verify_login_state,
)
from timelink.services.identity import (
    IdentityError,
    exchange_code,
    get_authenticated_user,
    initiate_login,
)


def _idp(token_status=200, userinfo=None):
    def handler(request):
        if request.method == "POST":
            if token_status >= 400:
                return httpx.Response(token_status, json={"error": "invalid_grant"})
            return httpx.Response(200, json={"access_token": "idp-token"})
        assert request.headers["Authorization"] == "Bearer idp-token"
        return httpx.Response(200, json=userinfo or {"email": "Frank@Acme.com", "name": "Frank"})

    return httpx.Client(transport=httpx.MockTransport(handler))


class TestLoginFlow:
    def test_initiate_login_builds_authorize_url(self):
        url = urlparse(initiate_login(state="abc"))
        query = parse_qs(url.query)
        assert query["response_type"] == ["code"]
        assert query["state"] == ["abc"]

    def test_exchange_code(self):
        assert exchange_code("code-1", client=_idp()) == {"email": "frank@acme.com", "name": "Frank"}

    def test_exchange_code_rejected_by_provider(self):
        with pytest.raises(IdentityError):
            exchange_code("bad", client=_idp(token_status=400))

    def test_exchange_code_without_email(self):
        with pytest.raises(IdentityError):
            exchange_code("code-1", client=_idp(userinfo={"name": "Nobody"}))


class TestGetAuthenticatedUser:
    def test_existing_user_is_returned(self, db_session):
        user = get_authenticated_user(db_session, "ALICE@acme.com")
        assert user.id == "u1"

    def test_new_user_is_provisioned_as_contractor(self, db_session):
        user = get_authenticated_user(db_session, "frank@acme.com", "Frank")
        assert user.tenant_id == "t-acme"
        assert user.role == "CONTRACTOR"
        assert user.name == "Frank"
        # second login finds the same profile
        assert get_authenticated_user(db_session, "frank@acme.com").id == user.id

    def test_unknown_domain_is_refused(self, db_session):
        assert get_authenticated_user(db_session, "mallory@initech.com") is None


class TestTokens:
    def test_round_trip(self):
        token = create_access_token("u1", "t-acme", "CONTRACTOR")
        assert decode_access_token(token) == {"sub": "u1", "tenant_id": "t-acme", "role": "CONTRACTOR"}

    def test_tampered_token(self):
        token = create_access_token("u1", "t-acme", "CONTRACTOR")
        forged = token.replace("CONTRACTOR", "MANAGER")
        assert decode_access_token(forged) is None

    def test_expired_token(self):
        token = create_access_token("u1", "t-acme", "CONTRACTOR", expires_delta=timedelta(seconds=-5))
        assert decode_access_token(token) is None

    def test_garbage(self):
        assert decode_access_token("not-a-token") is None


class TestLoginState:
    def test_round_trip(self):
        assert verify_login_state(sign_login_state("abc123"), "abc123")

    def test_state_must_match(self):
        assert not verify_login_state(sign_login_state("abc123"), "other")
        assert not verify_login_state(sign_login_state("abc123"), None)
        assert not verify_login_state(None, "abc123")

    def test_tampered_cookie(self):
        cookie = sign_login_state("abc123")
        state, exp, sig = cookie.rsplit(".", 2)
        assert not verify_login_state(f"evil.{exp}.{sig}", "evil")
        assert not verify_login_state(f"{state}.{int(exp) + 3600}.{sig}", state)
        assert not verify_login_state("garbage", "garbage")

    def test_expired(self):
        assert not verify_login_state(sign_login_state("abc123", ttl_seconds=-1), "abc123")

    def test_state_cookie_is_not_an_access_token(self):
        assert decode_access_token(sign_login_state("u2.t-acme.MANAGER")) is None
