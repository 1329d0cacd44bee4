"""Tests for the Google OpenID Connect collaborators."""

import asyncio
import base64
import hashlib
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from fakes import CLIENT_ID, GOOGLE_KID, REDIRECT_URL, FakeGoogle, make_id_token, rsa_key
from smartwallet.errors import InvalidIdentityTokenError, NetworkError
from smartwallet.oauth import GOOGLE_AUTH_URL, GoogleOAuth, GooglePKCE


def _query(url: str) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(urlsplit(url).query).items()}


class TestAuthUrl:
    def test_carries_client_redirect_scope_and_state(self):
        url = FakeGoogle().client().get_auth_url("state-123")
        params = _query(url)

        assert url.startswith(GOOGLE_AUTH_URL + "?")
        assert params["client_id"] == CLIENT_ID
        assert params["redirect_uri"] == REDIRECT_URL
        assert params["response_type"] == "code"
        assert params["state"] == "state-123"
        assert set(params["scope"].split()) == {"openid", "https://www.googleapis.com/auth/userinfo.email"}
        assert "code_challenge" not in params

    def test_pkce_adds_s256_challenge(self):
        client = FakeGoogle().client(GooglePKCE, code_verifier="v" * 64)
        params = _query(client.get_auth_url("s"))

        expected = base64.urlsafe_b64encode(hashlib.sha256(b"v" * 64).digest()).rstrip(b"=").decode()
        assert params["code_challenge"] == expected
        assert params["code_challenge_method"] == "S256"

    def test_client_id_is_required(self):
        with pytest.raises(ValueError):
            GoogleOAuth(client_id="", client_secret="x", redirect_url=REDIRECT_URL)


class TestExchangeCode:
    def test_returns_id_token(self):
        google = FakeGoogle()
        id_token = asyncio.run(google.client().exchange_code("code-1"))

        assert id_token == google.id_token
        form = google.token_requests[0]
        assert form["code"] == "code-1"
        assert form["grant_type"] == "authorization_code"
        assert form["client_secret"] == "shh"

    def test_pkce_sends_verifier_and_omits_empty_secret(self):
        google = FakeGoogle()
        client = google.client(GooglePKCE, client_secret="", code_verifier="w" * 64)
        asyncio.run(client.exchange_code("code-2"))

        form = google.token_requests[0]
        assert form["code_verifier"] == "w" * 64
        assert "client_secret" not in form

    def test_refused_code_returns_none(self, caplog):
        google = FakeGoogle()
        google.refuse = True

        with caplog.at_level("WARNING"):
            assert asyncio.run(google.client().exchange_code("bad")) is None
        assert "refused the code" in caplog.text

    @pytest.mark.parametrize("response", [
        httpx.Response(200, json={"access_token": "ya29.x"}),
        httpx.Response(200, json={"id_token": ""}),
        httpx.Response(200, text="<html>oops</html>"),
    ])
    def test_missing_id_token_returns_none(self, response):
        client = GoogleOAuth(
            client_id=CLIENT_ID,
            client_secret="shh",
            redirect_url=REDIRECT_URL,
            transport=httpx.MockTransport(lambda request: response),
        )
        assert asyncio.run(client.exchange_code("c")) is None

    def test_transport_failure_raises_network_error(self):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        client = GoogleOAuth(
            client_id=CLIENT_ID,
            client_secret="shh",
            redirect_url=REDIRECT_URL,
            transport=httpx.MockTransport(handler),
        )
        with pytest.raises(NetworkError):
            asyncio.run(client.exchange_code("c"))


class TestIssuerKeys:
    def test_returns_numbers_of_matching_key(self):
        google = FakeGoogle()
        e, n = asyncio.run(google.client().get_issuer_key(GOOGLE_KID))

        numbers = rsa_key("google").public_key().public_numbers()
        assert (e, n) == (numbers.e, numbers.n)
        assert google.cert_requests == 1

    def test_unknown_kid(self):
        with pytest.raises(InvalidIdentityTokenError):
            asyncio.run(FakeGoogle().client().get_issuer_key("missing-kid"))

    def test_certs_failure_raises_network_error(self):
        client = GoogleOAuth(
            client_id=CLIENT_ID,
            client_secret="shh",
            redirect_url=REDIRECT_URL,
            transport=httpx.MockTransport(lambda request: httpx.Response(503)),
        )
        with pytest.raises(NetworkError) as excinfo:
            asyncio.run(client.get_issuer_key(GOOGLE_KID))
        assert excinfo.value.status_code == 503


class TestVerifyIdentityToken:
    def test_valid_token_yields_claims(self):
        google = FakeGoogle(make_id_token("frank@example.com"))
        claims = asyncio.run(google.client().verify_identity_token(google.id_token))
        assert claims["email"] == "frank@example.com"

    def test_wrong_audience_is_rejected(self):
        google = FakeGoogle(make_id_token(audience="someone-else"))
        with pytest.raises(InvalidIdentityTokenError):
            asyncio.run(google.client().verify_identity_token(google.id_token))

    def test_garbage_is_rejected(self):
        with pytest.raises(InvalidIdentityTokenError):
            asyncio.run(FakeGoogle().client().verify_identity_token("not-a-token"))
