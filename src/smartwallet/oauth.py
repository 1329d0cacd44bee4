"""
Google OpenID Connect collaborators.

Provides:
1. Authorization URL construction (authorization code, optionally with PKCE)
2. Code-for-identity-token exchange
3. Issuer signing-key lookup (JWKS) by key id, used to build proof inputs
4. Identity-token verification (signature, audience, issuer) before the token is trusted
"""

from __future__ import annotations

import base64
import hashlib
import json
import logging
import secrets
from typing import Any, Optional, Protocol
from urllib.parse import urlencode

import httpx
import jwt
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicNumbers
from jwt.algorithms import RSAAlgorithm

from .errors import InvalidIdentityTokenError, MalformedResponseError, NetworkError


logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_CERTS_URL = "https://www.googleapis.com/oauth2/v3/certs"
GOOGLE_ISSUERS = ("https://accounts.google.com", "accounts.google.com")
GOOGLE_SCOPES = (
    "https://www.googleapis.com/auth/userinfo.email",
    "openid",
)


class IdentityProvider(Protocol):
    def get_auth_url(self, state: str) -> str: ...

    async def exchange_code(self, code: str) -> Optional[str]: ...

    async def get_issuer_key(self, kid: str) -> tuple[int, int]: ...

    async def verify_identity_token(self, token: str, verify_exp: bool = True) -> dict[str, Any]: ...


class GoogleOAuth:
    """Authorization-code flow with a client secret."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_url: str,
        timeout_seconds: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        auth_url: str = GOOGLE_AUTH_URL,
        token_url: str = GOOGLE_TOKEN_URL,
        certs_url: str = GOOGLE_CERTS_URL,
    ):
        if not client_id:
            raise ValueError("OAuth client id is required")
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_url = redirect_url
        self.auth_url = auth_url
        self.token_url = token_url
        self.certs_url = certs_url
        self._http = httpx.AsyncClient(timeout=timeout_seconds, transport=transport)

    def _auth_params(self, state: str) -> dict[str, str]:
        return {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_url,
            "response_type": "code",
            "scope": " ".join(GOOGLE_SCOPES),
            "access_type": "offline",
            "include_granted_scopes": "true",
            "state": state,
        }

    def get_auth_url(self, state: str) -> str:
        return f"{self.auth_url}?{urlencode(self._auth_params(state))}"

    def _token_params(self, code: str) -> dict[str, str]:
        return {
            "code": code,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "redirect_uri": self.redirect_url,
            "grant_type": "authorization_code",
        }

    async def exchange_code(self, code: str) -> Optional[str]:
        """Trade an authorization code for an identity token.

        Returns None when the provider refuses the code or answers without
        an ``id_token``; transport failures still raise NetworkError.
        """
        try:
            response = await self._http.post(self.token_url, data=self._token_params(code))
        except httpx.HTTPError as e:
            raise NetworkError(f"Token exchange failed: {e}") from e
        if response.status_code >= 400:
            logger.warning("Token endpoint refused the code (%s)", response.status_code)
            return None
        try:
            body = response.json()
        except ValueError:
            logger.warning("Token endpoint answered with non-JSON content")
            return None
        id_token = body.get("id_token") if isinstance(body, dict) else None
        if not isinstance(id_token, str) or not id_token:
            logger.warning("Token endpoint response has no id_token")
            return None
        return id_token

    async def _jwks(self) -> list[dict[str, Any]]:
        try:
            response = await self._http.get(self.certs_url)
        except httpx.HTTPError as e:
            raise NetworkError(f"Fetching issuer keys failed: {e}") from e
        if response.status_code >= 400:
            raise NetworkError(
                f"Fetching issuer keys failed ({response.status_code})",
                status_code=response.status_code,
            )
        try:
            body = response.json()
        except ValueError as e:
            raise MalformedResponseError(f"Issuer key set is not JSON: {e}") from e
        keys = body.get("keys") if isinstance(body, dict) else None
        if not isinstance(keys, list):
            raise MalformedResponseError("Issuer key set has no 'keys' list")
        return keys

    async def get_issuer_key(self, kid: str) -> tuple[int, int]:
        """Public exponent and modulus of the issuer key ``kid``."""
        for jwk in await self._jwks():
            if isinstance(jwk, dict) and jwk.get("kid") == kid:
                try:
                    public_key = RSAAlgorithm.from_jwk(json.dumps(jwk))
                except (jwt.InvalidKeyError, ValueError, KeyError) as e:
                    raise MalformedResponseError(f"Issuer key {kid} is not an RSA JWK: {e}") from e
                numbers = public_key.public_numbers()
                return numbers.e, numbers.n
        raise InvalidIdentityTokenError(f"No issuer key with kid {kid}")

    async def verify_identity_token(self, token: str, verify_exp: bool = True) -> dict[str, Any]:
        """Check the token's signature, audience and issuer; return its claims."""
        try:
            kid = jwt.get_unverified_header(token).get("kid")
        except jwt.DecodeError as e:
            raise InvalidIdentityTokenError(f"Undecodable identity token: {e}") from e
        exponent, modulus = await self.get_issuer_key(kid)
        key = RSAPublicNumbers(exponent, modulus).public_key()
        try:
            return jwt.decode(
                token,
                key,
                algorithms=["RS256"],
                audience=self.client_id,
                issuer=list(GOOGLE_ISSUERS),
                options={"verify_exp": verify_exp},
            )
        except jwt.PyJWTError as e:
            raise InvalidIdentityTokenError(f"Identity token rejected: {e}") from e

    async def aclose(self) -> None:
        await self._http.aclose()


def _s256(verifier: str) -> str:
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


class GooglePKCE(GoogleOAuth):
    """Authorization-code flow with a PKCE code verifier (S256).

    The client secret is optional; Google still accepts it alongside the
    verifier for web clients.
    """

    def __init__(
        self,
        client_id: str,
        redirect_url: str,
        client_secret: str = "",
        code_verifier: Optional[str] = None,
        **kwargs: Any,
    ):
        super().__init__(client_id, client_secret, redirect_url, **kwargs)
        self.code_verifier = code_verifier or secrets.token_urlsafe(64)

    @property
    def code_challenge(self) -> str:
        return _s256(self.code_verifier)

    def _auth_params(self, state: str) -> dict[str, str]:
        params = super()._auth_params(state)
        params["code_challenge"] = self.code_challenge
        params["code_challenge_method"] = "S256"
        return params

    def _token_params(self, code: str) -> dict[str, str]:
        params = super()._token_params(code)
        params["code_verifier"] = self.code_verifier
        if not self.client_secret:
            del params["client_secret"]
        return params
