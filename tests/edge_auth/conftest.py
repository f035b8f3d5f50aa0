import time
from typing import Any
from urllib.parse import unquote

import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa
from flask import Flask
from jwt import PyJWK
from jwt.algorithms import RSAAlgorithm

from edge_auth import EdgeAuthConfig, EdgeAuthContext, JWTVerifier, JWTVerifyOptions
from edge_auth.cookies import encode_value
from edge_auth.errors import UpstreamError
from edge_auth.messages import EdgeRequest, header_entries
from edge_auth.protocols import TokenSet

CLIENT_ID = "testclient"
USER_POOL_ID = "us-east-1_abc"
ISSUER = f"https://cognito-idp.us-east-1.amazonaws.com/{USER_POOL_ID}"
HOST = "d111111abcdef8.cloudfront.net"
KID = "kid1"
COOKIE_PREFIX = f"CognitoIdentityServiceProvider.{CLIENT_ID}"


@pytest.fixture()
def app():
    app = Flask(__name__)
    app.config["TESTING"] = True
    return app


@pytest.fixture(scope="session")
def rsa_private_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def signing_jwk(rsa_private_key) -> PyJWK:
    jwk_dict = RSAAlgorithm.to_jwk(rsa_private_key.public_key(), as_dict=True)
    jwk_dict.update({"kid": KID, "alg": "RS256", "use": "sig"})
    return PyJWK.from_dict(jwk_dict)


@pytest.fixture
def make_token(rsa_private_key):
    """
    Factory fixture that returns a function.

    Usage in tests:
        token = make_token(exp_in=-60, **{"cognito:groups": ["admins"]})
    """

    def _make(*, exp_in: int = 3600, user: str = "alice", kid: str = KID, **claims: Any) -> str:
        now = int(time.time())
        payload = {
            "sub": f"sub-{user}",
            "email": f"{user}@example.com",
            "cognito:username": user,
            "iss": ISSUER,
            "aud": CLIENT_ID,
            "iat": now,
            "exp": now + exp_in,
            **claims,
        }
        return jwt.encode(payload, rsa_private_key, algorithm="RS256", headers={"kid": kid})

    return _make


class StaticKeyProvider:
    """Duck-typed KeyProvider serving one key."""

    def __init__(self, key: PyJWK):
        self._key = key
        self.kids: list[str] = []

    def get_key_for_token(self, kid: str) -> PyJWK:
        self.kids.append(kid)
        return self._key


class FakeTokenClient:
    """Duck-typed TokenClient recording every grant."""

    def __init__(self):
        self.tokens: TokenSet | None = None
        self.error: Exception | None = None
        self.calls: list[dict[str, str]] = []

    def exchange_code(self, *, code: str, code_verifier: str, redirect_uri: str) -> TokenSet:
        self.calls.append(
            {"grant": "authorization_code", "code": code, "code_verifier": code_verifier, "redirect_uri": redirect_uri}
        )
        return self._answer()

    def refresh(self, *, refresh_token: str) -> TokenSet:
        self.calls.append({"grant": "refresh_token", "refresh_token": refresh_token})
        return self._answer()

    def _answer(self) -> TokenSet:
        if self.error is not None:
            raise self.error
        if self.tokens is None:
            raise UpstreamError("no tokens configured")
        return self.tokens


@pytest.fixture
def raw_config() -> dict[str, Any]:
    return {
        "clientId": CLIENT_ID,
        "userPoolId": USER_POOL_ID,
        "cognitoAuthDomain": "auth.example.com",
        "redirectPathSignIn": "/parseauth",
        "redirectPathSignOut": "/",
        "redirectPathAuthRefresh": "/refreshauth",
        "oauthScopes": ["openid", "email", "profile"],
        "nonceSigningSecret": "nonce-signing-secret-for-tests",
        "httpHeaders": {"Strict-Transport-Security": "max-age=31536000"},
    }


@pytest.fixture
def token_client() -> FakeTokenClient:
    return FakeTokenClient()


@pytest.fixture
def make_ctx(signing_jwk, token_client):
    """Build an EdgeAuthContext from a raw config dict, with network-free collaborators."""

    def _make(raw: dict[str, Any]) -> EdgeAuthContext:
        config = EdgeAuthConfig.from_dict(raw)
        verifier = JWTVerifier(
            StaticKeyProvider(signing_jwk),
            JWTVerifyOptions(issuer=config.token_issuer, audience=config.client_id),
        )
        return EdgeAuthContext.from_config(config, verifier=verifier, token_client=token_client)

    return _make


@pytest.fixture
def ctx(make_ctx, raw_config) -> EdgeAuthContext:
    return make_ctx(raw_config)


def session_cookies(
    id_token: str | None = None,
    refresh_token: str | None = None,
    *,
    user: str = "alice",
    **extra: str,
) -> dict[str, str]:
    """Amplify style session cookies for ``user``."""
    cookies = {f"{COOKIE_PREFIX}.LastAuthUser": user}
    if id_token:
        cookies[f"{COOKIE_PREFIX}.{user}.idToken"] = id_token
        cookies[f"{COOKIE_PREFIX}.{user}.accessToken"] = "access-token"
    if refresh_token:
        cookies[f"{COOKIE_PREFIX}.{user}.refreshToken"] = refresh_token
    cookies.update(extra)
    return cookies


def make_request(
    uri: str = "/",
    querystring: str = "",
    cookies: dict[str, str] | None = None,
) -> EdgeRequest:
    headers = {"host": header_entries("Host", [HOST])}
    if cookies:
        cookie_header = "; ".join(f"{name}={encode_value(value)}" for name, value in cookies.items())
        headers["cookie"] = header_entries("Cookie", [cookie_header])
    return EdgeRequest(uri=uri, querystring=querystring, headers=headers)


def parse_set_cookies(set_cookies: list[str]) -> dict[str, tuple[str, str]]:
    """Map cookie name -> (decoded value, attributes) for a list of Set-Cookie values."""
    parsed = {}
    for cookie in set_cookies:
        pair, _, attributes = cookie.partition(";")
        name, _, value = pair.partition("=")
        parsed[name] = (unquote(value), attributes.strip())
    return parsed


def is_expired(attributes: str) -> bool:
    return "Expires=Thu, 01 Jan 1970 00:00:00 GMT" in attributes
