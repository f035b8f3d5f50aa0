"""Typed, immutable configuration for the edge authentication handlers.

The configuration document is produced by an external provisioning step and
read once per process. It is validated here into frozen dataclasses so that
a missing or malformed field fails at cold start (``ConfigurationError``)
rather than halfway through a sign-in.

Location of the document:
    1. The explicit ``path`` argument of ``load_config``
    2. The ``EDGE_AUTH_CONFIG`` environment variable (a ``.env`` file is
       honoured via python-dotenv)
    3. ``configuration.json`` in the working directory
"""

from __future__ import annotations

import json
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Final, Literal

from dotenv import load_dotenv

from .errors import ConfigurationError

CONFIG_ENV_VAR: Final[str] = "EDGE_AUTH_CONFIG"
DEFAULT_CONFIG_FILE: Final[str] = "configuration.json"

# Allowed characters per RFC 7636 section 4.1
RFC7636_ALLOWED_CHARS: Final[str] = (
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-._~"
)

_DEFAULT_NONCE_MAX_AGE: Final[int] = 300
_DEFAULT_NONCE_LENGTH: Final[int] = 16
_DEFAULT_PKCE_LENGTH: Final[int] = 43
_DEFAULT_REFRESH_SKEW: Final[int] = 600
_DEFAULT_REQUEST_TIMEOUT: Final[float] = 4.0
_RESERVED_HEADERS: Final[frozenset[str]] = frozenset({"location", "set-cookie", "content-type"})

_USER_POOL_ID = re.compile(r"^(\S+?)_\S+$")

type Mode = Literal["spaMode", "staticSiteMode"]
type CookieCompatibility = Literal["amplify", "elasticsearch"]
type LogLevel = Literal["none", "error", "warn", "info", "debug"]


@dataclass(frozen=True, slots=True)
class CookieSettings:
    """Cookie attribute strings appended after ``name=value`` per token type.

    Example: ``"Path=/; Secure; HttpOnly; SameSite=Lax"``.
    """

    id_token: str
    access_token: str
    refresh_token: str
    nonce: str


_DEFAULT_COOKIE_SETTINGS: Final[dict[str, CookieSettings]] = {
    # The SPA reads ID/access tokens from JavaScript, so no HttpOnly there
    "spaMode": CookieSettings(
        id_token="Path=/; Secure; SameSite=Lax",
        access_token="Path=/; Secure; SameSite=Lax",
        refresh_token="Path=/; Secure; SameSite=Lax",
        nonce="Path=/; Secure; HttpOnly; SameSite=Lax",
    ),
    "staticSiteMode": CookieSettings(
        id_token="Path=/; Secure; HttpOnly; SameSite=Lax",
        access_token="Path=/; Secure; HttpOnly; SameSite=Lax",
        refresh_token="Path=/; Secure; HttpOnly; SameSite=Lax",
        nonce="Path=/; Secure; HttpOnly; SameSite=Lax",
    ),
}


@dataclass(frozen=True, slots=True)
class EdgeAuthConfig:
    """Validated configuration shared by every handler.

    Attributes:
        client_id: OAuth2 client id registered with the identity provider.
        cognito_auth_domain: Host name of the hosted sign-in service.
        token_issuer: Expected ``iss`` claim of ID tokens.
        token_jwks_uri: Where the signing keys are published.
        redirect_path_sign_in: Path of the OAuth callback (ParseAuth).
        redirect_path_sign_out: Path users land on after sign-out.
        redirect_path_auth_refresh: Path of the RefreshAuth handler.
        oauth_scopes: Scopes requested at sign-in.
        cookie_settings: Attribute strings per cookie type.
        nonce_signing_secret: HMAC key for nonce signatures.
        client_secret: Optional; enables HTTP Basic auth on the token endpoint.
        required_group: Optional group every user must belong to.
        nonce_max_age: Seconds a nonce stays valid.
        nonce_length: Characters in the random nonce part and in the HMAC.
        pkce_length: Characters in the PKCE code verifier (43-128).
        refresh_skew: Refresh tokens this many seconds before ``exp``.
        http_headers: Headers injected into every response.
    """

    client_id: str
    cognito_auth_domain: str
    token_issuer: str
    token_jwks_uri: str
    redirect_path_sign_in: str
    redirect_path_sign_out: str
    redirect_path_auth_refresh: str
    oauth_scopes: tuple[str, ...]
    cookie_settings: CookieSettings
    nonce_signing_secret: str
    client_secret: str | None = None
    required_group: str | None = None
    mode: Mode = "spaMode"
    cookie_compatibility: CookieCompatibility = "amplify"
    nonce_max_age: int = _DEFAULT_NONCE_MAX_AGE
    nonce_length: int = _DEFAULT_NONCE_LENGTH
    pkce_length: int = _DEFAULT_PKCE_LENGTH
    secret_allowed_characters: str = RFC7636_ALLOWED_CHARS
    refresh_skew: int = _DEFAULT_REFRESH_SKEW
    request_timeout: float = _DEFAULT_REQUEST_TIMEOUT
    log_level: LogLevel = "none"
    http_headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def token_endpoint(self) -> str:
        return f"https://{self.cognito_auth_domain}/oauth2/token"

    @property
    def authorize_endpoint(self) -> str:
        return f"https://{self.cognito_auth_domain}/oauth2/authorize"

    @property
    def logout_endpoint(self) -> str:
        return f"https://{self.cognito_auth_domain}/logout"

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> EdgeAuthConfig:
        """Validate a parsed configuration document.

        Args:
            raw: The decoded JSON document (camelCase keys).

        Returns:
            The immutable configuration.

        Raises:
            ConfigurationError: If a required field is missing or any field
                has the wrong type or an out-of-range value.
        """
        if not isinstance(raw, Mapping):
            raise ConfigurationError("Configuration document must be a JSON object")

        client_id = _require_str(raw, "clientId")
        token_issuer = _optional_str(raw, "tokenIssuer") or _issuer_from_user_pool(raw)
        token_jwks_uri = (
            _optional_str(raw, "tokenJwksUri") or f"{token_issuer}/.well-known/jwks.json"
        )

        mode = raw.get("mode", "spaMode")
        if mode not in _DEFAULT_COOKIE_SETTINGS:
            raise ConfigurationError(f"Unsupported mode: {mode!r}")

        compatibility = raw.get("cookieCompatibility", "amplify")
        if compatibility not in ("amplify", "elasticsearch"):
            raise ConfigurationError(f"Unsupported cookieCompatibility: {compatibility!r}")

        log_level = raw.get("logLevel", "none")
        if log_level not in ("none", "error", "warn", "info", "debug"):
            raise ConfigurationError(f"Unsupported logLevel: {log_level!r}")

        cookie_settings = _cookie_settings(raw.get("cookieSettings") or {}, mode)

        scopes = raw.get("oauthScopes")
        if (
            not isinstance(scopes, list)
            or not scopes
            or not all(isinstance(s, str) and s for s in scopes)
        ):
            raise ConfigurationError("oauthScopes must be a non-empty list of strings")

        nonce_max_age = raw.get("nonceMaxAge")
        if nonce_max_age is None:
            nonce_max_age = _max_age_from(cookie_settings.nonce) or _DEFAULT_NONCE_MAX_AGE

        pkce_length = _int(raw, "pkceLength", _DEFAULT_PKCE_LENGTH)
        if not 43 <= pkce_length <= 128:
            raise ConfigurationError("pkceLength must be between 43 and 128")

        alphabet = _optional_str(raw, "secretAllowedCharacters") or RFC7636_ALLOWED_CHARS
        if len(alphabet) > 256:
            raise ConfigurationError("secretAllowedCharacters may hold at most 256 characters")

        headers = raw.get("httpHeaders") or {}
        if not isinstance(headers, Mapping) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in headers.items()
        ):
            raise ConfigurationError("httpHeaders must map header names to strings")
        reserved = sorted(name for name in headers if name.lower() in _RESERVED_HEADERS)
        if reserved:
            raise ConfigurationError(f"httpHeaders may not set {', '.join(reserved)}")

        timeout = raw.get("requestTimeout", _DEFAULT_REQUEST_TIMEOUT)
        if not isinstance(timeout, (int, float)) or isinstance(timeout, bool) or timeout <= 0:
            raise ConfigurationError("requestTimeout must be a positive number")

        return cls(
            client_id=client_id,
            cognito_auth_domain=_require_str(raw, "cognitoAuthDomain"),
            token_issuer=token_issuer,
            token_jwks_uri=token_jwks_uri,
            redirect_path_sign_in=_require_path(raw, "redirectPathSignIn"),
            redirect_path_sign_out=_require_path(raw, "redirectPathSignOut"),
            redirect_path_auth_refresh=_require_path(raw, "redirectPathAuthRefresh"),
            oauth_scopes=tuple(scopes),
            cookie_settings=cookie_settings,
            nonce_signing_secret=_require_str(raw, "nonceSigningSecret"),
            client_secret=_optional_str(raw, "clientSecret"),
            required_group=_optional_str(raw, "requiredGroup"),
            mode=mode,
            cookie_compatibility=compatibility,
            nonce_max_age=_positive(nonce_max_age, "nonceMaxAge"),
            nonce_length=_positive(_int(raw, "nonceLength", _DEFAULT_NONCE_LENGTH), "nonceLength"),
            pkce_length=pkce_length,
            secret_allowed_characters=alphabet,
            refresh_skew=_int(raw, "refreshSkew", _DEFAULT_REFRESH_SKEW),
            request_timeout=float(timeout),
            log_level=log_level,
            http_headers=dict(headers),
        )


def load_config(path: str | os.PathLike[str] | None = None) -> EdgeAuthConfig:
    """Read and validate the configuration document.

    Raises:
        ConfigurationError: If the file cannot be read, is not JSON, or fails
            validation.
    """
    load_dotenv()
    location = Path(path or os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_FILE)
    try:
        raw = json.loads(location.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigurationError(f"Cannot read configuration file {location}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Configuration file {location} is not valid JSON") from e
    return EdgeAuthConfig.from_dict(raw)


def _require_str(raw: Mapping[str, Any], key: str) -> str:
    value = raw.get(key)
    if not isinstance(value, str) or not value:
        raise ConfigurationError(f"Missing required configuration field: {key}")
    return value


def _require_path(raw: Mapping[str, Any], key: str) -> str:
    value = _require_str(raw, key)
    if not value.startswith("/"):
        raise ConfigurationError(f"{key} must start with '/'")
    return value


def _optional_str(raw: Mapping[str, Any], key: str) -> str | None:
    value = raw.get(key)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ConfigurationError(f"{key} must be a string")
    return value


def _int(raw: Mapping[str, Any], key: str, default: int) -> int:
    value = raw.get(key, default)
    if not isinstance(value, int) or isinstance(value, bool):
        raise ConfigurationError(f"{key} must be an integer")
    return value


def _positive(value: Any, key: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        raise ConfigurationError(f"{key} must be a positive integer")
    return value


def _issuer_from_user_pool(raw: Mapping[str, Any]) -> str:
    user_pool_id = _optional_str(raw, "userPoolId")
    if not user_pool_id:
        raise ConfigurationError("Either tokenIssuer or userPoolId must be configured")
    match = _USER_POOL_ID.match(user_pool_id)
    if not match:
        raise ConfigurationError(f"Malformed userPoolId: {user_pool_id!r}")
    region = match.group(1)
    return f"https://cognito-idp.{region}.amazonaws.com/{user_pool_id}"


def _cookie_settings(raw: Any, mode: str) -> CookieSettings:
    if not isinstance(raw, Mapping):
        raise ConfigurationError("cookieSettings must be an object")
    defaults = _DEFAULT_COOKIE_SETTINGS[mode]
    values = {}
    for json_key, attr in (
        ("idToken", "id_token"),
        ("accessToken", "access_token"),
        ("refreshToken", "refresh_token"),
        ("nonce", "nonce"),
    ):
        value = raw.get(json_key)
        if value is None:
            value = getattr(defaults, attr)
        elif not isinstance(value, str):
            raise ConfigurationError(f"cookieSettings.{json_key} must be a string")
        values[attr] = value
    return CookieSettings(**values)


def _max_age_from(cookie_settings: str) -> int | None:
    for part in cookie_settings.split(";"):
        name, _, value = part.strip().partition("=")
        if name.lower() == "max-age" and value.strip().isdigit():
            return int(value.strip()) or None
    return None
