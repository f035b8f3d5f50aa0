"""Session cookie codec.

Reads the session cookies out of ``Cookie`` request headers and produces the
``Set-Cookie`` values the handlers send back. The browser is the only session
store, so these names must match byte for byte what client libraries expect.

Two naming strategies exist, selected by ``cookieCompatibility``:

- ``amplify``: ``CognitoIdentityServiceProvider.<clientId>.<user>.idToken``
  and friends, plus ``LastAuthUser`` to find ``<user>`` again.
- ``elasticsearch``: fixed ``ID-TOKEN``, ``ACCESS-TOKEN``, ``REFRESH-TOKEN``.

The CSRF cookies (nonce, nonce HMAC, PKCE verifier) are the same for both.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Final, Protocol
from urllib.parse import quote, unquote

from werkzeug.http import parse_cookie

from .errors import InvalidToken
from .verifier import decode_unverified

if TYPE_CHECKING:
    from .config import EdgeAuthConfig
    from .protocols import TokenSet

NONCE_COOKIE: Final[str] = "spa-auth-edge-nonce"
NONCE_HMAC_COOKIE: Final[str] = "spa-auth-edge-nonce-hmac"
PKCE_COOKIE: Final[str] = "spa-auth-edge-pkce"
HOSTED_UI_COOKIE: Final[str] = "amplify-signin-with-hostedUI"

EXPIRED: Final[str] = "Expires=Thu, 01 Jan 1970 00:00:00 GMT"

# Same set of characters encodeURIComponent leaves alone
_URI_COMPONENT_SAFE: Final[str] = "-_.!~*'()"


@dataclass(frozen=True, slots=True)
class SessionCookieNames:
    """Cookie names of one user's session. ``None`` means "not used"."""

    id_token: str
    access_token: str
    refresh_token: str
    last_auth_user: str | None = None
    scopes: str | None = None
    user_data: str | None = None
    hosted_ui: str | None = None


@dataclass(frozen=True, slots=True)
class SessionCookies:
    """Everything the handlers read from the request cookies."""

    token_user_name: str | None = None
    id_token: str | None = None
    access_token: str | None = None
    refresh_token: str | None = None
    scopes: str | None = None
    nonce: str | None = None
    nonce_hmac: str | None = None
    pkce: str | None = None


class CookieNaming(Protocol):
    """Strategy deciding which cookie names hold the session tokens."""

    def read_names(self, cookies: Mapping[str, str]) -> tuple[str | None, SessionCookieNames]:
        """Return ``(user name, names)`` of the session present in ``cookies``."""
        ...

    def names_for(self, user_name: str) -> SessionCookieNames:
        """Return the cookie names under which to store ``user_name``'s session."""
        ...


class AmplifyCookieNaming:
    """Naming scheme of the Amplify JS library's cookie storage."""

    def __init__(self, client_id: str) -> None:
        self._prefix = f"CognitoIdentityServiceProvider.{client_id}"

    def read_names(self, cookies: Mapping[str, str]) -> tuple[str | None, SessionCookieNames]:
        user_name = cookies.get(f"{self._prefix}.LastAuthUser")
        return user_name, self.names_for(user_name or "")

    def names_for(self, user_name: str) -> SessionCookieNames:
        user_prefix = f"{self._prefix}.{user_name}"
        return SessionCookieNames(
            id_token=f"{user_prefix}.idToken",
            access_token=f"{user_prefix}.accessToken",
            refresh_token=f"{user_prefix}.refreshToken",
            last_auth_user=f"{self._prefix}.LastAuthUser",
            scopes=f"{user_prefix}.tokenScopesString",
            user_data=f"{user_prefix}.userData",
            hosted_ui=HOSTED_UI_COOKIE,
        )


class ElasticsearchCookieNaming:
    """Fixed names, as used by Kibana/Elasticsearch Cognito integrations."""

    _NAMES: Final = SessionCookieNames(
        id_token="ID-TOKEN",
        access_token="ACCESS-TOKEN",
        refresh_token="REFRESH-TOKEN",
    )

    def read_names(self, cookies: Mapping[str, str]) -> tuple[str | None, SessionCookieNames]:
        return None, self._NAMES

    def names_for(self, user_name: str) -> SessionCookieNames:
        return self._NAMES


def naming_for(config: EdgeAuthConfig) -> CookieNaming:
    if config.cookie_compatibility == "elasticsearch":
        return ElasticsearchCookieNaming()
    return AmplifyCookieNaming(config.client_id)


def parse_cookie_headers(values: Iterable[str]) -> dict[str, str]:
    """Merge one or more ``Cookie`` header values into a name -> value dict.

    Values are percent-decoded; a value that does not decode is kept as is.
    """
    cookies: dict[str, str] = {}
    for header in values:
        parsed = parse_cookie(header)
        for name in parsed:
            cookies[name] = unquote(parsed[name])
    return cookies


def encode_value(value: str) -> str:
    return quote(value, safe=_URI_COMPONENT_SAFE)


def expire_cookie(cookie: str) -> str:
    """Turn ``name=value; attrs`` into an immediately expiring cookie.

    The value is cleared and any ``Max-Age``/``Expires`` attribute replaced by
    an ``Expires`` date in the past.
    """
    name, _, rest = cookie.partition("=")
    attributes = [part.strip() for part in rest.split(";")[1:]]
    attributes = [
        part
        for part in attributes
        if part and not part.lower().startswith(("max-age", "expires"))
    ]
    return "; ".join([f"{name}=", *attributes, EXPIRED])


class CookieCodec:
    """Reads and writes the session and CSRF cookies for one configuration.

    Example:
        ```python
        codec = CookieCodec(config)
        cookies = codec.parse(request.header_values("cookie"))
        set_cookies = codec.new_tokens(tokens)
        ```
    """

    def __init__(self, config: EdgeAuthConfig, naming: CookieNaming | None = None) -> None:
        self._config = config
        self._naming = naming or naming_for(config)

    def parse(self, cookie_headers: Iterable[str]) -> SessionCookies:
        cookies = parse_cookie_headers(cookie_headers)
        user_name, names = self._naming.read_names(cookies)
        return SessionCookies(
            token_user_name=user_name,
            id_token=cookies.get(names.id_token) or None,
            access_token=cookies.get(names.access_token) or None,
            refresh_token=cookies.get(names.refresh_token) or None,
            scopes=cookies.get(names.scopes) if names.scopes else None,
            nonce=cookies.get(NONCE_COOKIE) or None,
            nonce_hmac=cookies.get(NONCE_HMAC_COOKIE) or None,
            pkce=cookies.get(PKCE_COOKIE) or None,
        )

    # CSRF cookies

    def nonce_cookies(self, nonce: str, nonce_hmac: str) -> list[str]:
        settings = self._config.cookie_settings.nonce
        return [
            f"{NONCE_COOKIE}={encode_value(nonce)}; {settings}",
            f"{NONCE_HMAC_COOKIE}={encode_value(nonce_hmac)}; {settings}",
        ]

    def pkce_cookie(self, pkce: str) -> str:
        return f"{PKCE_COOKIE}={encode_value(pkce)}; {self._config.cookie_settings.nonce}"

    def expired_csrf_cookies(self) -> list[str]:
        settings = self._config.cookie_settings.nonce
        return [
            expire_cookie(f"{name}=; {settings}")
            for name in (NONCE_COOKIE, NONCE_HMAC_COOKIE, PKCE_COOKIE)
        ]

    # Session cookies

    def new_tokens(self, tokens: TokenSet) -> list[str]:
        """Cookies after a successful code exchange.

        A missing refresh token expires any stale refresh token cookie.
        """
        cookies = self._session_cookies(tokens, include_refresh=True)
        if not tokens.get("refresh_token"):
            names = self._names(tokens)
            cookies[names.refresh_token] = expire_cookie(cookies[names.refresh_token])
        return [*cookies.values(), *self.expired_csrf_cookies()]

    def refreshed(self, tokens: TokenSet) -> list[str]:
        """Cookies after a successful refresh; the refresh token cookie is left alone."""
        cookies = self._session_cookies(tokens, include_refresh=False)
        return [*cookies.values(), *self.expired_csrf_cookies()]

    def refresh_failed(self, tokens: TokenSet, user_name: str | None = None) -> list[str]:
        """Expire the refresh token so the next request starts a fresh sign-in."""
        names = self._names(tokens, user_name)
        refresh = expire_cookie(f"{names.refresh_token}=; {self._config.cookie_settings.refresh_token}")
        return [refresh, *self.expired_csrf_cookies()]

    def sign_out(self, tokens: TokenSet, user_name: str | None = None) -> list[str]:
        """Expire every session cookie plus the CSRF cookies."""
        cookies = self._session_cookies(tokens, include_refresh=True, user_name=user_name)
        return [*(expire_cookie(c) for c in cookies.values()), *self.expired_csrf_cookies()]

    def _names(self, tokens: TokenSet, user_name: str | None = None) -> SessionCookieNames:
        return self._naming.names_for(user_name or _user_name_of(tokens))

    def _session_cookies(
        self,
        tokens: TokenSet,
        *,
        include_refresh: bool,
        user_name: str | None = None,
    ) -> dict[str, str]:
        settings = self._config.cookie_settings
        claims = _claims_of(tokens)
        user_name = user_name or str(claims.get("cognito:username", ""))
        names = self._naming.names_for(user_name)

        cookies = {
            names.id_token: f"{names.id_token}={encode_value(tokens.get('id_token') or '')}; {settings.id_token}",
            names.access_token: f"{names.access_token}={encode_value(tokens.get('access_token') or '')}; {settings.access_token}",
        }
        if include_refresh:
            cookies[names.refresh_token] = (
                f"{names.refresh_token}={encode_value(tokens.get('refresh_token') or '')}; {settings.refresh_token}"
            )
        if names.last_auth_user:
            cookies[names.last_auth_user] = (
                f"{names.last_auth_user}={encode_value(user_name)}; {settings.id_token}"
            )
        if names.scopes:
            scopes = " ".join(self._config.oauth_scopes)
            cookies[names.scopes] = f"{names.scopes}={encode_value(scopes)}; {settings.access_token}"
        if names.user_data:
            cookies[names.user_data] = (
                f"{names.user_data}={encode_value(_user_data(claims, user_name))}; {settings.id_token}"
            )
        if names.hosted_ui:
            cookies[names.hosted_ui] = f"{names.hosted_ui}=true; {settings.access_token}"
        return cookies


def _claims_of(tokens: TokenSet) -> dict:
    id_token = tokens.get("id_token")
    if not id_token:
        return {}
    try:
        return decode_unverified(id_token)
    except InvalidToken:
        # A garbled token still has to be expirable on sign-out
        return {}


def _user_name_of(tokens: TokenSet) -> str:
    return str(_claims_of(tokens).get("cognito:username", ""))


def _user_data(claims: Mapping[str, object], user_name: str) -> str:
    attributes = [
        {"Name": name, "Value": claims[name]} for name in ("sub", "email") if name in claims
    ]
    return json.dumps(
        {"UserAttributes": attributes, "Username": user_name}, separators=(",", ":")
    )
