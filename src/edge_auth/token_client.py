"""Client for the identity provider's ``/oauth2/token`` endpoint.

Grants are form-encoded POSTs, authenticated with HTTP Basic when the app
client has a secret. Transient failures (connection errors, timeouts, 5xx)
are retried: up to ``max_attempts`` tries, the first two back to back, then
with exponential backoff plus jitter. A 4xx answer is deterministic and is
not retried.
"""

from __future__ import annotations

import logging
import random
import time
from typing import TYPE_CHECKING, Any, Final

import requests
from requests.auth import HTTPBasicAuth

from .errors import InvalidGrantError, UpstreamError
from .protocols import TokenClient, TokenSet

if TYPE_CHECKING:
    from .config import EdgeAuthConfig

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS: Final[int] = 5
DEFAULT_TIMEOUT: Final[float] = 4.0
_IMMEDIATE_RETRIES: Final[int] = 2
_BACKOFF_UNIT: Final[float] = 0.025


def backoff_delay(attempt: int) -> float:
    """Seconds to wait after failed attempt number ``attempt`` (1-based)."""
    if attempt <= _IMMEDIATE_RETRIES:
        return 0.0
    return _BACKOFF_UNIT * (2**attempt + random.random() * attempt)


class TokenEndpointClient(TokenClient):
    """Blocking token-endpoint client with bounded retry.

    Attributes:
        _url: Full URL of the token endpoint.
        _client_id: OAuth2 client id, sent in every grant body.
        _auth: HTTP Basic credentials, or None for public clients.
        _timeout: Per-attempt request timeout in seconds.
        _max_attempts: Total number of tries before giving up.
    """

    def __init__(
        self,
        url: str,
        client_id: str,
        client_secret: str | None = None,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        session: requests.Session | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")
        self._url = url
        self._client_id = client_id
        self._auth = HTTPBasicAuth(client_id, client_secret) if client_secret else None
        self._timeout = timeout
        self._max_attempts = max_attempts
        self._session = session or requests.Session()

    @classmethod
    def from_config(cls, config: EdgeAuthConfig) -> TokenEndpointClient:
        return cls(
            config.token_endpoint,
            config.client_id,
            config.client_secret,
            timeout=config.request_timeout,
        )

    def exchange_code(self, *, code: str, code_verifier: str, redirect_uri: str) -> TokenSet:
        return self._grant(
            {
                "grant_type": "authorization_code",
                "client_id": self._client_id,
                "redirect_uri": redirect_uri,
                "code": code,
                "code_verifier": code_verifier,
            }
        )

    def refresh(self, *, refresh_token: str) -> TokenSet:
        return self._grant(
            {
                "grant_type": "refresh_token",
                "client_id": self._client_id,
                "refresh_token": refresh_token,
            }
        )

    def _grant(self, body: dict[str, str]) -> TokenSet:
        grant_type = body["grant_type"]
        response = self._post_with_retry(body)
        try:
            data: Any = response.json()
        except ValueError as e:
            raise UpstreamError("Token endpoint returned a non-JSON response") from e
        if not isinstance(data, dict) or not data.get("id_token") or not data.get("access_token"):
            raise UpstreamError("Token endpoint response is missing tokens")
        logger.info("Token grant succeeded", extra={"grant_type": grant_type})
        tokens: TokenSet = {"id_token": data["id_token"], "access_token": data["access_token"]}
        if data.get("refresh_token"):
            tokens["refresh_token"] = data["refresh_token"]
        return tokens

    def _post_with_retry(self, body: dict[str, str]) -> requests.Response:
        for attempt in range(1, self._max_attempts + 1):
            try:
                response = self._session.post(
                    self._url,
                    data=body,
                    auth=self._auth,
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                    timeout=self._timeout,
                )
            except requests.RequestException as e:
                logger.warning(
                    "Token endpoint request failed",
                    extra={"attempt": attempt, "error": str(e)},
                )
            else:
                if response.status_code < 400:
                    return response
                if response.status_code < 500:
                    raise _client_error(response)
                logger.warning(
                    "Token endpoint returned a server error",
                    extra={"attempt": attempt, "status": response.status_code},
                )

            if attempt < self._max_attempts:
                delay = backoff_delay(attempt)
                if delay:
                    time.sleep(delay)

        raise UpstreamError(f"Token endpoint unavailable after {self._max_attempts} attempts")


def _client_error(response: requests.Response) -> UpstreamError:
    try:
        payload = response.json()
    except ValueError:
        payload = {}
    error = payload.get("error") if isinstance(payload, dict) else None
    logger.warning(
        "Token endpoint rejected the grant",
        extra={"status": response.status_code, "error": error},
    )
    if error == "invalid_grant":
        return InvalidGrantError("The grant is invalid or has expired")
    return UpstreamError(f"Token endpoint rejected the request ({error or response.status_code})")
