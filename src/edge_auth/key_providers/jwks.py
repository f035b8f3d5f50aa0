"""
JWKS key provider.

Resolves JWT signing keys from the identity provider's published key set
(``<issuer>/.well-known/jwks.json``) with per-kid caching and throttled
re-fetching.
"""

from __future__ import annotations

import logging

from jwt import PyJWK, PyJWKClient, PyJWKClientError

from ..cache_stores import InMemoryCache
from ..errors import InvalidToken
from ..protocols import CacheStore, KeyProvider
from ..refresh_gate import RefreshGate

logger = logging.getLogger(__name__)


class JWKSKeyProvider(KeyProvider):
    """
    Resolves JWT signing keys from a JWKS endpoint.

    Resolution Strategy
    -------------------
    For each requested `kid`:

    1) Cache lookup (fast path)
        - If the key was resolved before in this process, return it.

    2) Key set lookup
        - Fetch the key set (PyJWKClient keeps its own copy after the first
          download) and pick the key with the matching `kid`.

    3) Forced refresh (rate-limited)
        - If the kid is unknown and the RefreshGate allows, download the key
          set again and retry once. Keys may have been rotated.
        - If throttled, fail.

    4) Failure
        - Raises InvalidToken. A fetch error is never treated as a pass.

    Parameters
    ----------
    jwks_uri : str
        Location of the JWKS document.

    cache : CacheStore
        Per-kid key cache. Defaults to a process-lifetime InMemoryCache.

    timeout : float
        Seconds before a JWKS download is abandoned.

    gate : RefreshGate
        Throttle for forced re-fetches of unknown kids.
    """

    def __init__(
        self,
        jwks_uri: str,
        cache: CacheStore | None = None,
        timeout: float = 4.0,
        gate: RefreshGate | None = None,
    ) -> None:
        self._cache = cache or InMemoryCache()
        self._gate = gate or RefreshGate()
        self._client = PyJWKClient(jwks_uri, cache_jwk_set=True, timeout=timeout)

    def get_key_for_token(self, kid: str) -> PyJWK:
        cached = self._cache.get(kid)
        if cached is not None:
            return cached

        try:
            jwk = self._find(kid, refresh=False)
            if jwk is None:
                if not self._gate.allow():
                    raise InvalidToken("Unknown kid and key refresh throttled")
                logger.info("Unknown kid, re-fetching JWKS", extra={"kid": kid})
                jwk = self._find(kid, refresh=True)
        except PyJWKClientError as e:
            logger.error("Unable to fetch JWKS", extra={"error": str(e)})
            raise InvalidToken("Unable to fetch signing keys") from e

        if jwk is None:
            raise InvalidToken(f"No signing key found for kid {kid!r}")

        self._cache.set(jwk)
        return jwk

    def _find(self, kid: str, *, refresh: bool) -> PyJWK | None:
        for key in self._client.get_signing_keys(refresh=refresh):
            if key.key_id == kid:
                return key
        return None
