"""ID-token verification using PyJWT.

This module provides:
- ``JWTVerifier``: resolves the signing key for the token's ``kid`` via an
  injected KeyProvider and verifies signature, issuer, audience and expiry.
- ``decode_unverified``: reads claims without checking the signature. Only
  used to look at ``exp`` (to decide on a refresh) and ``cognito:username``
  (to name cookies). Never used to grant access.

Verification fails closed: every PyJWT or key-resolution failure surfaces as
``InvalidToken`` or ``ExpiredToken``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import jwt

from .errors import ExpiredToken, InvalidToken, TokenError
from .protocols import Claims

if TYPE_CHECKING:
    from jwt import PyJWK

    from .protocols import KeyProvider

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class JWTVerifyOptions:
    """Validation rules for ID tokens.

    Attributes:
        issuer: Expected ``iss`` claim, e.g.
            ``https://cognito-idp.us-east-1.amazonaws.com/us-east-1_abc``.
        audience: Expected ``aud`` claim. For ID tokens this is the client id.
        algorithms: Allowed signing algorithms. Must be an explicit allowlist.
        leeway: Clock skew tolerance in seconds for exp/nbf/iat validation.
    """

    issuer: str
    audience: str
    algorithms: tuple[str, ...] = ("RS256",)
    leeway: int = 0


class JWTVerifier:
    """Verifies ID tokens against keys from a ``KeyProvider``.

    The ``kid`` from the unverified header only selects the key; nothing
    else in the token is trusted until ``jwt.decode`` has checked the
    signature together with ``exp``, ``iss`` and ``aud``.

    Example:
        ```python
        verifier = JWTVerifier(
            key_provider=JWKSKeyProvider(config.token_jwks_uri),
            options=JWTVerifyOptions(
                issuer=config.token_issuer,
                audience=config.client_id,
            ),
        )
        claims = verifier.verify(id_token)
        ```
    """

    def __init__(self, key_provider: KeyProvider, options: JWTVerifyOptions) -> None:
        self._keys = key_provider
        self._opt = options

    def verify(self, token: str) -> Claims:
        """Verify a JWT and return its decoded claims.

        Raises:
            InvalidToken: If the token is malformed, its signature is invalid,
                iss/aud mismatch, or the kid cannot be resolved.
            ExpiredToken: If the token's exp claim has passed.
        """
        key = self._signing_key(token)
        try:
            return jwt.decode(
                token,
                key,
                algorithms=list(self._opt.algorithms),
                audience=self._opt.audience,
                issuer=self._opt.issuer,
                leeway=self._opt.leeway,
                options={"require": ["exp", "iss", "aud"]},
            )
        except jwt.ExpiredSignatureError as e:
            raise ExpiredToken("ID token expired") from e
        except jwt.InvalidTokenError as e:
            logger.debug("ID token rejected", extra={"reason": str(e)})
            raise InvalidToken(f"ID token rejected: {e}") from e

    def _signing_key(self, token: str) -> PyJWK:
        try:
            kid = jwt.get_unverified_header(token).get("kid")
        except jwt.InvalidTokenError as e:
            raise InvalidToken(f"Cannot parse JWT header: {e}") from e
        if not isinstance(kid, str) or not kid:
            raise InvalidToken("JWT header has no 'kid'")
        try:
            return self._keys.get_key_for_token(kid)
        except TokenError:
            raise
        except Exception as e:
            raise InvalidToken(f"Key resolution failed: {e}") from e


def decode_unverified(token: str) -> dict[str, Any]:
    """Decode a JWT payload without verifying anything.

    Raises:
        InvalidToken: If the token is not a structurally valid JWT.
    """
    try:
        return jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError as e:
        raise InvalidToken(f"Cannot parse JWT: {e}") from e
