"""Per-process handler context.

Everything the handlers share (configuration, JWKS-backed verifier, token
client, nonce signer, cookie codec) is bundled in one immutable
``EdgeAuthContext``. It is built lazily on the first request and reused for
the life of the process. Two requests racing to build it both produce a
valid context; the last one wins and nothing breaks.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .app_logging import setup_logger
from .authorization import ClaimAccess, ClaimsMapping, GroupAuthorizer
from .config import EdgeAuthConfig, load_config
from .cookies import CookieCodec
from .key_providers import JWKSKeyProvider
from .messages import Headers, as_headers
from .nonce import NonceSigner
from .token_client import TokenEndpointClient
from .verifier import JWTVerifier, JWTVerifyOptions

if TYPE_CHECKING:
    from .protocols import Claims, TokenClient, TokenVerifier

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class EdgeAuthContext:
    """Immutable bundle of collaborators passed into every handler call."""

    config: EdgeAuthConfig
    verifier: TokenVerifier
    authorizer: GroupAuthorizer
    token_client: TokenClient
    signer: NonceSigner
    cookies: CookieCodec
    headers: Headers

    @classmethod
    def from_config(
        cls,
        config: EdgeAuthConfig,
        *,
        verifier: TokenVerifier | None = None,
        token_client: TokenClient | None = None,
    ) -> EdgeAuthContext:
        if verifier is None:
            verifier = JWTVerifier(
                JWKSKeyProvider(config.token_jwks_uri, timeout=config.request_timeout),
                JWTVerifyOptions(issuer=config.token_issuer, audience=config.client_id),
            )
        return cls(
            config=config,
            verifier=verifier,
            authorizer=GroupAuthorizer(ClaimAccess(ClaimsMapping()), config.required_group),
            token_client=token_client or TokenEndpointClient.from_config(config),
            signer=NonceSigner(
                config.nonce_signing_secret,
                max_age=config.nonce_max_age,
                length=config.nonce_length,
                allowed_characters=config.secret_allowed_characters,
            ),
            cookies=CookieCodec(config),
            headers=as_headers(config.http_headers),
        )

    def check_id_token(self, id_token: str) -> Claims:
        """Verify the ID token and enforce the required group.

        Raises:
            InvalidToken, ExpiredToken: The token is not valid.
            GroupAuthorizationError: The user lacks the required group.
        """
        claims = self.verifier.verify(id_token)
        self.authorizer.authorize(claims)
        return claims


_context: EdgeAuthContext | None = None


def get_context() -> EdgeAuthContext:
    """Return the process-wide context, building it on first use.

    Raises:
        ConfigurationError: If the configuration document is unusable.
    """
    global _context
    if _context is None:
        config = load_config()
        setup_logger(config.log_level)
        _context = EdgeAuthContext.from_config(config)
        logger.debug("Configuration loaded", extra={"client_id": config.client_id})
    return _context


def reset_context() -> None:
    """Forget the cached context so the next call reloads configuration."""
    global _context
    _context = None
