"""Protocol definitions for the edge authentication components.

This module defines structural interfaces using Protocol (PEP 544) for:
- Token verification
- Key resolution and caching
- Token endpoint grants

Handlers depend on these protocols only, so tests can swap in fakes without
touching the network.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, NotRequired, Protocol, TypedDict

if TYPE_CHECKING:
    from jwt import PyJWK

# ============================================================================
# Type Aliases
# ============================================================================

type Claims = Mapping[str, Any]
"""Represents the decoded JWT payload as an immutable mapping."""


class TokenSet(TypedDict):
    """Tokens as returned by the identity provider's token endpoint."""

    id_token: str
    access_token: str
    refresh_token: NotRequired[str]


# ============================================================================
# Core Protocols
# ============================================================================


class TokenVerifier(Protocol):
    """Protocol for ID-token verification implementations."""

    def verify(self, token: str) -> Claims:
        """Verify a JWT and return its decoded claims.

        Raises:
            InvalidToken: Token is malformed, signature invalid, or claims invalid
            ExpiredToken: Token's exp claim has passed
        """
        ...


class CacheStore(Protocol):
    """Protocol for caching signing keys by key id.

    Entries live for the whole process unless the implementation was given a
    TTL. A stale key can only make verification fail, never pass.
    """

    def get(self, kid: str) -> PyJWK | None:
        """Return the cached key, or None if not cached."""
        ...

    def set(self, key: PyJWK) -> None:
        """Store a signing key under its ``key_id``."""
        ...


class KeyProvider(Protocol):
    """Protocol for resolving JWT signing keys."""

    def get_key_for_token(self, kid: str) -> PyJWK:
        """Resolve a signing key by its ID.

        Raises:
            InvalidToken: If kid cannot be resolved or the key set cannot be
                fetched.
        """
        ...


class TokenClient(Protocol):
    """Protocol for the identity provider's token endpoint."""

    def exchange_code(self, *, code: str, code_verifier: str, redirect_uri: str) -> TokenSet:
        """Redeem an authorization code.

        Raises:
            UpstreamError: The endpoint failed or could not be reached.
        """
        ...

    def refresh(self, *, refresh_token: str) -> TokenSet:
        """Redeem a refresh token.

        Raises:
            InvalidGrantError: The refresh token is expired or revoked.
            UpstreamError: Any other endpoint failure.
        """
        ...
