"""Error taxonomy for the edge authentication handlers.

Two families live here:

- ``EdgeAuthError`` subclasses describe *why a protocol step failed*. Each
  carries an ``ErrorKind`` tag so handlers can pick the right error page by
  category instead of by message text.
- ``TokenError`` subclasses describe *why a JWT was rejected*. They always
  mean "not authenticated" and are never surfaced to the user directly.

Security Note:
    Messages may end up in the HTML error page (escaped). They must never
    contain token values or the nonce signing secret.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Category tag carried by every ``EdgeAuthError``."""

    CONFIGURATION = "configuration"
    VALIDATION = "validation"
    REQUIRES_CONFIRMATION = "requires_confirmation"
    GROUP_AUTHORIZATION = "group_authorization"
    UPSTREAM = "upstream"


class EdgeAuthError(Exception):
    """Base exception for all protocol-handler failures.

    Attributes:
        kind: The ``ErrorKind`` category of the failure.
    """

    kind: ErrorKind = ErrorKind.VALIDATION

    def __str__(self) -> str:
        message = super().__str__()
        return f"{type(self).__name__}: {message}" if message else type(self).__name__


class ConfigurationError(EdgeAuthError):
    """Raised at cold start when the configuration document is unusable.

    No request can be served when this is raised; it is never caught by the
    handlers themselves.
    """

    kind = ErrorKind.CONFIGURATION


class ValidationError(EdgeAuthError):
    """Raised when query string or cookie data is missing or malformed.

    The user gets a "try again" page with status 200.
    """

    kind = ErrorKind.VALIDATION


class RequiresConfirmationError(EdgeAuthError):
    """Raised when nonce/state integrity checks fail.

    This occurs when:
    - The nonce cookie is absent or differs from the nonce in ``state``
    - The nonce is older than ``nonceMaxAge``
    - The nonce HMAC does not recompute

    Any of these could indicate a CSRF attempt, so the user must explicitly
    confirm before a new sign-in starts. The page never auto-redirects.
    """

    kind = ErrorKind.REQUIRES_CONFIRMATION


class GroupAuthorizationError(EdgeAuthError):
    """Raised when an authenticated user lacks the configured required group.

    This is distinct from "not authenticated": the user gets a "not
    authorized" page and is never treated as signed in.
    """

    kind = ErrorKind.GROUP_AUTHORIZATION


class UpstreamError(EdgeAuthError):
    """Raised when the identity provider reports an error or cannot be reached."""

    kind = ErrorKind.UPSTREAM


class InvalidGrantError(UpstreamError):
    """Raised when the token endpoint rejects the grant itself.

    For a refresh grant this means the refresh token is expired or revoked;
    the session is then reset rather than shown an error.
    """


class TokenError(Exception):
    """Base exception for JWT verification failures."""


class InvalidToken(TokenError):  # noqa: N818
    """Raised when a token is present but cannot be verified.

    This occurs when:
    - Token is malformed (not a valid JWT structure)
    - Signature verification fails
    - Issuer (iss) or audience (aud) doesn't match
    - Signing key (kid) cannot be resolved or the JWKS fetch fails
    """


class ExpiredToken(TokenError):  # noqa: N818
    """Raised when a token's ``exp`` claim has passed."""
