"""
Cookie based OAuth2 sign-in at the CDN edge.

High-level flow (per request)
-----------------------------
1. ``check_auth`` looks for an ID token cookie and verifies it:
   - Reads the unverified header to get ``kid``
   - Asks ``JWKSKeyProvider`` for the signing key for that ``kid``
   - Runs ``jwt.decode(...)`` with issuer/audience/algorithm checks
   - Enforces the optional required group
2. A valid token passes the request through. A token expiring within
   ``refreshSkew`` sends the browser to ``refresh_auth``; anything else
   starts the Authorization Code flow with PKCE at the hosted sign-in page.
3. ``parse_auth`` receives the callback, checks state, nonce (max age and
   HMAC) and PKCE cookies, redeems the code and sets the session cookies.
4. ``sign_out`` clears all cookies and ends the hosted-UI session.

Security notes
--------------
- Never trust claims until signature verification succeeds.
- Only allow known algorithms (avoid algorithm confusion).
- Validate ``iss`` and ``aud`` so the token was minted for *this* client.
- Throttle JWKS refresh attempts so random ``kid``s cannot force fetches.
- Nonces are HMAC-signed and time limited; a failed check always asks the
  user to confirm instead of redirecting automatically.

Example usage
-------------

.. code-block:: python

    from flask import Flask
    from edge_auth import EdgeAuthContext, EdgeAuthExtension, load_config

    app = Flask(__name__)
    ctx = EdgeAuthContext.from_config(load_config("configuration.json"))
    EdgeAuthExtension().init_app(app, ctx=ctx, exempt=["/static/"])

Behind Lambda@Edge, point each trigger at ``edge_auth.handlers.<name>.handler``.
"""

# Authorization
from .authorization import ClaimAccess, ClaimsMapping, GroupAuthorizer

# Cache stores
from .cache_stores import InMemoryCache

# Configuration
from .config import CookieSettings, EdgeAuthConfig, load_config

# Context
from .context import EdgeAuthContext, get_context, reset_context

# Cookies
from .cookies import AmplifyCookieNaming, CookieCodec, ElasticsearchCookieNaming, SessionCookies

# Errors
from .errors import (
    ConfigurationError,
    EdgeAuthError,
    ErrorKind,
    ExpiredToken,
    GroupAuthorizationError,
    InvalidGrantError,
    InvalidToken,
    RequiresConfirmationError,
    TokenError,
    UpstreamError,
    ValidationError,
)

# Flask extension
from .flask_extension import EdgeAuthExtension, get_verified_id_claims

# Key providers
from .key_providers import JWKSKeyProvider

# Messages
from .messages import EdgeRequest, EdgeResponse

# Nonces
from .nonce import NonceSigner, PKCEPair, generate_pkce_pair

# Protocols
from .protocols import CacheStore, Claims, KeyProvider, TokenClient, TokenSet, TokenVerifier

# Refresh gate
from .refresh_gate import RefreshGate

# Token endpoint
from .token_client import TokenEndpointClient

# Verifier
from .verifier import JWTVerifier, JWTVerifyOptions

__all__ = [
    # Errors
    "ConfigurationError",
    "EdgeAuthError",
    "ErrorKind",
    "ExpiredToken",
    "GroupAuthorizationError",
    "InvalidGrantError",
    "InvalidToken",
    "RequiresConfirmationError",
    "TokenError",
    "UpstreamError",
    "ValidationError",
    # Protocols
    "CacheStore",
    "Claims",
    "KeyProvider",
    "TokenClient",
    "TokenSet",
    "TokenVerifier",
    # Configuration
    "CookieSettings",
    "EdgeAuthConfig",
    "load_config",
    # Context
    "EdgeAuthContext",
    "get_context",
    "reset_context",
    # Messages
    "EdgeRequest",
    "EdgeResponse",
    # Cookies
    "AmplifyCookieNaming",
    "CookieCodec",
    "ElasticsearchCookieNaming",
    "SessionCookies",
    # Nonces
    "NonceSigner",
    "PKCEPair",
    "generate_pkce_pair",
    # Verifier
    "JWTVerifier",
    "JWTVerifyOptions",
    # Refresh gate
    "RefreshGate",
    # Cache stores
    "InMemoryCache",
    # Authorization
    "ClaimAccess",
    "ClaimsMapping",
    "GroupAuthorizer",
    # Key providers
    "JWKSKeyProvider",
    # Token endpoint
    "TokenEndpointClient",
    # Flask extension
    "EdgeAuthExtension",
    "get_verified_id_claims",
]
