"""Gatekeeper for every protected request.

Outcomes:
1. Valid, unexpired ID token → the request passes through unchanged.
2. ID token (nearly) expired and a refresh token present → 307 to the
   refresh path, carrying a signed nonce.
3. Anything else, including any exception while checking → 307 to the
   hosted sign-in page with a fresh PKCE challenge.

A user who is signed in but lacks the required group gets the "not
authorized" page instead of yet another sign-in.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from typing import Any

from ..context import EdgeAuthContext, get_context
from ..errors import GroupAuthorizationError, InvalidToken
from ..messages import EdgeRequest, EdgeResponse, cloudfront_request, html, redirect
from ..nonce import generate_pkce_pair
from ..pages import render_error
from ..state import encode_state
from ..verifier import decode_unverified
from ._shared import query_string

logger = logging.getLogger(__name__)


def handle(request: EdgeRequest, ctx: EdgeAuthContext) -> EdgeRequest | EdgeResponse:
    """Decide between passthrough, refresh redirect and sign-in redirect."""
    config = ctx.config
    domain_name = request.host
    requested_uri = request.requested_uri
    cookies = ctx.cookies.parse(request.header_values("cookie"))

    try:
        if not cookies.id_token:
            raise InvalidToken("No ID token present in cookies")

        exp = decode_unverified(cookies.id_token).get("exp")
        if not isinstance(exp, (int, float)):
            raise InvalidToken("ID token has no exp claim")

        if time.time() > exp - config.refresh_skew and cookies.refresh_token:
            nonce, nonce_hmac = ctx.signer.reuse_or_create(cookies.nonce, cookies.nonce_hmac)
            qs = query_string({"requestedUri": requested_uri, "nonce": nonce})
            logger.info("ID token (nearly) expired, redirecting to refresh")
            return redirect(
                f"https://{domain_name}{config.redirect_path_auth_refresh}?{qs}",
                ctx.cookies.nonce_cookies(nonce, nonce_hmac),
                ctx.headers,
            )

        ctx.check_id_token(cookies.id_token)
        logger.debug("Access allowed", extra={"uri": request.uri})
        return request

    except GroupAuthorizationError as err:
        logger.warning("Signed-in user lacks required group")
        return html(render_error(err, f"https://{domain_name}{requested_uri}"), ctx.headers)

    except Exception as err:
        logger.info("Redirecting to sign-in", extra={"reason": str(err)})
        return _sign_in_redirect(ctx, domain_name, requested_uri, cookies.nonce, cookies.nonce_hmac)


def _sign_in_redirect(
    ctx: EdgeAuthContext,
    domain_name: str,
    requested_uri: str,
    original_nonce: str | None,
    original_nonce_hmac: str | None,
) -> EdgeResponse:
    config = ctx.config
    nonce, nonce_hmac = ctx.signer.reuse_or_create(original_nonce, original_nonce_hmac)
    pkce = generate_pkce_pair(config.secret_allowed_characters, config.pkce_length)
    qs = query_string(
        {
            "redirect_uri": f"https://{domain_name}{config.redirect_path_sign_in}",
            "response_type": "code",
            "client_id": config.client_id,
            "state": encode_state(nonce, requested_uri),
            "scope": " ".join(config.oauth_scopes),
            "code_challenge_method": "S256",
            "code_challenge": pkce.code_challenge,
        }
    )
    return redirect(
        f"{config.authorize_endpoint}?{qs}",
        [*ctx.cookies.nonce_cookies(nonce, nonce_hmac), ctx.cookies.pkce_cookie(pkce.code_verifier)],
        ctx.headers,
    )


def handler(event: Mapping[str, Any], context: Any = None) -> dict[str, Any]:
    """Lambda@Edge viewer-request entry point."""
    result = handle(cloudfront_request(event), get_context())
    return result.to_cloudfront()
