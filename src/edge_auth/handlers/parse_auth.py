"""OAuth callback: exchange the authorization code for tokens.

Validation order (first failure wins):

1. Identity provider reported an error             → UpstreamError
2. ``code``/``state`` missing or repeated          → ValidationError
3. ``state`` is not base64url JSON with both keys  → ValidationError
4. Nonce cookie missing or != ``state.nonce``       → RequiresConfirmationError
5. PKCE cookie missing                              → ValidationError
6. Nonce older than ``nonceMaxAge``                 → RequiresConfirmationError
7. Nonce HMAC mismatch                              → RequiresConfirmationError

Only then is the code redeemed. A callback that fails but arrives with a
valid ID token cookie (e.g. the second of two tabs finishing sign-in) is
redirected to its target instead of showing an error.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from ..context import EdgeAuthContext, get_context
from ..cookies import SessionCookies
from ..errors import (
    EdgeAuthError,
    GroupAuthorizationError,
    RequiresConfirmationError,
    TokenError,
    UpstreamError,
    ValidationError,
)
from ..messages import EdgeRequest, EdgeResponse, cloudfront_request, html, redirect
from ..pages import render_error
from ..state import OAuthState, decode_state
from ._shared import single

logger = logging.getLogger(__name__)


def handle(request: EdgeRequest, ctx: EdgeAuthContext) -> EdgeResponse:
    config = ctx.config
    domain_name = request.host
    redirected_from_uri = f"https://{domain_name}"
    cookies = ctx.cookies.parse(request.header_values("cookie"))

    try:
        code, state = _validate_query_string(request)
        redirected_from_uri += state.requested_uri
        pkce = _validate_cookies(state, cookies, ctx)

        tokens = ctx.token_client.exchange_code(
            code=code,
            code_verifier=pkce,
            redirect_uri=f"https://{domain_name}{config.redirect_path_sign_in}",
        )
        ctx.check_id_token(tokens["id_token"])
        logger.info("Sign-in completed")
        return redirect(redirected_from_uri, ctx.cookies.new_tokens(tokens), ctx.headers)

    except Exception as err:
        if cookies.id_token:
            # The user may have signed in already, e.g. in another tab
            try:
                ctx.check_id_token(cookies.id_token)
            except (TokenError, GroupAuthorizationError):
                pass
            else:
                logger.info("Callback failed but a valid ID token is present, redirecting")
                return redirect(redirected_from_uri, [], ctx.headers)

        if isinstance(err, (EdgeAuthError, TokenError)):
            logger.warning("Sign-in failed", extra={"error": str(err)})
        else:
            logger.exception("Unexpected error during sign-in")
        return html(render_error(err, redirected_from_uri), ctx.headers)


def _validate_query_string(request: EdgeRequest) -> tuple[str, OAuthState]:
    query = request.query()

    idp_error = query.get("error")
    if idp_error and idp_error[0]:
        description = (query.get("error_description") or [""])[0]
        raise UpstreamError(f"[Identity provider] {idp_error[0]}: {description}")

    code = single(query, "code")
    state = single(query, "state")
    if not code or not state:
        raise ValidationError(
            'Invalid query string. Your query string does not include parameters "state" '
            'and "code". This can happen if your authentication attempt did not originate '
            "from this site - this is not allowed"
        )

    return code, decode_state(state)


def _validate_cookies(state: OAuthState, cookies: SessionCookies, ctx: EdgeAuthContext) -> str:
    if not cookies.nonce:
        raise RequiresConfirmationError(
            "Your browser didn't send the nonce cookie along, "
            "but it is required for security (prevent CSRF)."
        )
    if state.nonce != cookies.nonce:
        raise RequiresConfirmationError(
            "Nonce mismatch. This can happen if you start multiple authentication "
            "attempts in parallel (e.g. in separate tabs)"
        )
    if not cookies.pkce:
        raise ValidationError(
            "Your browser didn't send the pkce cookie along, "
            "but it is required for security (prevent CSRF)."
        )

    ctx.signer.validate(cookies.nonce, cookies.nonce_hmac)
    return cookies.pkce


def handler(event: Mapping[str, Any], context: Any = None) -> dict[str, Any]:
    """Lambda@Edge viewer-request entry point for the sign-in callback path."""
    return handle(cloudfront_request(event), get_context()).to_cloudfront()
