"""Refresh target: trade the refresh token for new ID and access tokens.

Reached via the gatekeeper's redirect with ``?requestedUri=…&nonce=…``. The
nonce in the query must match the nonce cookie and pass the max-age and HMAC
checks before the refresh token is used.

If the identity provider rejects the refresh token itself, the refresh
cookie is expired and the user is sent on to the requested URI; the
gatekeeper then starts a normal sign-in.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from ..context import EdgeAuthContext, get_context
from ..cookies import SessionCookies
from ..errors import EdgeAuthError, InvalidGrantError, ValidationError
from ..messages import EdgeRequest, EdgeResponse, cloudfront_request, html, redirect
from ..pages import render_error
from ..protocols import TokenSet
from ..state import ensure_local_path
from ._shared import single

logger = logging.getLogger(__name__)


def handle(request: EdgeRequest, ctx: EdgeAuthContext) -> EdgeResponse:
    domain_name = request.host
    redirected_from_uri = f"https://{domain_name}"
    cookies = ctx.cookies.parse(request.header_values("cookie"))

    try:
        query = request.query()
        requested_uri = single(query, "requestedUri")
        if requested_uri:
            redirected_from_uri += ensure_local_path(requested_uri)
        current_nonce = single(query, "nonce")

        _validate_refresh_request(current_nonce, cookies, ctx)
        current: TokenSet = {
            "id_token": cookies.id_token or "",
            "access_token": cookies.access_token or "",
        }

        try:
            tokens = ctx.token_client.refresh(refresh_token=cookies.refresh_token or "")
        except InvalidGrantError:
            logger.info("Refresh token rejected, expiring it to force a new sign-in")
            return redirect(
                redirected_from_uri,
                ctx.cookies.refresh_failed(current, cookies.token_user_name),
                ctx.headers,
            )

        logger.info("Tokens refreshed")
        return redirect(redirected_from_uri, ctx.cookies.refreshed(tokens), ctx.headers)

    except Exception as err:
        if isinstance(err, EdgeAuthError):
            logger.warning("Refresh failed", extra={"error": str(err)})
        else:
            logger.exception("Unexpected error during refresh")
        return html(render_error(err, redirected_from_uri), ctx.headers)


def _validate_refresh_request(
    current_nonce: str | None, cookies: SessionCookies, ctx: EdgeAuthContext
) -> None:
    if not cookies.nonce:
        raise ValidationError(
            "Your browser didn't send the nonce cookie along, "
            "but it is required for security (prevent CSRF)."
        )
    if current_nonce != cookies.nonce:
        raise ValidationError("Nonce mismatch")
    for token_type, token in (("idToken", cookies.id_token), ("refreshToken", cookies.refresh_token)):
        if not token:
            raise ValidationError(f"Missing {token_type}")
    ctx.signer.validate(cookies.nonce, cookies.nonce_hmac)


def handler(event: Mapping[str, Any], context: Any = None) -> dict[str, Any]:
    """Lambda@Edge viewer-request entry point for the refresh path."""
    return handle(cloudfront_request(event), get_context()).to_cloudfront()
