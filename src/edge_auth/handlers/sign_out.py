"""Sign-out: clear the session cookies and end the hosted-UI session."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from ..context import EdgeAuthContext, get_context
from ..messages import EdgeRequest, EdgeResponse, cloudfront_request, html, redirect
from ..pages import render_signed_out
from ..protocols import TokenSet
from ._shared import query_string

logger = logging.getLogger(__name__)


def handle(request: EdgeRequest, ctx: EdgeAuthContext) -> EdgeResponse:
    """Redirect to the identity provider's logout endpoint, expiring all cookies.

    Without an ID token cookie there is nothing to sign out of; a 200 page
    says so instead.
    """
    config = ctx.config
    domain_name = request.host
    sign_out_landing = f"https://{domain_name}{config.redirect_path_sign_out}"
    cookies = ctx.cookies.parse(request.header_values("cookie"))

    if not cookies.id_token:
        return html(render_signed_out(sign_out_landing), ctx.headers)

    tokens: TokenSet = {
        "id_token": cookies.id_token,
        "access_token": cookies.access_token or "",
        "refresh_token": cookies.refresh_token or "",
    }
    qs = query_string({"logout_uri": sign_out_landing, "client_id": config.client_id})
    logger.info("Signing out")
    return redirect(
        f"{config.logout_endpoint}?{qs}",
        ctx.cookies.sign_out(tokens, cookies.token_user_name),
        ctx.headers,
    )


def handler(event: Mapping[str, Any], context: Any = None) -> dict[str, Any]:
    """Lambda@Edge viewer-request entry point for the sign-out path."""
    return handle(cloudfront_request(event), get_context()).to_cloudfront()
