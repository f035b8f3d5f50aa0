"""Origin-response transform adding the configured security headers."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from ..context import EdgeAuthContext, get_context
from ..messages import EdgeResponse, cloudfront_response


def handle(response: EdgeResponse, ctx: EdgeAuthContext) -> EdgeResponse:
    return response.with_headers(ctx.headers)


def handler(event: Mapping[str, Any], context: Any = None) -> dict[str, Any]:
    return handle(cloudfront_response(event), get_context()).to_cloudfront()
