"""Origin-request transform serving ``index.html`` for directory URIs."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from ..messages import EdgeRequest, cloudfront_request


def handle(request: EdgeRequest) -> EdgeRequest:
    if request.uri.endswith("/"):
        return request.with_uri(f"{request.uri}index.html")
    return request


def handler(event: Mapping[str, Any], context: Any = None) -> dict[str, Any]:
    return handle(cloudfront_request(event)).to_cloudfront()
