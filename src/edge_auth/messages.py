"""Request/response shapes exchanged with the handlers.

Headers use the CloudFront multimap layout so the handlers can run
unchanged behind Lambda@Edge:

.. code-block:: python

    {"set-cookie": [{"key": "Set-Cookie", "value": "a=1; Path=/"}, ...]}

Keys are lower-cased header names; every entry keeps the original spelling
in ``key``.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any
from urllib.parse import parse_qs

type Headers = dict[str, list[dict[str, str]]]


def header_entries(name: str, values: Iterable[str]) -> list[dict[str, str]]:
    return [{"key": name, "value": value} for value in values]


def as_headers(headers: Mapping[str, str]) -> Headers:
    """Convert a plain ``{Name: value}`` mapping to the multimap layout."""
    return {name.lower(): header_entries(name, [value]) for name, value in headers.items()}


@dataclass(frozen=True, slots=True)
class EdgeRequest:
    """An inbound viewer request.

    Attributes:
        uri: Path without the query string, e.g. ``/private/page.html``.
        querystring: Raw query string without the leading ``?``.
        headers: Multimap of request headers (``host``, ``cookie``, ...).
    """

    uri: str
    method: str = "GET"
    querystring: str = ""
    headers: Headers = field(default_factory=dict)

    @property
    def host(self) -> str:
        entries = self.headers.get("host")
        if not entries:
            return ""
        return entries[0]["value"]

    @property
    def requested_uri(self) -> str:
        """Path plus query string, as the user originally requested it."""
        return f"{self.uri}?{self.querystring}" if self.querystring else self.uri

    def header_values(self, name: str) -> list[str]:
        return [entry["value"] for entry in self.headers.get(name.lower(), [])]

    def query(self) -> dict[str, list[str]]:
        return parse_qs(self.querystring, keep_blank_values=True)

    def with_uri(self, uri: str) -> EdgeRequest:
        return replace(self, uri=uri)

    @classmethod
    def from_cloudfront(cls, request: Mapping[str, Any]) -> EdgeRequest:
        return cls(
            uri=request["uri"],
            method=request.get("method", "GET"),
            querystring=request.get("querystring", ""),
            headers={k: list(v) for k, v in request.get("headers", {}).items()},
        )

    def to_cloudfront(self) -> dict[str, Any]:
        return {
            "uri": self.uri,
            "method": self.method,
            "querystring": self.querystring,
            "headers": self.headers,
        }


@dataclass(frozen=True, slots=True)
class EdgeResponse:
    """A response generated at the edge instead of contacting the origin."""

    status: int
    headers: Headers = field(default_factory=dict)
    body: str | None = None
    status_description: str | None = None

    @property
    def location(self) -> str | None:
        entries = self.headers.get("location")
        return entries[0]["value"] if entries else None

    @property
    def set_cookies(self) -> list[str]:
        return [entry["value"] for entry in self.headers.get("set-cookie", [])]

    def with_headers(self, extra: Headers) -> EdgeResponse:
        return replace(self, headers={**self.headers, **extra})

    @classmethod
    def from_cloudfront(cls, response: Mapping[str, Any]) -> EdgeResponse:
        return cls(
            status=int(response["status"]),
            headers={k: list(v) for k, v in response.get("headers", {}).items()},
            body=response.get("body"),
            status_description=response.get("statusDescription"),
        )

    def to_cloudfront(self) -> dict[str, Any]:
        result: dict[str, Any] = {"status": str(self.status), "headers": self.headers}
        if self.status_description:
            result["statusDescription"] = self.status_description
        if self.body is not None:
            result["body"] = self.body
        return result


def redirect(location: str, set_cookies: Iterable[str], extra: Headers) -> EdgeResponse:
    """Build a ``307 Temporary Redirect`` that sets the given cookies."""
    headers: Headers = {
        **extra,
        "location": header_entries("location", [location]),
        "set-cookie": header_entries("set-cookie", set_cookies),
    }
    return EdgeResponse(status=307, status_description="Temporary Redirect", headers=headers)


def html(body: str, extra: Headers, set_cookies: Iterable[str] = ()) -> EdgeResponse:
    """Build a ``200 OK`` HTML page.

    Error pages use 200 as well: a non-2xx status would let CDN error routing
    replace the page with the generic SPA fallback.
    """
    headers: Headers = {
        **extra,
        "content-type": header_entries("Content-Type", ["text/html; charset=UTF-8"]),
    }
    cookies = list(set_cookies)
    if cookies:
        headers["set-cookie"] = header_entries("set-cookie", cookies)
    return EdgeResponse(status=200, status_description="OK", headers=headers, body=body)


def cloudfront_request(event: Mapping[str, Any]) -> EdgeRequest:
    """Extract the viewer request from a Lambda@Edge event."""
    return EdgeRequest.from_cloudfront(event["Records"][0]["cf"]["request"])


def cloudfront_response(event: Mapping[str, Any]) -> EdgeResponse:
    """Extract the origin response from a Lambda@Edge event."""
    return EdgeResponse.from_cloudfront(event["Records"][0]["cf"]["response"])
