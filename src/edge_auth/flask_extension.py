"""Flask adapter for the edge authentication handlers.

Runs the same handlers that serve Lambda@Edge in front of a Flask
application, so a site can be protected without a CDN in front of it.

Key Components:
- EdgeAuthExtension: Registers the gatekeeper and the OAuth routes
- get_verified_id_claims: Verified ID token claims for the current request

Request flow:
1. ``before_request`` converts the Flask request to an ``EdgeRequest``
2. The sign-in callback, refresh and sign-out paths go to their handlers
3. Every other non-exempt path goes through the gatekeeper
4. A generated ``EdgeResponse`` short-circuits the view; a passthrough
   continues to it
5. ``after_request`` adds the configured security headers
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Final

from flask import Flask, Response, abort, g, request

from .context import EdgeAuthContext, get_context
from .errors import GroupAuthorizationError, TokenError
from .handlers import check_auth, parse_auth, refresh_auth, sign_out
from .messages import EdgeRequest, EdgeResponse, Headers

if TYPE_CHECKING:
    from .protocols import Claims

_EXT_KEY: Final[str] = "edge_auth"
"""Flask extensions registry key for EdgeAuthExtension."""

DEFAULT_SIGN_OUT_PATH: Final[str] = "/signout"


class EdgeAuthExtension:
    """
    Flask glue for cookie based sign-in at the edge.

    Pattern:
        edge_auth = EdgeAuthExtension()
        edge_auth.init_app(app, exempt=["/static/"])

    The sign-in callback and refresh handlers are served at the paths from
    the configuration; the sign-out handler at ``sign_out_path``.

    Every request whose path does not start with one of the ``exempt``
    prefixes must carry a valid ID token cookie; otherwise the browser is
    sent through the hosted sign-in flow.
    """

    def __init__(
        self,
        ctx: EdgeAuthContext | None = None,
        exempt: Sequence[str] = (),
        sign_out_path: str = DEFAULT_SIGN_OUT_PATH,
    ) -> None:
        self._ctx: EdgeAuthContext | None = ctx
        self._exempt: tuple[str, ...] = tuple(exempt)
        self._sign_out_path = sign_out_path

    @property
    def ctx(self) -> EdgeAuthContext:
        """The explicit context, else the process-wide one."""
        return self._ctx or get_context()

    def init_app(
        self,
        app: Flask,
        *,
        ctx: EdgeAuthContext | None = None,
        exempt: Sequence[str] | None = None,
    ) -> None:
        """Register the request hooks on ``app``.

        Args:
            app (Flask): The Flask application instance.
            ctx (EdgeAuthContext | None, optional): Handler context. Defaults to
                the one passed to the constructor, or the process-wide context.
            exempt (Sequence[str] | None, optional): Path prefixes served without
                authentication. Defaults to None.
        """
        if ctx is not None:
            self._ctx = ctx
        if exempt is not None:
            self._exempt = tuple(exempt)

        app.before_request(self._before_request)
        app.after_request(self._after_request)
        app.extensions[_EXT_KEY] = self

    def _routes(self) -> dict[str, Callable[[EdgeRequest, EdgeAuthContext], EdgeResponse]]:
        config = self.ctx.config
        return {
            config.redirect_path_sign_in: parse_auth.handle,
            config.redirect_path_auth_refresh: refresh_auth.handle,
            self._sign_out_path: sign_out.handle,
        }

    def _before_request(self) -> Response | None:
        ctx = self.ctx
        edge_request = to_edge_request()

        route = self._routes().get(edge_request.uri)
        if route is not None:
            return to_flask_response(route(edge_request, ctx))

        if edge_request.uri.startswith(self._exempt):
            return None

        result = check_auth.handle(edge_request, ctx)
        if isinstance(result, EdgeResponse):
            return to_flask_response(result)
        return None

    def _after_request(self, response: Response) -> Response:
        for entries in self.ctx.headers.values():
            for entry in entries:
                response.headers[entry["key"]] = entry["value"]
        return response


def to_edge_request() -> EdgeRequest:
    """Convert the current Flask request."""
    headers: Headers = {}
    for name, value in request.headers.items():
        headers.setdefault(name.lower(), []).append({"key": name, "value": value})
    return EdgeRequest(
        uri=request.path,
        method=request.method,
        querystring=request.query_string.decode("latin-1"),
        headers=headers,
    )


def to_flask_response(response: EdgeResponse) -> Response:
    headers = [
        (entry["key"], entry["value"])
        for entries in response.headers.values()
        for entry in entries
    ]
    return Response(response.body or "", status=response.status, headers=headers)


def get_verified_id_claims(ctx: EdgeAuthContext | None = None) -> Claims:
    """
    Return verified ID-token claims from the current Flask request.

    - Reads the ID token from the session cookies
    - Verifies signature, issuer, audience and required group
    - Stores the claims in ``flask.g.id_claims`` and returns them

    Aborts with 401 when the token is missing or invalid and 403 when the
    user lacks the required group.
    """
    ctx = ctx or get_context()
    cookies = ctx.cookies.parse(request.headers.getlist("Cookie"))
    if not cookies.id_token:
        abort(401, description="Missing token")
    try:
        claims = ctx.check_id_token(cookies.id_token)
    except GroupAuthorizationError as e:
        abort(403, description=str(e))
    except TokenError as e:
        abort(401, description=str(e))
    g.id_claims = claims
    return claims
