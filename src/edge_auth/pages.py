"""HTML pages rendered at the edge.

The copy of an error page depends on the error kind; all values are
autoescaped by Jinja2.
"""

from __future__ import annotations

from functools import cache

from jinja2 import Environment, PackageLoader, select_autoescape

from .errors import EdgeAuthError, ErrorKind


@cache
def _environment() -> Environment:
    return Environment(
        loader=PackageLoader("edge_auth", "templates"),
        autoescape=select_autoescape(["html"]),
    )


def render_error(err: Exception, link_uri: str) -> str:
    """Render the error page for ``err``.

    ``RequiresConfirmationError`` asks the user to confirm the sign-in;
    ``GroupAuthorizationError`` says the user is not authorized; anything
    else gets a generic "try again".
    """
    kind = err.kind if isinstance(err, EdgeAuthError) else None
    if kind is ErrorKind.REQUIRES_CONFIRMATION:
        params = {
            "title": "Confirm sign-in",
            "message": (
                "We need your confirmation to sign you in, to ensure we are not "
                "tricked into signing you in through a link from someone else"
            ),
            "link_text": "Confirm",
        }
    elif kind is ErrorKind.GROUP_AUTHORIZATION:
        params = {
            "title": "Not Authorized",
            "message": "Your user is not authorized for this site. Please contact the admin.",
            "link_text": "Try Again",
        }
    else:
        params = {
            "title": "Sign-in issue",
            "message": "We can't sign you in because of a technical problem",
            "link_text": "Try again",
        }
    template = _environment().get_template("error.html")
    return template.render(details=str(err), link_uri=link_uri, **params)


def render_signed_out(link_uri: str) -> str:
    template = _environment().get_template("signed_out.html")
    return template.render(title="Signed out", link_uri=link_uri)
