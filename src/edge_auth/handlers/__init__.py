"""
Request/response transform handlers.

Each module exposes ``handle(...)`` taking an explicit ``EdgeAuthContext``
and a Lambda@Edge style ``handler(event, context)`` entry point that uses
the process-wide context.
"""

from . import check_auth, http_headers, parse_auth, refresh_auth, rewrite_trailing_slash, sign_out

__all__ = [
    "check_auth",
    "http_headers",
    "parse_auth",
    "refresh_auth",
    "rewrite_trailing_slash",
    "sign_out",
]
