"""Helpers shared by the protocol handlers."""

from __future__ import annotations

from collections.abc import Mapping
from urllib.parse import quote, urlencode

from ..errors import ValidationError


def query_string(params: Mapping[str, str]) -> str:
    """Encode ``params`` the way ``encodeURIComponent`` would (spaces as %20)."""
    return urlencode(params, quote_via=quote)


def single(query: Mapping[str, list[str]], name: str) -> str | None:
    """Return the only value of ``name``.

    Raises:
        ValidationError: If the parameter is repeated.
    """
    values = query.get(name)
    if not values:
        return None
    if len(values) > 1:
        raise ValidationError(f'Query string parameter "{name}" must occur only once')
    return values[0] or None
