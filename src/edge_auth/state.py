"""The OAuth ``state`` parameter.

``state`` is base64url(JSON ``{"nonce", "requestedUri"}``). The identity
provider hands it back untouched on the callback; it is trusted only after
its nonce matches the nonce cookie.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass

from .errors import ValidationError

_INVALID_STATE = 'Invalid query string. Your query string does not include a valid "state" parameter'


@dataclass(frozen=True, slots=True)
class OAuthState:
    nonce: str
    requested_uri: str


def encode_state(nonce: str, requested_uri: str) -> str:
    payload = json.dumps({"nonce": nonce, "requestedUri": requested_uri}, separators=(",", ":"))
    return base64.urlsafe_b64encode(payload.encode("utf-8")).decode("ascii").rstrip("=")


def decode_state(state: str) -> OAuthState:
    """Parse ``state``.

    Raises:
        ValidationError: If ``state`` is not base64url JSON holding both a
            nonce and a local ``requestedUri``.
    """
    try:
        padded = state + "=" * (-len(state) % 4)
        parsed = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
    except (ValueError, binascii.Error, UnicodeError) as e:
        raise ValidationError(_INVALID_STATE) from e

    if not isinstance(parsed, dict):
        raise ValidationError(_INVALID_STATE)
    nonce = parsed.get("nonce")
    requested_uri = parsed.get("requestedUri")
    if not isinstance(nonce, str) or not nonce or not isinstance(requested_uri, str):
        raise ValidationError(_INVALID_STATE)
    return OAuthState(nonce=nonce, requested_uri=ensure_local_path(requested_uri))


def ensure_local_path(uri: str) -> str:
    """Reject anything that would turn ``https://<host><uri>`` into another host.

    Raises:
        ValidationError: If ``uri`` is not an absolute path on this host.
    """
    if not uri.startswith("/"):
        raise ValidationError("The requested URI must be a path on this site")
    return uri
