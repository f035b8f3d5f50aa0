import base64
import json

import pytest

from edge_auth.errors import ValidationError
from edge_auth.state import decode_state, encode_state, ensure_local_path


def test_state_round_trip():
    state = decode_state(encode_state("10Test", "/private/page?a=b&c=d"))
    assert state.nonce == "10Test"
    assert state.requested_uri == "/private/page?a=b&c=d"


def test_state_is_unpadded_base64url():
    state = encode_state("1T", "/??>>")
    assert "=" not in state
    assert "+" not in state and "/" not in state


@pytest.mark.parametrize("state", ["%%%", "bm90LWpzb24", base64.urlsafe_b64encode(b"[1,2]").decode()])
def test_garbage_state_is_rejected(state: str):
    with pytest.raises(ValidationError, match='valid "state"'):
        decode_state(state)


def test_state_missing_nonce_is_rejected():
    raw = base64.urlsafe_b64encode(json.dumps({"requestedUri": "/"}).encode()).decode()
    with pytest.raises(ValidationError):
        decode_state(raw)


def test_state_pointing_off_site_is_rejected():
    with pytest.raises(ValidationError):
        decode_state(encode_state("10Test", "https://evil.example.com/"))


def test_ensure_local_path():
    assert ensure_local_path("/a") == "/a"
    with pytest.raises(ValidationError):
        ensure_local_path("evil.example.com")
