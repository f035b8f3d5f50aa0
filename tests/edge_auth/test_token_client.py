from typing import Any

import pytest
import requests

from edge_auth import token_client
from edge_auth.errors import InvalidGrantError, UpstreamError
from edge_auth.token_client import TokenEndpointClient, backoff_delay

URL = "https://auth.example.com/oauth2/token"


class FakeResponse:
    def __init__(self, status_code: int, payload: Any = None):
        self.status_code = status_code
        self._payload = payload

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("no JSON")
        return self._payload


class FakeSession:
    """Replays queued responses (or raises queued exceptions) for each POST."""

    def __init__(self, *outcomes: FakeResponse | Exception):
        self._outcomes = list(outcomes)
        self.posts: list[dict[str, Any]] = []

    def post(self, url: str, **kwargs: Any) -> FakeResponse:
        self.posts.append({"url": url, **kwargs})
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


TOKENS = {"id_token": "ID", "access_token": "AT", "refresh_token": "RT", "token_type": "Bearer"}


@pytest.fixture
def sleeps(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    recorded: list[float] = []
    monkeypatch.setattr(token_client.time, "sleep", recorded.append)
    return recorded


def make_client(session: FakeSession, secret: str | None = None) -> TokenEndpointClient:
    return TokenEndpointClient(URL, "testclient", secret, session=session)  # type: ignore[arg-type]


class TestGrants:
    def test_exchange_code_posts_form(self, sleeps):
        session = FakeSession(FakeResponse(200, TOKENS))

        tokens = make_client(session).exchange_code(
            code="abc", code_verifier="verifier", redirect_uri="https://d.example.com/parseauth"
        )

        assert tokens == {"id_token": "ID", "access_token": "AT", "refresh_token": "RT"}
        post = session.posts[0]
        assert post["url"] == URL
        assert post["data"] == {
            "grant_type": "authorization_code",
            "client_id": "testclient",
            "redirect_uri": "https://d.example.com/parseauth",
            "code": "abc",
            "code_verifier": "verifier",
        }
        assert post["headers"]["Content-Type"] == "application/x-www-form-urlencoded"
        assert post["auth"] is None
        assert post["timeout"] == 4.0

    def test_refresh_without_refresh_token_in_response(self, sleeps):
        session = FakeSession(FakeResponse(200, {"id_token": "ID2", "access_token": "AT2"}))

        tokens = make_client(session).refresh(refresh_token="RT")

        assert tokens == {"id_token": "ID2", "access_token": "AT2"}
        assert session.posts[0]["data"] == {
            "grant_type": "refresh_token",
            "client_id": "testclient",
            "refresh_token": "RT",
        }

    def test_client_secret_enables_basic_auth(self, sleeps):
        session = FakeSession(FakeResponse(200, TOKENS))
        make_client(session, secret="s3cret").refresh(refresh_token="RT")

        auth = session.posts[0]["auth"]
        assert isinstance(auth, requests.auth.HTTPBasicAuth)
        assert (auth.username, auth.password) == ("testclient", "s3cret")

    def test_non_json_response(self, sleeps):
        with pytest.raises(UpstreamError, match="non-JSON"):
            make_client(FakeSession(FakeResponse(200))).refresh(refresh_token="RT")

    def test_response_without_tokens(self, sleeps):
        with pytest.raises(UpstreamError, match="missing tokens"):
            make_client(FakeSession(FakeResponse(200, {"access_token": "AT"}))).refresh(refresh_token="RT")


class TestRetry:
    def test_server_errors_are_retried(self, sleeps):
        session = FakeSession(FakeResponse(500), FakeResponse(503), FakeResponse(200, TOKENS))

        assert make_client(session).refresh(refresh_token="RT")["id_token"] == "ID"
        assert len(session.posts) == 3
        assert sleeps == []  # the first two retries are immediate

    def test_gives_up_after_five_attempts(self, sleeps):
        session = FakeSession(*[requests.ConnectionError("down")] * 5)

        with pytest.raises(UpstreamError, match="after 5 attempts"):
            make_client(session).refresh(refresh_token="RT")

        assert len(session.posts) == 5
        assert len(sleeps) == 2  # after attempts 3 and 4

    def test_invalid_grant_is_not_retried(self, sleeps):
        session = FakeSession(FakeResponse(400, {"error": "invalid_grant"}))

        with pytest.raises(InvalidGrantError):
            make_client(session).refresh(refresh_token="RT")
        assert len(session.posts) == 1

    def test_other_client_errors_are_upstream_errors(self, sleeps):
        session = FakeSession(FakeResponse(401, {"error": "invalid_client"}))

        with pytest.raises(UpstreamError, match="invalid_client") as exc_info:
            make_client(session).refresh(refresh_token="RT")
        assert not isinstance(exc_info.value, InvalidGrantError)


def test_backoff_delay(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(token_client.random, "random", lambda: 0.5)
    assert backoff_delay(1) == 0
    assert backoff_delay(2) == 0
    assert backoff_delay(3) == pytest.approx(0.025 * (8 + 1.5))
    assert backoff_delay(4) == pytest.approx(0.025 * (16 + 2))


def test_max_attempts_must_be_positive():
    with pytest.raises(ValueError):
        TokenEndpointClient(URL, "testclient", max_attempts=0)
