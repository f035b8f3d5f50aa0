from urllib.parse import urlencode

import pytest
from conftest import COOKIE_PREFIX, HOST, is_expired, make_request, parse_set_cookies, session_cookies

from edge_auth.cookies import NONCE_COOKIE, NONCE_HMAC_COOKIE
from edge_auth.errors import InvalidGrantError, UpstreamError
from edge_auth.handlers import refresh_auth


@pytest.fixture
def refresh_request(ctx, make_token):
    """Factory for a refresh request as produced by the gatekeeper's redirect."""

    def _make(*, requested_uri="/private", nonce=None, cookie_nonce=None, nonce_hmac=None, refresh_token="RT"):
        if nonce is None:
            nonce, _ = ctx.signer.new_nonce()
        cookie_nonce = nonce if cookie_nonce is None else cookie_nonce
        cookies = session_cookies(make_token(exp_in=-60), refresh_token)
        if cookie_nonce:
            cookies[NONCE_COOKIE] = cookie_nonce
            cookies[NONCE_HMAC_COOKIE] = nonce_hmac or ctx.signer.sign(cookie_nonce)
        return make_request("/refreshauth", urlencode({"requestedUri": requested_uri, "nonce": nonce}), cookies)

    return _make


def test_successful_refresh_updates_tokens(ctx, token_client, refresh_request, make_token):
    new_id_token = make_token()
    token_client.tokens = {"id_token": new_id_token, "access_token": "AT2"}

    response = refresh_auth.handle(refresh_request(requested_uri="/private?a=1"), ctx)

    assert response.status == 307
    assert response.location == f"https://{HOST}/private?a=1"
    assert token_client.calls == [{"grant": "refresh_token", "refresh_token": "RT"}]

    jar = parse_set_cookies(response.set_cookies)
    assert jar[f"{COOKIE_PREFIX}.alice.idToken"][0] == new_id_token
    assert jar[f"{COOKIE_PREFIX}.alice.accessToken"][0] == "AT2"
    assert f"{COOKIE_PREFIX}.alice.refreshToken" not in jar
    assert is_expired(jar[NONCE_COOKIE][1])


def test_rejected_refresh_token_is_expired(ctx, token_client, refresh_request):
    token_client.error = InvalidGrantError("The grant is invalid or has expired")

    response = refresh_auth.handle(refresh_request(), ctx)

    assert response.status == 307
    assert response.location == f"https://{HOST}/private"
    jar = parse_set_cookies(response.set_cookies)
    assert is_expired(jar[f"{COOKIE_PREFIX}.alice.refreshToken"][1])


def test_upstream_failure_shows_page(ctx, token_client, refresh_request):
    token_client.error = UpstreamError("Token endpoint unavailable after 5 attempts")

    response = refresh_auth.handle(refresh_request(), ctx)

    assert response.status == 200
    assert "Sign-in issue" in response.body
    assert f'href="https://{HOST}/private"' in response.body


def test_missing_nonce_cookie_shows_page(ctx, token_client, refresh_request):
    response = refresh_auth.handle(refresh_request(cookie_nonce=""), ctx)

    assert response.status == 200
    assert "nonce cookie" in response.body
    assert token_client.calls == []


def test_nonce_mismatch_shows_page(ctx, token_client, refresh_request):
    other, _ = ctx.signer.new_nonce()
    response = refresh_auth.handle(refresh_request(cookie_nonce=other + "x"), ctx)

    assert response.status == 200
    assert "Nonce mismatch" in response.body
    assert token_client.calls == []


def test_forged_nonce_requires_confirmation(ctx, token_client, refresh_request):
    response = refresh_auth.handle(refresh_request(nonce_hmac="forged"), ctx)

    assert "Confirm sign-in" in response.body
    assert token_client.calls == []


def test_missing_refresh_token_shows_page(ctx, token_client, refresh_request):
    response = refresh_auth.handle(refresh_request(refresh_token=None), ctx)

    assert response.status == 200
    assert "Missing refreshToken" in response.body


def test_off_site_requested_uri_is_rejected(ctx, token_client, refresh_request):
    response = refresh_auth.handle(refresh_request(requested_uri="https://evil.example.com/"), ctx)

    assert response.status == 200
    assert token_client.calls == []
