from urllib.parse import parse_qs, urlsplit

from conftest import CLIENT_ID, COOKIE_PREFIX, HOST, is_expired, make_request, parse_set_cookies, session_cookies

from edge_auth.cookies import NONCE_COOKIE, PKCE_COOKIE
from edge_auth.handlers import sign_out


def test_signed_out_user_gets_page(ctx):
    response = sign_out.handle(make_request("/signout"), ctx)

    assert response.status == 200
    assert "You are already signed out" in response.body
    assert f'href="https://{HOST}/"' in response.body
    assert response.headers["content-type"][0]["value"] == "text/html; charset=UTF-8"


def test_sign_out_expires_cookies_and_redirects_to_logout(ctx, make_token):
    request = make_request("/signout", cookies=session_cookies(make_token(), "RT"))

    response = sign_out.handle(request, ctx)

    assert response.status == 307
    location = urlsplit(response.location)
    assert f"{location.scheme}://{location.netloc}{location.path}" == "https://auth.example.com/logout"
    assert parse_qs(location.query) == {"logout_uri": [f"https://{HOST}/"], "client_id": [CLIENT_ID]}

    jar = parse_set_cookies(response.set_cookies)
    for name in (
        f"{COOKIE_PREFIX}.alice.idToken",
        f"{COOKIE_PREFIX}.alice.accessToken",
        f"{COOKIE_PREFIX}.alice.refreshToken",
        f"{COOKIE_PREFIX}.LastAuthUser",
        NONCE_COOKIE,
        PKCE_COOKIE,
    ):
        assert is_expired(jar[name][1])


def test_sign_out_is_idempotent(ctx, make_token):
    """Replaying the expired cookies of a sign-out leads to the signed-out page."""
    response = sign_out.handle(make_request("/signout", cookies=session_cookies(make_token())), ctx)
    leftover = {name: value for name, (value, _) in parse_set_cookies(response.set_cookies).items() if value}

    again = sign_out.handle(make_request("/signout", cookies=leftover), ctx)

    assert again.status == 200
    assert "You are already signed out" in again.body
