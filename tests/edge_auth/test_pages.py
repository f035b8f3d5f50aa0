import logging

import pytest

from edge_auth import app_logging
from edge_auth.errors import (
    ExpiredToken,
    GroupAuthorizationError,
    RequiresConfirmationError,
    UpstreamError,
    ValidationError,
)
from edge_auth.messages import as_headers, html, redirect
from edge_auth.pages import render_error, render_signed_out


class TestErrorPages:
    @pytest.mark.parametrize(
        ("err", "title", "link_text"),
        [
            (RequiresConfirmationError("Nonce mismatch"), "Confirm sign-in", "Confirm"),
            (GroupAuthorizationError("not in group"), "Not Authorized", "Try Again"),
            (ValidationError("bad query"), "Sign-in issue", "Try again"),
            (UpstreamError("down"), "Sign-in issue", "Try again"),
            (ExpiredToken("Token has expired"), "Sign-in issue", "Try again"),
        ],
    )
    def test_copy_depends_on_error_kind(self, err, title, link_text):
        page = render_error(err, "https://example.com/private")

        assert f"<title>{title}</title>" in page
        assert f'<a href="https://example.com/private">{link_text}</a>' in page

    def test_details_are_escaped(self):
        page = render_error(ValidationError("<script>alert(1)</script>"), "https://example.com/")

        assert "<script>" not in page
        assert "&lt;script&gt;" in page
        assert "ValidationError: " in page

    def test_signed_out_page(self):
        page = render_signed_out("https://example.com/")
        assert "You are already signed out" in page
        assert '<a href="https://example.com/">Proceed</a>' in page


class TestResponses:
    def test_redirect(self):
        response = redirect("https://example.com/", ["a=1; Path=/"], as_headers({"X-Frame-Options": "DENY"}))

        assert response.status == 307
        assert response.status_description == "Temporary Redirect"
        assert response.location == "https://example.com/"
        assert response.set_cookies == ["a=1; Path=/"]
        assert response.headers["x-frame-options"] == [{"key": "X-Frame-Options", "value": "DENY"}]

    def test_redirect_target_and_cookies_win_over_extra_headers(self):
        extra = as_headers({"Location": "https://evil.example/", "Set-Cookie": "b=2"})

        response = redirect("https://example.com/", ["a=1; Path=/"], extra)

        assert response.location == "https://example.com/"
        assert response.set_cookies == ["a=1; Path=/"]

    def test_html_is_200_without_cookies_by_default(self):
        response = html("<p>hi</p>", {})

        assert response.status == 200
        assert response.set_cookies == []
        assert response.to_cloudfront()["status"] == "200"
        assert response.to_cloudfront()["body"] == "<p>hi</p>"


class TestSetupLogger:
    @pytest.fixture(autouse=True)
    def restore_logger(self):
        logger = logging.getLogger("edge_auth")
        handlers, level = list(logger.handlers), logger.level
        yield
        logger.handlers[:] = handlers
        logger.setLevel(level)

    def test_handler_added_once(self):
        app_logging.setup_logger("info")
        logger = app_logging.setup_logger("debug")

        names = [h.get_name() for h in logger.handlers]
        assert names.count("edge_auth_json") == 1
        assert logger.level == logging.DEBUG

    def test_none_silences_everything(self):
        logger = app_logging.setup_logger("none")
        assert not logger.isEnabledFor(logging.CRITICAL)
