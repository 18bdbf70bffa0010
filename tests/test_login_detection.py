"""
Tests for login state detection.
"""

import pytest

from edubot.config.settings import Settings
from edubot.execution import (
    LOGIN_PROBE_SCRIPT,
    LoginDetector,
    LoginMarkers,
    assess_login_markers,
    url_indicates_login,
)


class TestAssessMarkers:
    """Decision table of the page markers."""

    @pytest.mark.parametrize("markers, logged_in", [
        (LoginMarkers(has_logout_marker=True), True),
        (LoginMarkers(has_logout_marker=True, has_password_input=True), True),
        (LoginMarkers(has_profile_area=True, has_login_form=True), True),
        (LoginMarkers(has_password_input=True), False),
        (LoginMarkers(has_login_form=True), False),
        (LoginMarkers(has_otp_input=True), False),
        (LoginMarkers(), True),
    ])
    def test_decision(self, markers, logged_in):
        """Test logged-in markers win and an empty marker set counts as logged in."""
        assert assess_login_markers(markers) is logged_in

    def test_from_page_result(self):
        """Test the in-page check result maps onto markers."""
        markers = LoginMarkers.from_probe({"hasPasswordInput": 1, "hasOtpInput": None})

        assert markers == LoginMarkers(has_password_input=True)


@pytest.mark.parametrize("url, expected", [
    ("https://obs.example.edu/Login.aspx", True),
    ("https://sso.example.edu/oauth2/authorize", True),
    ("https://obs.example.edu/ogrenci/notlar", False),
    ("", False),
    (None, False),
])
def test_url_indicates_login(url, expected):
    assert url_indicates_login(url, ["login", "auth"]) is expected


class TestLoginDetector:
    """Detection against a live page."""

    @pytest.mark.asyncio
    async def test_logged_in_page(self, fake_browser):
        """Test a page with a logout link needs no login."""
        detector = LoginDetector(fake_browser, ["login"])

        assert await detector.requires_login() == (False, "https://portal.example.edu/home")
        assert fake_browser.evaluations[-1][0] == LOGIN_PROBE_SCRIPT

    @pytest.mark.asyncio
    async def test_login_form(self, fake_browser):
        """Test a password form requires login."""
        fake_browser.login_markers = {"hasPasswordInput": True, "hasLoginForm": True}
        detector = LoginDetector(fake_browser, ["login"])

        assert await detector.requires_login() == (True, "https://portal.example.edu/home")
        assert await detector.is_logged_in() is False

    @pytest.mark.asyncio
    async def test_url_marker_skips_page_check(self, fake_browser):
        """Test a login URL decides without probing the page."""
        fake_browser.url = "https://portal.example.edu/GIRIS?return=/"
        detector = LoginDetector(fake_browser, ["Giris"])

        required, url = await detector.requires_login()

        assert required is True
        assert url == fake_browser.url
        assert fake_browser.evaluations == []

    @pytest.mark.asyncio
    async def test_failed_page_check(self, fake_browser):
        """Test an in-page check that raises is treated as inconclusive."""
        async def broken(expression, arg=None):
            raise RuntimeError("Execution context was destroyed")

        fake_browser.evaluate = broken
        detector = LoginDetector(fake_browser, ["login"])

        assert await detector.read_markers() is None
        assert await detector.requires_login() == (False, "https://portal.example.edu/home")
        assert await detector.is_logged_in() is False

    @pytest.mark.asyncio
    async def test_non_dict_page_result(self, fake_browser):
        """Test an unexpected in-page result is ignored."""
        async def odd(expression, arg=None):
            return "ok"

        fake_browser.evaluate = odd

        assert await LoginDetector(fake_browser, []).read_markers() is None


class TestMarkerSelectors:
    """Markers the in-page login check looks for."""

    @pytest.mark.parametrize("selector", [
        'input[type="password"]',
        'input[name*="password"]',
        'form[action*="login"]',
        'form[action*="authenticate"]',
    ])
    def test_logged_out_selectors(self, selector):
        """Test password fields and sign-in form actions are checked."""
        assert selector in LOGIN_PROBE_SCRIPT

    def test_default_url_markers(self):
        """Test the campus portal marker is part of the defaults."""
        markers = Settings(_env_file=None).login_markers

        assert markers == ["login", "auth", "ekampus"]
        assert url_indicates_login("https://ekampus.example.edu/Anasayfa", markers) is True
