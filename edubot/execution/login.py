"""
Login state detection for the target portal.

The portal may sit behind a login page, a single sign-on redirect or a
second-factor prompt. Detection combines a URL check with a single in-page
probe of well-known markers.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from edubot.core.interfaces import BrowserPort
from edubot.monitoring.logger import get_logger

logger = get_logger(__name__)

LOGIN_PROBE_SCRIPT = """
() => {
    const textOf = (el) => ((el && (el.innerText || el.textContent)) || '').trim();
    const hasLogoutMarker = Array.from(document.querySelectorAll('a')).some(
        (a) => /çıkış|logout|sign out|oturumu kapat/i.test(textOf(a))
    );
    const profile = document.querySelector(
        '[class*="user"], [id*="user"], [class*="profile"], .navbar-user, .profile-menu'
    );
    const hasProfileArea = !!profile && (profile.textContent || '').trim().length > 0;
    const hasPasswordInput = !!document.querySelector(
        'input[type="password"], input[name*="password"]'
    );
    const hasLoginForm = !!document.querySelector(
        'form[action*="login"], form[action*="authenticate"]'
    );
    const hasOtpInput = !!document.querySelector([
        'input[name*="code"]', 'input[name*="otp"]', 'input[id*="code"]', 'input[id*="otp"]',
        'input[placeholder*="kod"]', 'input[placeholder*="Doğrul"]', 'input[placeholder*="OTP"]',
        'input[name*="pin"]', 'input[name*="verification"]'
    ].join(', '));
    return { hasLogoutMarker, hasProfileArea, hasPasswordInput, hasLoginForm, hasOtpInput };
}
"""


@dataclass(frozen=True)
class LoginMarkers:
    """Result of the in-page login probe."""

    has_logout_marker: bool = False
    has_profile_area: bool = False
    has_password_input: bool = False
    has_login_form: bool = False
    has_otp_input: bool = False

    @classmethod
    def from_probe(cls, probe: Dict[str, Any]) -> "LoginMarkers":
        return cls(
            has_logout_marker=bool(probe.get("hasLogoutMarker")),
            has_profile_area=bool(probe.get("hasProfileArea")),
            has_password_input=bool(probe.get("hasPasswordInput")),
            has_login_form=bool(probe.get("hasLoginForm")),
            has_otp_input=bool(probe.get("hasOtpInput")),
        )


def assess_login_markers(markers: LoginMarkers) -> bool:
    """
    Decide whether the page belongs to a logged-in session.

    Logout controls and a filled profile area win over login inputs. With no
    marker either way the session is assumed to be logged in.
    """
    if markers.has_logout_marker:
        return True
    if markers.has_profile_area:
        return True
    if markers.has_password_input or markers.has_login_form:
        return False
    if markers.has_otp_input:
        return False
    return True


def url_indicates_login(url: Optional[str], markers: List[str]) -> bool:
    if not url:
        return False
    lowered = url.lower()
    return any(marker in lowered for marker in markers)


class LoginDetector:
    """Runs the URL check and the marker probe against a browser session."""

    def __init__(self, browser: BrowserPort, url_markers: List[str]) -> None:
        self.browser = browser
        self.url_markers = [m.lower() for m in url_markers]

    async def read_markers(self) -> Optional[LoginMarkers]:
        """Run the probe. None when the page could not be probed."""
        try:
            probe = await self.browser.evaluate(LOGIN_PROBE_SCRIPT)
        except Exception as e:
            logger.debug("Login probe failed", extra={"error": str(e)})
            return None
        if not isinstance(probe, dict):
            return None
        return LoginMarkers.from_probe(probe)

    async def is_logged_in(self) -> bool:
        """Marker check only; a failed probe counts as not logged in."""
        markers = await self.read_markers()
        return markers is not None and assess_login_markers(markers)

    async def requires_login(self) -> Tuple[bool, str]:
        """
        Check whether the operator has to log in before records can run.

        Returns:
            (login required, current URL)
        """
        url = await self.browser.get_current_url()
        if url_indicates_login(url, self.url_markers):
            logger.info("Login page detected from URL", extra={"url": url})
            return True, url

        markers = await self.read_markers()
        if markers is None:
            return False, url
        logged_in = assess_login_markers(markers)
        if not logged_in:
            logger.info("Login prompt detected on page", extra={"url": url})
        return not logged_in, url
