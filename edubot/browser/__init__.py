"""Browser automation layer for EDUBot."""

from edubot.browser.driver import PlaywrightDriver

__all__ = ["PlaywrightDriver"]
