"""Browser automation for story execution."""

from queuay.browser.driver import BrowserManager, PlaywrightSession

__all__ = ["BrowserManager", "PlaywrightSession"]
