"""
Headless browser sessions for the interactive agent.

A session is one Chromium instance with one isolated context and page. It is
torn down on every exit path of the ``with`` block.
"""

from contextlib import contextmanager
from typing import Iterator

from ...unsubscribe.constants import ERROR_PLAYWRIGHT_NOT_INSTALLED
from ...unsubscribe.exceptions import CapabilityUnavailableError
from ...unsubscribe.logging import UnsubscribeLogger

logger = UnsubscribeLogger("browser")


def _close_quietly(resource, name: str):
    if resource is None:
        return
    try:
        resource.close()
    except Exception as e:
        logger.warning(f"Failed to close browser {name}", {'error': str(e)})


@contextmanager
def open_browser_session(user_agent: str, timeout_ms: int, headless: bool = True) -> Iterator:
    """
    Launch Chromium and yield a page in a fresh context.

    Args:
        user_agent: User-Agent for the isolated context
        timeout_ms: Default timeout applied to every page operation
        headless: Run without a visible window

    Raises:
        CapabilityUnavailableError: Playwright or its browser is not installed
    """
    try:
        from playwright.sync_api import sync_playwright, Error as PlaywrightError
    except ImportError as e:
        raise CapabilityUnavailableError(
            "playwright is not installed",
            capability='browser',
            error_code=ERROR_PLAYWRIGHT_NOT_INSTALLED,
        ) from e

    with sync_playwright() as playwright:
        try:
            browser = playwright.chromium.launch(headless=headless)
        except PlaywrightError as e:
            raise CapabilityUnavailableError(
                f"Chromium could not be launched: {e}",
                capability='browser',
                error_code=ERROR_PLAYWRIGHT_NOT_INSTALLED,
            ) from e

        context = None
        try:
            context = browser.new_context(user_agent=user_agent)
            page = context.new_page()
            page.set_default_timeout(timeout_ms)
            logger.debug("Browser session opened", {'headless': headless, 'timeout_ms': timeout_ms})
            yield page
        finally:
            _close_quietly(context, 'context')
            _close_quietly(browser, 'browser')
            logger.debug("Browser session closed")
