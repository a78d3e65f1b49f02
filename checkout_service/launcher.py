"""
launcher.py — Payment Session Launcher

Opens the payment gateway's checkout page for the customer. A separate
browser context is preferred so the cart page keeps polling in the
background; when none can be opened, the current context navigates to the
payment page instead.

The return value is informational only. The checkout flow starts polling
whether or not a separate context was opened.
"""

import logging
import webbrowser
from typing import Callable

log = logging.getLogger(__name__)


class PaymentSessionLauncher:
    """
    Args:
        fallback (Callable[[str], None]): Navigates the current context to a URL.
        browser: Optional `webbrowser` controller; the system default is used when omitted.
    """

    def __init__(self, fallback: Callable[[str], None], browser=None):
        self.fallback = fallback
        self.browser = browser

    def _acquire(self):
        # Raises webbrowser.Error when no browser is registered
        return self.browser if self.browser is not None else webbrowser.get()

    def open(self, url: str) -> bool:
        """
        Opens `url` in a new tab, falling back to in-place navigation.

        Returns:
            bool: True if a separate context was opened, False if the fallback was used.
        """
        try:
            controller = self._acquire()
        except webbrowser.Error as e:
            log.warning(f"No browser available ({e}). Navigating in place.")
            self.fallback(url)
            return False

        try:
            opened = controller.open(url, new=2)
        except (webbrowser.Error, OSError) as e:
            log.warning(f"Opening payment page failed ({e}). Navigating in place.")
            opened = False

        if not opened:
            self.fallback(url)
            return False

        log.info("Payment page opened in a new tab.")
        return True
