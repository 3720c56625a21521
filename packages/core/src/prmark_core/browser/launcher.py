from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from playwright.sync_api import Page, sync_playwright

logger = logging.getLogger(__name__)

DEFAULT_USER_DATA_DIR = Path.home() / ".prmark" / "browser"


@contextmanager
def open_browser(browser_config: dict | None = None) -> Iterator[Page]:
    """Yield a Chromium page inside a persistent profile.

    The profile directory keeps the GitHub login between runs: start once
    with ``--headed``, sign in, and later runs can go headless.
    """
    browser_config = browser_config or {}
    user_data_dir = Path(browser_config.get("user_data_dir") or DEFAULT_USER_DATA_DIR).expanduser()
    user_data_dir.mkdir(parents=True, exist_ok=True)
    headless = browser_config.get("headless", True)

    with sync_playwright() as p:
        logger.debug("Launching Chromium (headless=%s, profile=%s)", headless, user_data_dir)
        context = p.chromium.launch_persistent_context(str(user_data_dir), headless=headless)
        try:
            page = context.pages[0] if context.pages else context.new_page()
            yield page
        finally:
            context.close()
