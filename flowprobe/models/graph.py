"""Shared callback types."""

from __future__ import annotations

from typing import Awaitable, Callable

from playwright.async_api import Page


ProgressCallback = Callable[[str, dict], None]

# Called by the crawler for every page it opens. Returns partial PageData
# fields (forms, buttons, links, menus, other_interactive, screenshot_ref,
# spa_framework) to merge into the page record.
PageProcessor = Callable[[Page, str], Awaitable[dict]]
