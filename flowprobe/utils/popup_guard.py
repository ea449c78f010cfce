"""Pre-step modal and dialog dismissal.

Runs before every workflow step so the page is interactable. Tries, in
order, a visible close control and the Escape key. Native alert/confirm
dialogs are dismissed by a handler installed once per page.
"""

from __future__ import annotations

import logging

from playwright.async_api import Dialog, Page


logger = logging.getLogger("flowprobe.popup_guard")

CLOSE_SELECTORS = [
    '[aria-label*="close" i]',
    '[aria-label*="dismiss" i]',
    "button.close",
    "button.modal-close",
    ".modal-close-button",
    '[data-dismiss="modal"]',
]

_MODAL_VISIBLE_JS = """() => {
    const candidates = document.querySelectorAll(
        '[role="dialog"], [role="alertdialog"], [aria-modal="true"], dialog[open], ' +
        '[class*="modal"], [class*="overlay"], [class*="popup"]'
    );
    for (const el of candidates) {
        const style = window.getComputedStyle(el);
        if (style.display === 'none' || style.visibility === 'hidden' || style.opacity === '0') continue;
        const rect = el.getBoundingClientRect();
        if (rect.width >= 50 && rect.height >= 50) return true;
    }
    return false;
}"""


async def _dismiss_dialog(dialog: Dialog):
    try:
        await dialog.dismiss()
    except Exception:
        pass


def install_dialog_dismisser(page: Page):
    """Auto-dismiss native alert/confirm/prompt dialogs for the page's lifetime."""
    page.on("dialog", _dismiss_dialog)


async def dismiss_modal_if_present(page: Page) -> str | None:
    """Try to close a blocking modal. Returns the strategy that worked, if any.

    Never raises: dismissal is best-effort.
    """
    for selector in CLOSE_SELECTORS:
        try:
            button = page.locator(selector).first
            if await button.is_visible(timeout=500):
                await button.click(timeout=1000)
                logger.debug("Dismissed modal via %s", selector)
                return "close-control"
        except Exception:
            continue

    try:
        if await page.evaluate(_MODAL_VISIBLE_JS):
            await page.keyboard.press("Escape")
            return "escape"
    except Exception:
        pass

    return None
