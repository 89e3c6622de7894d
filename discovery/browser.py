from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Tuple

from playwright.async_api import async_playwright, Browser, BrowserContext, Playwright, Page

from .config import Config
from .utils import TransientHTTPError

logger = logging.getLogger(__name__)

_ACTIVE: dict[str, Any] = {
    "loop_old_ex_handler": None,
}

# Benign/expected aborts we don't want to spam logs for. Containment in
# enforce mode aborts sub-requests on purpose, which surfaces as ERR_ABORTED.
_SILENCE_PATTERNS = (
    "net::ERR_ABORTED",
    "net::ERR_FAILED",
    "frame was detached",
    "Target closed",
    "Target page, context or browser has been closed",
    "Execution context was destroyed",
    "Navigation failed because page was closed",
    "TargetClosedError",
)


def _browser_args(cfg: Config) -> list[str]:
    args: list[str] = [
        "--disable-dev-shm-usage",
        "--no-sandbox",
        "--disable-extensions",
        "--disable-background-networking",
        "--disable-sync",
        "--no-default-browser-check",
        "--no-first-run",
        # let the player start without a user gesture
        "--autoplay-policy=no-user-gesture-required",
    ]
    for a in cfg.browser_args_extra or ():
        if isinstance(a, str) and a.strip():
            args.append(a.strip())
    return args


def _install_loop_exception_silencer() -> None:
    """
    Suppress noisy loop-level 'Future exception was never retrieved' logs for
    expected Playwright failures that the visit handlers already classify.
    """
    loop = asyncio.get_running_loop()
    prev = loop.get_exception_handler()
    _ACTIVE["loop_old_ex_handler"] = prev

    def _handler(_loop, context: dict):
        exc = context.get("exception")
        message = context.get("message", "")
        text = f"{exc!r}" if exc else message
        if text and any(p in text for p in _SILENCE_PATTERNS):
            logger.debug("Suppressed loop exception: %s", text)
            return
        if prev:
            prev(_loop, context)
        else:
            _loop.default_exception_handler(context)

    loop.set_exception_handler(_handler)


def _restore_loop_exception_handler() -> None:
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return
    loop.set_exception_handler(_ACTIVE.get("loop_old_ex_handler"))
    _ACTIVE["loop_old_ex_handler"] = None


async def init_browser(cfg: Config, *, navigation_timeout_ms: int) -> Tuple[Playwright, Browser, BrowserContext]:
    proxy = {"server": cfg.proxy_server} if cfg.proxy_server else None

    pw = await async_playwright().start()
    browser = await pw.chromium.launch(
        headless=cfg.headless,
        args=_browser_args(cfg),
        proxy=proxy,
        slow_mo=cfg.browser_slow_mo_ms or 0,
    )

    context = await browser.new_context(
        user_agent=cfg.user_agent,
        viewport={"width": 1366, "height": 900},
        java_script_enabled=True,
        extra_http_headers={
            "Accept-Language": "en-US,en;q=0.9",
            "DNT": "1",
        },
        ignore_https_errors=cfg.browser_ignore_https_errors,
    )
    context.set_default_timeout(navigation_timeout_ms)
    context.set_default_navigation_timeout(navigation_timeout_ms)

    _install_loop_exception_silencer()

    logger.info(
        "Browser initialized UA=%s proxy=%s headless=%s nav_timeout_ms=%d",
        cfg.user_agent, bool(proxy), cfg.headless, navigation_timeout_ms,
    )
    return pw, browser, context


async def shutdown_browser(
    pw: Playwright, browser: Browser, context: Optional[BrowserContext] = None
) -> None:
    try:
        if context:
            await context.close()
    except Exception as e:
        logger.warning("Error while closing context: %s", e)

    try:
        await browser.close()
    except Exception as e:
        logger.warning("Error while closing browser: %s", e)

    try:
        await pw.stop()
    except Exception as e:
        logger.warning("Error while stopping Playwright: %s", e)

    _restore_loop_exception_handler()


async def new_page(context: BrowserContext) -> Page:
    """Open a page; failures here are transport-level and retryable."""
    try:
        return await context.new_page()
    except Exception as e:
        raise TransientHTTPError(f"new_page failed: {e}") from e
