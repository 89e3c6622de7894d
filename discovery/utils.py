from __future__ import annotations

import asyncio
import logging
import os
from typing import Optional, Tuple

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

logger = logging.getLogger(__name__)

# ========== Environment helpers ==========

def getenv_str(name: str, default: str) -> str:
    v = os.getenv(name)
    return v if v is not None and v.strip() else default

def getenv_int(name: str, default: int, min_val: Optional[int] = None, max_val: Optional[int] = None) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        val = int(raw)
    except ValueError:
        return default
    if min_val is not None:
        val = max(min_val, val)
    if max_val is not None:
        val = min(max_val, val)
    return val

def getenv_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


# parse CSV-ish envs into tuples (trim blanks)
def getenv_csv(name: str, default_csv: str) -> Tuple[str, ...]:
    raw = getenv_str(name, default_csv)
    parts = [x.strip() for x in raw.split(",")]
    return tuple(p for p in parts if p)

# ========== Exceptions & HTTP status mapping ==========

class CrawlerError(Exception):
    """Base class for errors raised by the discovery crawler."""

class ConfigInvalidError(CrawlerError):
    """Run configuration failed validation; fatal before any network activity."""

class AdapterNotFoundError(CrawlerError):
    """No extraction adapter candidate could be loaded for a hostname."""

    def __init__(self, hostname: str):
        super().__init__(f"No adapter found for {hostname}")
        self.hostname = hostname

class TransientHTTPError(CrawlerError):
    """Retryable transient navigation error (429/5xx/timeouts/network)."""

def http_status_to_exc(status: Optional[int]) -> Optional[Exception]:
    if status is None:
        return None
    if status == 429 or status >= 500:
        return TransientHTTPError(f"HTTP {status}")
    return None

# ========== Retry ==========

def navigation_retrying(max_retries: int, initial_delay_ms: int, max_delay_ms: int, jitter_ms: int) -> AsyncRetrying:
    """
    Retry controller for page navigation. `max_retries` counts retries, so the
    total number of attempts is max_retries + 1.
    """
    return AsyncRetrying(
        reraise=True,
        stop=stop_after_attempt(max(0, max_retries) + 1),
        wait=wait_exponential_jitter(
            initial=initial_delay_ms / 1000.0,
            max=max_delay_ms / 1000.0,
            jitter=jitter_ms / 1000.0,
        ),
        retry=retry_if_exception_type((TransientHTTPError, TimeoutError, OSError)),
    )

# ========== Playwright helpers ==========

async def try_close_page(page, timeout_ms: int = 1500) -> None:
    """
    Bounded-time page close so a wedged renderer never holds a visit slot.
    """
    if page is None:
        return
    try:
        await asyncio.wait_for(page.close(), timeout=max(0.1, (timeout_ms or 1) / 1000.0))
    except Exception as e:
        logger.debug("Page close failed: %s", e)
