from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Optional, Tuple

from .utils import getenv_bool, getenv_csv, getenv_int, getenv_str

# ---------- Project Paths ----------
PROJECT_ROOT: Path = Path(__file__).resolve().parents[1]
LOG_DIR: Path = PROJECT_ROOT / "logs"
LOG_FILE: Path = LOG_DIR / "crawler.log"


# ---------- Config dataclass ----------
@dataclass(frozen=True)
class Config:
    """Process-level runtime knobs. Crawl policy lives in RunConfig."""

    # Browser
    user_agent: str
    headless: bool
    proxy_server: Optional[str]
    browser_args_extra: Tuple[str, ...]
    browser_slow_mo_ms: int
    browser_ignore_https_errors: bool
    navigation_wait_until: Literal["load", "domcontentloaded", "networkidle", "commit"]
    page_close_timeout_ms: int

    # Retry / backoff for navigation
    max_request_retries: int
    retry_initial_delay_ms: int
    retry_max_delay_ms: int
    retry_jitter_ms: int

    # Logging
    log_file: Path


# ---------- Loader ----------
def load_config() -> Config:
    proxy = getenv_str("PROXY_SERVER", "")
    return Config(
        user_agent=getenv_str(
            "CRAWLER_USER_AGENT",
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
            "AppleWebKit/537.36 (KHTML, like Gecko) "
            "Chrome/120.0.0.0 Safari/537.36"
        ),
        headless=getenv_bool("HEADLESS", True),
        proxy_server=proxy or None,
        browser_args_extra=getenv_csv("BROWSER_ARGS_EXTRA", ""),
        browser_slow_mo_ms=getenv_int("BROWSER_SLOW_MO_MS", 0, 0, 5000),
        browser_ignore_https_errors=getenv_bool("BROWSER_IGNORE_HTTPS_ERRORS", False),
        navigation_wait_until=getenv_str("NAV_WAIT_UNTIL", "domcontentloaded"),
        page_close_timeout_ms=getenv_int("PAGE_CLOSE_TIMEOUT_MS", 1500, 100, 10000),

        # one retry per failed navigation unless overridden
        max_request_retries=getenv_int("MAX_REQUEST_RETRIES", 1, 0, 5),
        retry_initial_delay_ms=getenv_int("RETRY_INITIAL_DELAY_MS", 1000, 0, 10000),
        retry_max_delay_ms=getenv_int("RETRY_MAX_DELAY_MS", 10000, 100, 60000),
        retry_jitter_ms=getenv_int("RETRY_JITTER_MS", 300, 0, 2000),

        log_file=Path(getenv_str("LOG_FILE", str(LOG_FILE))),
    )
