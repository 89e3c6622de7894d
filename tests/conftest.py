import dataclasses
import random

import pytest

from components.adapters.base import ExtractedMetadata, PlayResult, Resolution
from components.adapters.registry import AdapterRegistry
from discovery.config import load_config
from discovery.crawler import DiscoveryCrawler
from discovery.run_config import build_run_config


# ---------------------------------------------------------------------------
# Playwright stand-ins
# ---------------------------------------------------------------------------

class StubRequest:
    def __init__(self, url):
        self.url = url


class StubRoute:
    def __init__(self, url):
        self.request = StubRequest(url)
        self.action = None

    async def continue_(self):
        self.action = "continue"

    async def abort(self, error_code=None):
        self.action = "abort"


class StubResponse:
    def __init__(self, status=200):
        self.status = status


class StubPage:
    """
    Minimal page: route/unroute bookkeeping, a scripted goto, and `fire()` to
    simulate the page issuing a sub-request through installed routes.
    """

    def __init__(self, goto_behavior=None, final_url=None):
        self.url = "about:blank"
        self.routes = []
        self.closed = False
        self.fired = []
        self._goto_behavior = goto_behavior
        self._final_url = final_url

    async def goto(self, url, wait_until=None, timeout=None):
        behavior = self._goto_behavior
        if isinstance(behavior, BaseException):
            raise behavior
        self.url = self._final_url or url
        status = behavior if isinstance(behavior, int) else 200
        return StubResponse(status)

    async def route(self, pattern, handler):
        self.routes.append((pattern, handler))

    async def unroute(self, pattern, handler=None):
        self.routes = [
            (p, h) for (p, h) in self.routes
            if not (p == pattern and (handler is None or h == handler))
        ]

    async def fire(self, url):
        route = StubRoute(url)
        for _pattern, handler in list(self.routes):
            await handler(route)
        if route.action is None:
            route.action = "continue"
        self.fired.append(route)
        return route

    async def close(self):
        self.closed = True


class StubContext:
    """Hands out pages built by `page_factory(n)` where n counts new_page calls."""

    def __init__(self, page_factory=None):
        self.page_factory = page_factory or (lambda n: StubPage())
        self.pages = []

    async def new_page(self):
        page = self.page_factory(len(self.pages))
        self.pages.append(page)
        return page


class FakeAdapter:
    name = "fake"

    def __init__(self, extracted=None, play=None, fail_on=None, sub_requests=()):
        self.extracted = extracted or ExtractedMetadata(
            title="Cats",
            duration_sec=30,
            resolution=Resolution(width=1280, height=720),
        )
        self.play = play or PlayResult(ok=True)
        self.fail_on = fail_on
        self.sub_requests = list(sub_requests)
        self.calls = []

    async def wait_for_player(self, page, timeout_ms):
        self.calls.append(("wait_for_player", timeout_ms))
        if self.fail_on == "wait":
            raise TimeoutError("player never appeared")
        for u in self.sub_requests:
            await page.fire(u)

    async def trigger_play(self, page):
        self.calls.append(("trigger_play",))
        if self.fail_on == "play":
            raise RuntimeError("play exploded")
        return self.play

    async def extract(self, page):
        self.calls.append(("extract",))
        if self.fail_on == "extract":
            raise RuntimeError("extract exploded")
        return self.extracted


class SleepRecorder:
    def __init__(self):
        self.calls = []

    async def __call__(self, ms):
        self.calls.append(ms)


# ---------------------------------------------------------------------------
# Fixtures / builders
# ---------------------------------------------------------------------------

BASE_RUN = {
    "seed_urls": ["https://example.com/v/1"],
    "allowlist_domains": ["example.com"],
    "random_delay_ms_min": 0,
    "random_delay_ms_max": 0,
    "playback_wait_ms": 0,
}


def make_run_config(**over):
    raw = dict(BASE_RUN)
    raw.update(over)
    return build_run_config(raw)


def make_registry(adapter, adapter_id="default"):
    reg = AdapterRegistry()
    reg.register(adapter_id, lambda: adapter)
    return reg


def make_crawler(adapter=None, sleep=None, **run_over):
    run_cfg = make_run_config(**run_over)
    return DiscoveryCrawler(
        run_cfg,
        make_registry(adapter or FakeAdapter()),
        rng=random.Random(7),
        sleep=sleep or SleepRecorder(),
    )


@pytest.fixture
def fast_cfg():
    """Runtime config with zero retry backoff so failure paths run instantly."""
    return dataclasses.replace(
        load_config(),
        retry_initial_delay_ms=0,
        retry_max_delay_ms=100,
        retry_jitter_ms=0,
        max_request_retries=1,
        page_close_timeout_ms=100,
    )
