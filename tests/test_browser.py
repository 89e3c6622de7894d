import asyncio
import dataclasses

import pytest

import discovery.browser as browser_mod
from discovery.browser import init_browser, new_page, shutdown_browser
from discovery.config import load_config
from discovery.utils import TransientHTTPError


class StubPage:
    def __init__(self):
        self.closed = False

    async def close(self):
        self.closed = True


class StubContext:
    def __init__(self):
        self.closed = False
        self._default_timeout = None
        self._default_navigation_timeout = None
        self._pages = []
        self._new_page_raises = None

    def set_default_timeout(self, ms):
        self._default_timeout = ms

    def set_default_navigation_timeout(self, ms):
        self._default_navigation_timeout = ms

    async def new_page(self):
        if self._new_page_raises:
            raise self._new_page_raises
        p = StubPage()
        self._pages.append(p)
        return p

    async def close(self):
        self.closed = True


class StubBrowser:
    def __init__(self, context):
        self.context = context
        self.closed = False
        self._context_kwargs = None

    async def new_context(self, **kwargs):
        self._context_kwargs = kwargs
        return self.context

    async def close(self):
        self.closed = True


class StubChromium:
    def __init__(self, browser):
        self.browser = browser
        self._launch_kwargs = None

    async def launch(self, **kwargs):
        self._launch_kwargs = kwargs
        return self.browser


class StubPlaywright:
    def __init__(self, chromium):
        self.chromium = chromium
        self.stopped = False

    async def stop(self):
        self.stopped = True


class AsyncPlaywrightFactory:
    def __init__(self, pw):
        self._pw = pw

    async def start(self):
        return self._pw


@pytest.fixture
def stubs(monkeypatch):
    context = StubContext()
    browser = StubBrowser(context=context)
    chromium = StubChromium(browser=browser)
    pw = StubPlaywright(chromium=chromium)
    factory = AsyncPlaywrightFactory(pw)
    monkeypatch.setattr(browser_mod, "async_playwright", lambda: factory)
    return pw, chromium, browser, context


def _cfg(**over):
    return dataclasses.replace(load_config(), **over)


@pytest.mark.asyncio
async def test_init_browser_with_proxy_and_extra_args(stubs):
    pw, chromium, browser, context = stubs
    cfg = _cfg(
        proxy_server="http://localhost:8888",
        browser_args_extra=("--mute-audio", "  "),
        user_agent="pytest-UA",
        browser_ignore_https_errors=True,
    )

    pw_ret, browser_ret, context_ret = await init_browser(cfg, navigation_timeout_ms=12345)

    assert pw_ret is pw
    assert browser_ret is browser
    assert context_ret is context

    # navigation timeout from the run config becomes the context default
    assert context._default_timeout == 12345
    assert context._default_navigation_timeout == 12345

    kwargs = chromium._launch_kwargs
    assert kwargs["proxy"] == {"server": "http://localhost:8888"}
    assert kwargs["headless"] == cfg.headless
    assert "--autoplay-policy=no-user-gesture-required" in kwargs["args"]
    assert kwargs["args"][-1] == "--mute-audio"
    assert "  " not in kwargs["args"]

    assert browser._context_kwargs["user_agent"] == "pytest-UA"
    assert browser._context_kwargs["ignore_https_errors"] is True

    await shutdown_browser(pw_ret, browser_ret, context_ret)
    assert context_ret.closed is True
    assert browser_ret.closed is True
    assert pw.stopped is True


@pytest.mark.asyncio
async def test_init_browser_without_proxy(stubs):
    pw, chromium, browser, context = stubs

    pw_ret, browser_ret, ctx = await init_browser(_cfg(proxy_server=None), navigation_timeout_ms=30000)
    assert chromium._launch_kwargs["proxy"] is None

    await shutdown_browser(pw_ret, browser_ret, ctx)
    assert ctx.closed is True
    assert pw.stopped is True


@pytest.mark.asyncio
async def test_loop_exception_handler_installed_and_restored(stubs):
    loop = asyncio.get_running_loop()
    before = loop.get_exception_handler()

    pw_ret, browser_ret, ctx = await init_browser(_cfg(), navigation_timeout_ms=30000)
    assert loop.get_exception_handler() is not before

    await shutdown_browser(pw_ret, browser_ret, ctx)
    assert loop.get_exception_handler() is before


@pytest.mark.asyncio
async def test_shutdown_keeps_going_when_close_fails(stubs):
    pw, chromium, browser, context = stubs
    pw_ret, browser_ret, ctx = await init_browser(_cfg(), navigation_timeout_ms=30000)

    async def boom():
        raise RuntimeError("already closed")

    ctx.close = boom
    await shutdown_browser(pw_ret, browser_ret, ctx)
    assert browser_ret.closed is True
    assert pw.stopped is True


@pytest.mark.asyncio
async def test_new_page_ok_and_error_path(stubs):
    pw_ret, browser_ret, ctx = await init_browser(_cfg(), navigation_timeout_ms=30000)

    page = await new_page(ctx)
    assert isinstance(page, StubPage)
    assert page.closed is False

    # error path -> ensure TransientHTTPError raised
    ctx._new_page_raises = RuntimeError("boom")
    with pytest.raises(TransientHTTPError):
        await new_page(ctx)

    await shutdown_browser(pw_ret, browser_ret, ctx)
