from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Deque, List, Optional, Set

from playwright.async_api import BrowserContext, Page, Error as PWError

from .browser import new_page
from .config import Config
from .utils import (
    TransientHTTPError,
    http_status_to_exc,
    navigation_retrying,
    try_close_page,
)

logger = logging.getLogger(__name__)


@dataclass
class VisitRequest:
    url: str
    unique_key: str
    retry_count: int = 0
    loaded_url: Optional[str] = None
    error_messages: List[str] = field(default_factory=list)


RequestHandler = Callable[[VisitRequest, Page], Awaitable[None]]
FailedRequestHandler = Callable[[VisitRequest, BaseException], Awaitable[None]]


class RequestQueue:
    """FIFO of visit requests; a second add with the same unique key is a no-op."""

    def __init__(self) -> None:
        self._pending: Deque[VisitRequest] = deque()
        self._seen: Set[str] = set()

    def add(self, url: str, unique_key: Optional[str] = None) -> bool:
        key = unique_key or url
        if key in self._seen:
            return False
        self._seen.add(key)
        self._pending.append(VisitRequest(url=url, unique_key=key))
        return True

    def pop(self) -> Optional[VisitRequest]:
        return self._pending.popleft() if self._pending else None

    def __len__(self) -> int:
        return len(self._pending)


class VisitScheduler:
    """
    Drains a RequestQueue with at most `max_concurrency` visits in flight.

    Each attempt gets a fresh page: navigate (bounded by the navigation
    timeout), then hand the loaded page to the request handler. Navigation
    failures are retried via tenacity; once retries are exhausted the failed
    handler is called instead.
    """

    def __init__(
        self,
        context: BrowserContext,
        cfg: Config,
        *,
        max_concurrency: int,
        navigation_timeout_ms: int,
        queue: Optional[RequestQueue] = None,
    ) -> None:
        self.context = context
        self.cfg = cfg
        self.max_concurrency = max(1, int(max_concurrency))
        self.navigation_timeout_ms = navigation_timeout_ms
        self.queue = queue if queue is not None else RequestQueue()
        self.handled = 0
        self.failed = 0

    def add(self, url: str) -> bool:
        return self.queue.add(url, unique_key=url)

    async def _navigate(self, page: Page, request: VisitRequest) -> None:
        try:
            resp = await page.goto(
                request.url,
                wait_until=self.cfg.navigation_wait_until,
                timeout=self.navigation_timeout_ms,
            )
        except PWError as e:
            raise TransientHTTPError(f"navigation failed: {e}") from e
        exc = http_status_to_exc(resp.status if resp else None)
        if exc is not None:
            raise exc
        request.loaded_url = page.url or request.url

    async def _attempt(self, request: VisitRequest, handler: RequestHandler) -> None:
        page = await new_page(self.context)
        try:
            await self._navigate(page, request)
            await handler(request, page)
        finally:
            await try_close_page(page, self.cfg.page_close_timeout_ms)

    async def _process(
        self,
        request: VisitRequest,
        handler: RequestHandler,
        failed_handler: FailedRequestHandler,
    ) -> None:
        retrying = navigation_retrying(
            self.cfg.max_request_retries,
            self.cfg.retry_initial_delay_ms,
            self.cfg.retry_max_delay_ms,
            self.cfg.retry_jitter_ms,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    n = attempt.retry_state.attempt_number
                    if n > 1:
                        request.retry_count = n - 1
                        logger.info("Retrying %s (retry %d)", request.url, request.retry_count)
                    try:
                        await self._attempt(request, handler)
                    except Exception as e:
                        request.error_messages.append(str(e))
                        raise
        except (TransientHTTPError, TimeoutError, OSError) as e:
            self.failed += 1
            logger.warning(
                "Request failed after %d attempt(s): %s errors=[%s]",
                request.retry_count + 1, request.url, "; ".join(request.error_messages),
            )
            await failed_handler(request, e)
            return
        except Exception as e:
            # handler bugs are not retried, but they still surface as a failed request
            self.failed += 1
            logger.exception("Request handler crashed for %s", request.url)
            await failed_handler(request, e)
            return
        self.handled += 1

    async def _worker(self, handler: RequestHandler, failed_handler: FailedRequestHandler) -> None:
        while True:
            request = self.queue.pop()
            if request is None:
                return
            await self._process(request, handler, failed_handler)

    async def run(self, handler: RequestHandler, failed_handler: FailedRequestHandler) -> None:
        n = min(self.max_concurrency, max(1, len(self.queue)))
        logger.info("Scheduler starting: %d request(s), %d worker(s)", len(self.queue), n)
        workers = [
            asyncio.create_task(self._worker(handler, failed_handler), name=f"visit-worker-{i}")
            for i in range(n)
        ]
        await asyncio.gather(*workers)
        logger.info("Scheduler finished: handled=%d failed=%d", self.handled, self.failed)
