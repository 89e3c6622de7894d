from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable, List, Literal, Set

from .policy import hostname_of, is_host_allowed

logger = logging.getLogger(__name__)

ResourcePolicy = Literal["observe", "enforce"]

ROUTE_PATTERN = "**/*"


class ResourceContainment:
    """
    Per-visit guard over the sub-requests a page issues.

    Requests to the allowlisted site domains or to an allowed resource domain
    pass untouched. Anything else is recorded as a cross-domain call and, in
    "enforce" mode, aborted. Hosts that fail to parse are let through.
    """

    def __init__(
        self,
        page_domains: Iterable[str],
        resource_domains: Iterable[str] = (),
        mode: ResourcePolicy = "observe",
    ) -> None:
        self._allowed = tuple(page_domains) + tuple(resource_domains)
        self.mode = mode
        self._cross_domain: Set[str] = set()
        self.aborted = 0

    @property
    def cross_domain_hosts(self) -> List[str]:
        return sorted(self._cross_domain)

    def is_allowed(self, host: str) -> bool:
        return is_host_allowed(host, self._allowed)

    async def handle(self, route) -> None:
        target_host = hostname_of(route.request.url)
        if not target_host or self.is_allowed(target_host):
            await route.continue_()
            return

        self._cross_domain.add(target_host)
        if self.mode == "enforce":
            self.aborted += 1
            logger.debug("Aborted cross-domain request host=%s", target_host)
            await route.abort()
            return
        await route.continue_()

    @asynccontextmanager
    async def installed(self, page) -> AsyncIterator["ResourceContainment"]:
        await page.route(ROUTE_PATTERN, self.handle)
        try:
            yield self
        finally:
            try:
                await page.unroute(ROUTE_PATTERN, self.handle)
            except Exception as e:
                # page already closed; its routes died with it
                logger.debug("Containment unroute failed: %s", e)
