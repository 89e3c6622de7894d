from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from playwright.async_api import BrowserContext

from components.adapters.base import ExtractedMetadata, PlayResult
from components.adapters.registry import AdapterRegistry, default_registry
from components.url_seeder import admit_seed_urls
from extensions.logging import visit_context

from .circuit import DomainCircuitBreaker, DomainFailureLedger
from .config import Config
from .containment import ResourceContainment
from .policy import canonicalize_url, hostname_of, is_allowlisted_url, violates_keyword_policy
from .records import (
    AcceptedEvent,
    CrawlEvent,
    CrawlLog,
    DiscoveryRecord,
    DroppedEvent,
    ErrorEvent,
    SkippedEvent,
)
from .run_config import RunConfig
from .scheduler import VisitRequest, VisitScheduler

logger = logging.getLogger(__name__)

SleepMs = Callable[[int], Awaitable[None]]


async def _sleep_ms(ms: int) -> None:
    await asyncio.sleep(ms / 1000.0)


def make_evidence_hash(payload: Dict[str, Any]) -> str:
    """SHA-256 over a canonical JSON encoding (sorted keys, no whitespace)."""
    blob = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(blob.encode("utf-8")).hexdigest()


# adapters may hand back the plain dicts their page scripts produce
def _as_play_result(v: Any) -> PlayResult:
    return v if isinstance(v, PlayResult) else PlayResult.from_dict(v)


def _as_extracted(v: Any) -> ExtractedMetadata:
    return v if isinstance(v, ExtractedMetadata) else ExtractedMetadata.from_dict(v)


def _describe_error(e: BaseException) -> str:
    msg = str(e)
    return f"{type(e).__name__}: {msg}" if msg else type(e).__name__


@dataclass(frozen=True)
class CrawlReport:
    discoveries: List[DiscoveryRecord]
    events: List[CrawlEvent]
    domain_failures: Dict[str, int]

    def discoveries_json(self) -> str:
        return json.dumps([d.to_dict() for d in self.discoveries], indent=2, ensure_ascii=False)

    def audit_json(self) -> str:
        return json.dumps(
            {
                "crawl_events": [e.to_dict() for e in self.events],
                "domain_failures": self.domain_failures,
            },
            indent=2,
            ensure_ascii=False,
        )


class DiscoveryCrawler:
    """
    Per-visit policy engine. The scheduler calls handle_visit for every page
    that navigated successfully and handle_failed for every request whose
    navigation retries ran out; both record exactly one terminal event.
    """

    def __init__(
        self,
        run_cfg: RunConfig,
        registry: Optional[AdapterRegistry] = None,
        *,
        ledger: Optional[DomainFailureLedger] = None,
        crawl_log: Optional[CrawlLog] = None,
        rng: Optional[random.Random] = None,
        sleep: Optional[SleepMs] = None,
    ) -> None:
        self.run_cfg = run_cfg
        self.registry = registry if registry is not None else default_registry()
        self.ledger = ledger if ledger is not None else DomainFailureLedger()
        self.breaker = DomainCircuitBreaker(run_cfg.domain_error_budget, self.ledger)
        self.crawl_log = crawl_log if crawl_log is not None else CrawlLog()
        self._rng = rng or random.Random()
        self._sleep = sleep or _sleep_ms

    # ---------- pacing ----------

    def pacing_delay_ms(self) -> int:
        lo, hi = self.run_cfg.random_delay_ms_min, self.run_cfg.random_delay_ms_max
        if hi <= lo:
            return lo
        return self._rng.randint(lo, hi)

    # ---------- scheduler callbacks ----------

    async def handle_visit(self, request: VisitRequest, page) -> None:
        # canonicalize once (navigation may have redirected) and reuse for every check
        url = canonicalize_url(request.loaded_url or request.url) or request.url
        with visit_context(url):
            await self._visit(url, page)

    async def handle_failed(self, request: VisitRequest, error: BaseException) -> None:
        url = canonicalize_url(request.url) or request.url
        domain = hostname_of(url)
        failures = self.breaker.record_failure(domain)
        logger.warning("Request failed url=%s domain=%s failures=%d: %s", url, domain, failures, error)
        self.crawl_log.add_event(ErrorEvent(url, "request_failed", error=_describe_error(error), domain=domain))

    # ---------- state machine ----------

    async def _visit(self, url: str, page) -> None:
        cfg = self.run_cfg
        domain = hostname_of(url)

        circuit = self.breaker.check(domain)
        if circuit.open:
            logger.info("Circuit open for %s (%d failures); skipping", domain, circuit.failures)
            self.crawl_log.add_event(
                SkippedEvent(url, "domain_circuit_open", domain=domain, failures=circuit.failures)
            )
            return

        if not is_allowlisted_url(url, cfg.allowlist_domains):
            logger.info("Landed outside allowlist: %s", url)
            self.crawl_log.add_event(SkippedEvent(url, "outside_allowlist_runtime"))
            return

        delay_ms = self.pacing_delay_ms()
        if delay_ms > 0:
            await self._sleep(delay_ms)

        containment = ResourceContainment(
            cfg.allowlist_domains,
            cfg.allowed_resource_domains,
            cfg.resource_domain_policy,
        )
        try:
            async with containment.installed(page):
                adapter = self.registry.resolve(domain, cfg.adapter_overrides)
                await adapter.wait_for_player(page, cfg.navigation_timeout_ms)
                play_result = _as_play_result(await adapter.trigger_play(page))
                if cfg.playback_wait_ms > 0:
                    await self._sleep(cfg.playback_wait_ms)
                extracted = _as_extracted(await adapter.extract(page))
        except Exception as e:
            failures = self.breaker.record_failure(domain)
            logger.warning("Visit failed domain=%s failures=%d: %s", domain, failures, e)
            self.crawl_log.add_event(ErrorEvent(url, "crawl_failed", error=_describe_error(e), domain=domain))
            return

        self._decide(url, extracted, play_result, delay_ms, containment)

    def _decide(
        self,
        url: str,
        extracted: ExtractedMetadata,
        play_result: PlayResult,
        delay_ms: int,
        containment: ResourceContainment,
    ) -> None:
        cfg = self.run_cfg

        verdict = violates_keyword_policy(
            extracted.policy_text(), cfg.blacklist_keywords, cfg.blocked_keywords
        )
        if verdict.blocked:
            logger.info("Dropped by content policy (%s)", verdict.reason)
            self.crawl_log.add_event(DroppedEvent(url, verdict.reason, title=extracted.title))
            return

        height = extracted.height
        hd_confirmed = height >= cfg.min_hd_height and play_result.ok is True
        if cfg.require_hd_playback_confirmation and not hd_confirmed:
            logger.info("Dropped: HD not confirmed (height=%d play_ok=%s)", height, play_result.ok)
            self.crawl_log.add_event(DroppedEvent(url, "hd_not_confirmed", height=height))
            return

        evidence_hash = None
        if cfg.emit_evidence_hash:
            evidence_hash = make_evidence_hash({
                "url": url,
                "extracted": extracted.to_dict(),
                "play_result": play_result.to_dict(),
                "random_delay_ms": delay_ms,
            })

        self.crawl_log.add_discovery(
            DiscoveryRecord.from_extracted(url, extracted, hd_confirmed, evidence_hash)
        )
        self.crawl_log.add_event(AcceptedEvent(
            url,
            "ok",
            title=extracted.title,
            duration_sec=extracted.duration_sec or 0,
            hd_confirmed=hd_confirmed,
            random_delay_ms=delay_ms,
            cross_domain_calls=tuple(containment.cross_domain_hosts),
            evidence_hash=evidence_hash,
        ))
        logger.info("Accepted URL: %s", url)

    # ---------- run ----------

    def report(self) -> CrawlReport:
        return CrawlReport(
            discoveries=self.crawl_log.discoveries,
            events=self.crawl_log.events,
            domain_failures=self.ledger.snapshot(),
        )

    async def run(self, context: BrowserContext, cfg: Config) -> CrawlReport:
        scheduler = VisitScheduler(
            context,
            cfg,
            max_concurrency=self.run_cfg.max_concurrency,
            navigation_timeout_ms=self.run_cfg.navigation_timeout_ms,
        )
        for url in admit_seed_urls(self.run_cfg, self.crawl_log):
            scheduler.add(url)

        await scheduler.run(self.handle_visit, self.handle_failed)

        report = self.report()
        logger.info(
            "Run complete: %d discoveries, events=%s, domain_failures=%s",
            len(report.discoveries), self.crawl_log.status_counts(), report.domain_failures,
        )
        return report
