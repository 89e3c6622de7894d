from __future__ import annotations

import logging
from typing import List

from discovery.policy import canonicalize_url, is_allowlisted_url, is_http_url
from discovery.records import CrawlLog, SkippedEvent
from discovery.run_config import RunConfig

log = logging.getLogger(__name__)


def admit_seed_urls(run_cfg: RunConfig, crawl_log: CrawlLog) -> List[str]:
    """
    Filter seed URLs and discovery roots down to the canonical, allowlisted,
    de-duplicated list that gets queued. Every rejection is recorded as a
    skipped event; duplicates collapse silently.
    """
    admitted: List[str] = []
    seen: set[str] = set()

    for raw in run_cfg.candidate_urls():
        url = canonicalize_url(raw) if is_http_url(raw) else None
        if url is None:
            crawl_log.add_event(SkippedEvent(raw, "invalid_or_non_http_url"))
            continue
        if url in seen:
            continue
        seen.add(url)

        if not is_allowlisted_url(url, run_cfg.allowlist_domains):
            crawl_log.add_event(SkippedEvent(url, "outside_allowlist"))
            continue
        admitted.append(url)

    log.info(
        "Seed admission: %d candidate(s) → %d admitted",
        len(run_cfg.candidate_urls()), len(admitted),
    )
    return admitted
