from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Union

from components.adapters.base import ExtractedMetadata


def now_ts() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


# ---------------------------------------------------------------------------
# Discoveries
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DiscoveryRecord:
    source_url: str
    title: str
    duration_sec: int
    theme_tags: Tuple[str, ...]
    visual_features: Tuple[str, ...]
    quality_signals: Tuple[str, ...]
    hd_confirmed: bool
    evidence_hash: Optional[str] = None

    @classmethod
    def from_extracted(
        cls,
        url: str,
        extracted: ExtractedMetadata,
        hd_confirmed: bool,
        evidence_hash: Optional[str] = None,
    ) -> "DiscoveryRecord":
        return cls(
            source_url=url,
            title=extracted.title or "",
            duration_sec=extracted.duration_sec or 0,
            theme_tags=tuple(extracted.theme_tags),
            visual_features=tuple(extracted.visual_features),
            quality_signals=tuple(extracted.quality_signals),
            hd_confirmed=hd_confirmed,
            evidence_hash=evidence_hash,
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "source_url": self.source_url,
            "title": self.title,
            "duration_sec": self.duration_sec,
            "theme_tags": list(self.theme_tags),
            "visual_features": list(self.visual_features),
            "quality_signals": list(self.quality_signals),
            "hd_confirmed": self.hd_confirmed,
        }
        if self.evidence_hash:
            out["evidence_hash"] = self.evidence_hash
        return out


# ---------------------------------------------------------------------------
# Crawl events (one variant per terminal status)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class _EventBase:
    status: ClassVar[str] = ""

    url: str
    reason: str
    ts: str = field(default_factory=now_ts, kw_only=True)

    def _details(self) -> Dict[str, Any]:
        return {}

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "ts": self.ts,
            "url": self.url,
            "status": self.status,
            "reason": self.reason,
        }
        out.update(self._details())
        return out


@dataclass(frozen=True)
class AcceptedEvent(_EventBase):
    status: ClassVar[str] = "accepted"

    title: str = ""
    duration_sec: int = 0
    hd_confirmed: bool = False
    random_delay_ms: int = 0
    cross_domain_calls: Tuple[str, ...] = ()
    evidence_hash: Optional[str] = None

    def _details(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "duration_sec": self.duration_sec,
            "hd_confirmed": self.hd_confirmed,
            "random_delay_ms": self.random_delay_ms,
            "cross_domain_calls": list(self.cross_domain_calls),
            "evidence_hash": self.evidence_hash,
        }


@dataclass(frozen=True)
class DroppedEvent(_EventBase):
    """Policy outcome. Exactly one of title (keyword drop) / height (HD drop) is set."""

    status: ClassVar[str] = "dropped"

    title: Optional[str] = None
    height: Optional[int] = None

    def _details(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        if self.title is not None:
            out["title"] = self.title
        if self.height is not None:
            out["height"] = self.height
        return out


@dataclass(frozen=True)
class SkippedEvent(_EventBase):
    status: ClassVar[str] = "skipped"

    domain: Optional[str] = None
    failures: Optional[int] = None

    def _details(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        if self.domain is not None:
            out["domain"] = self.domain
        if self.failures is not None:
            out["current_failures"] = self.failures
        return out


@dataclass(frozen=True)
class ErrorEvent(_EventBase):
    status: ClassVar[str] = "error"

    error: str = ""
    domain: str = ""

    def _details(self) -> Dict[str, Any]:
        return {"error": self.error, "domain": self.domain}


CrawlEvent = Union[AcceptedEvent, DroppedEvent, SkippedEvent, ErrorEvent]


# ---------------------------------------------------------------------------
# Shared output sequences
# ---------------------------------------------------------------------------

class CrawlLog:
    """
    Append-only discovery and event sequences shared by concurrent visits.
    Order is the order appends happen, i.e. visit completion order.
    """

    def __init__(self) -> None:
        self._discoveries: List[DiscoveryRecord] = []
        self._events: List[CrawlEvent] = []
        self._lock = threading.Lock()

    def add_event(self, event: CrawlEvent) -> None:
        with self._lock:
            self._events.append(event)

    def add_discovery(self, record: DiscoveryRecord) -> None:
        with self._lock:
            self._discoveries.append(record)

    @property
    def events(self) -> List[CrawlEvent]:
        with self._lock:
            return list(self._events)

    @property
    def discoveries(self) -> List[DiscoveryRecord]:
        with self._lock:
            return list(self._discoveries)

    def status_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for ev in self.events:
            counts[ev.status] = counts.get(ev.status, 0) + 1
        return counts
