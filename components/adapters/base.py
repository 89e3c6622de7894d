from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple, runtime_checkable


def _as_str_list(v: Any) -> List[str]:
    if not isinstance(v, (list, tuple)):
        return []
    return [str(x) for x in v if x is not None]


def _to_positive_int_or_none(v: Any) -> Optional[int]:
    if v is None or isinstance(v, bool):
        return None
    try:
        f = float(v)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(f) or f <= 0:
        return None
    return int(math.floor(f + 0.5))


@dataclass(frozen=True)
class Resolution:
    width: int
    height: int


@dataclass(frozen=True)
class PlayResult:
    """Outcome of trying to start playback on the page."""

    ok: bool
    reason: Optional[str] = None
    detail: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "PlayResult":
        if not isinstance(data, Mapping):
            return cls(ok=False, reason="no_play_result")
        reason = data.get("reason")
        detail = data.get("detail")
        return cls(
            ok=data.get("ok") is True,
            reason=str(reason) if reason is not None else None,
            detail=str(detail) if detail is not None else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"ok": self.ok}
        if self.reason is not None:
            out["reason"] = self.reason
        if self.detail is not None:
            out["detail"] = self.detail
        return out


@dataclass(frozen=True)
class ExtractedMetadata:
    """What an adapter read off the page. Produced once per visit."""

    title: str = ""
    duration_sec: Optional[int] = None
    resolution: Optional[Resolution] = None
    quality_signals: Tuple[str, ...] = field(default_factory=tuple)
    theme_tags: Tuple[str, ...] = field(default_factory=tuple)
    visual_features: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def height(self) -> int:
        return self.resolution.height if self.resolution else 0

    def policy_text(self) -> str:
        return f"{self.title} {' '.join(self.theme_tags)}"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "ExtractedMetadata":
        """Tolerant parse of the loosely typed object a page script returns."""
        data = data if isinstance(data, Mapping) else {}
        resolution = None
        res = data.get("resolution")
        if isinstance(res, Mapping):
            w = _to_positive_int_or_none(res.get("width"))
            h = _to_positive_int_or_none(res.get("height"))
            if w and h:
                resolution = Resolution(width=w, height=h)
        title = data.get("title")
        return cls(
            title=str(title).strip() if title is not None else "",
            duration_sec=_to_positive_int_or_none(data.get("duration_sec")),
            resolution=resolution,
            quality_signals=tuple(_as_str_list(data.get("quality_signals"))),
            theme_tags=tuple(_as_str_list(data.get("theme_tags"))),
            visual_features=tuple(_as_str_list(data.get("visual_features"))),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "duration_sec": self.duration_sec,
            "resolution": (
                {"width": self.resolution.width, "height": self.resolution.height}
                if self.resolution else None
            ),
            "quality_signals": list(self.quality_signals),
            "theme_tags": list(self.theme_tags),
            "visual_features": list(self.visual_features),
        }


@runtime_checkable
class ExtractionAdapter(Protocol):
    """Per-site capability set: wait for the player, start it, read metadata."""

    name: str

    async def wait_for_player(self, page: Any, timeout_ms: int) -> None: ...

    async def trigger_play(self, page: Any) -> PlayResult: ...

    async def extract(self, page: Any) -> ExtractedMetadata: ...
