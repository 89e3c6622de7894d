from __future__ import annotations

import logging
from typing import Any

from .base import ExtractedMetadata, PlayResult
from .registry import DEFAULT_ADAPTER_ID, register_adapter

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# In-page scripts
# ---------------------------------------------------------------------------

_HAS_VIDEO_JS = "() => !!document.querySelector('video')"

_TRIGGER_PLAY_JS = """
async () => {
  const video = document.querySelector('video');
  if (!video) return { ok: false, reason: 'no_video_element' };

  try {
    if (video.paused) {
      await video.play();
    }
    return { ok: true };
  } catch (error) {
    const playButton =
      document.querySelector('[aria-label*="play" i]') ||
      document.querySelector('.play') ||
      document.querySelector('button');

    if (playButton) {
      playButton.click();
      return { ok: true, reason: 'fallback_click' };
    }

    return { ok: false, reason: 'play_failed', detail: String(error) };
  }
}
"""

_EXTRACT_JS = """
() => {
  const video = document.querySelector('video');
  const ogTitle = document.querySelector('meta[property="og:title"]');
  const h1 = document.querySelector('h1');
  const rawTitle =
    (ogTitle && ogTitle.getAttribute('content')) ||
    (h1 && h1.textContent) ||
    document.title ||
    '';
  const duration = video && Number.isFinite(video.duration) ? video.duration : null;
  const width = (video && video.videoWidth) || null;
  const height = (video && video.videoHeight) || null;
  return {
    title: rawTitle.trim(),
    duration_sec: duration,
    resolution: width && height ? { width, height } : null,
    theme_tags: [],
    visual_features: []
  };
}
"""


def quality_signals_for(width: int | None, height: int | None) -> list[str]:
    signals: list[str] = []
    if width and height:
        signals.append(f"{width}x{height}")
    if height and height >= 720:
        signals.append("hd")
    if height and height >= 1080:
        signals.append("1080p")
    return signals


@register_adapter(DEFAULT_ADAPTER_ID)
class DefaultVideoAdapter:
    """Generic HTML5 <video> page: first video element, og:title / h1 / <title>."""

    name = DEFAULT_ADAPTER_ID

    async def wait_for_player(self, page: Any, timeout_ms: int) -> None:
        await page.wait_for_function(_HAS_VIDEO_JS, timeout=timeout_ms)

    async def trigger_play(self, page: Any) -> PlayResult:
        raw = await page.evaluate(_TRIGGER_PLAY_JS)
        result = PlayResult.from_dict(raw)
        if result.reason == "fallback_click":
            log.debug("Direct play() rejected; clicked play control on %s", getattr(page, "url", "?"))
        return result

    async def extract(self, page: Any) -> ExtractedMetadata:
        raw = await page.evaluate(_EXTRACT_JS) or {}
        meta = ExtractedMetadata.from_dict(raw)
        res = meta.resolution
        signals = quality_signals_for(res.width if res else None, res.height if res else None)
        return ExtractedMetadata(
            title=meta.title,
            duration_sec=meta.duration_sec,
            resolution=meta.resolution,
            quality_signals=tuple(signals),
            theme_tags=meta.theme_tags,
            visual_features=meta.visual_features,
        )
