from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .policy import hostname_of
from .utils import ConfigInvalidError


def _normalize_domains(v: Any) -> List[str]:
    if v is None:
        return []
    if not isinstance(v, (list, tuple)):
        raise ValueError("must be a list of domain strings")
    out: List[str] = []
    seen = set()
    for item in v:
        if not isinstance(item, str):
            raise ValueError("must be a list of domain strings")
        d = item.strip().lower()
        if not d or d in seen:
            continue
        seen.add(d)
        out.append(d)
    return out


class RunConfig(BaseModel):
    """
    Validated, immutable policy for one crawl run. Unknown keys are rejected.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    # Inputs
    seed_urls: List[str] = Field(default_factory=list)
    discovery_roots: List[str] = Field(default_factory=list)

    # Domain policy
    allowlist_domains: List[str] = Field(..., min_length=1)
    allowed_resource_domains: List[str] = Field(default_factory=list)
    resource_domain_policy: Literal["observe", "enforce"] = "observe"
    adapter_overrides: Dict[str, str] = Field(default_factory=dict)

    # Scheduling / pacing
    max_concurrency: int = Field(default=2, ge=1, le=64)
    navigation_timeout_ms: int = Field(default=30000, ge=1000, le=300000)
    playback_wait_ms: int = Field(default=2500, ge=0, le=60000)
    random_delay_ms_min: int = Field(default=250, ge=0, le=60000)
    random_delay_ms_max: int = Field(default=1250, ge=0, le=60000)
    domain_error_budget: int = Field(default=3, ge=1)

    # Content / quality policy
    blacklist_keywords: List[str] = Field(default_factory=list)
    blocked_keywords: List[str] = Field(default_factory=list)
    min_hd_height: int = Field(default=720, ge=1)
    require_hd_playback_confirmation: bool = False
    emit_evidence_hash: bool = True

    @field_validator("allowlist_domains", "allowed_resource_domains", mode="before")
    @classmethod
    def _domains(cls, v: Any) -> List[str]:
        return _normalize_domains(v)

    @field_validator("adapter_overrides", mode="before")
    @classmethod
    def _overrides(cls, v: Any) -> Dict[str, str]:
        if v is None:
            return {}
        if not isinstance(v, dict):
            raise ValueError("must be an object mapping hostname to adapter id")
        return {str(k).strip().lower(): val for k, val in v.items()}

    @model_validator(mode="after")
    def _cross_field(self) -> "RunConfig":
        if self.random_delay_ms_max < self.random_delay_ms_min:
            raise ValueError("random_delay_ms_max must be >= random_delay_ms_min")
        if not self.seed_urls and not self.discovery_roots:
            raise ValueError("at least one seed_urls or discovery_roots entry is required")
        return self

    def candidate_urls(self) -> List[str]:
        return [*self.seed_urls, *self.discovery_roots]


def _read_config_input(config_path: Optional[str]) -> Optional[str]:
    if not config_path:
        return None
    if config_path == "-":
        return sys.stdin.read()
    return Path(config_path).read_text(encoding="utf-8")


def build_run_config(
    raw: Optional[Dict[str, Any]] = None,
    *,
    inline_url: Optional[str] = None,
    require_hd: bool = False,
) -> RunConfig:
    """
    Apply CLI overrides to a raw mapping and validate it.
    `inline_url` replaces the seed list and, when no allowlist was given,
    allowlists the URL's own host.
    """
    base: Dict[str, Any] = dict(raw or {})
    if inline_url:
        base["seed_urls"] = [inline_url]
        if not base.get("allowlist_domains"):
            host = hostname_of(inline_url)
            base["allowlist_domains"] = [host] if host else []
    if require_hd:
        base["require_hd_playback_confirmation"] = True

    try:
        return RunConfig.model_validate(base)
    except ValidationError as e:
        lines = []
        for err in e.errors():
            loc = ".".join(str(p) for p in err.get("loc", ())) or "<root>"
            lines.append(f"{loc}: {err.get('msg')}")
        raise ConfigInvalidError("Invalid crawler config:\n" + "\n".join(lines)) from e


def load_run_config(
    config_path: Optional[str] = None,
    *,
    inline_url: Optional[str] = None,
    require_hd: bool = False,
) -> RunConfig:
    try:
        text = _read_config_input(config_path)
    except OSError as e:
        raise ConfigInvalidError(f"Cannot read crawler config {config_path}: {e}") from e

    raw: Dict[str, Any] = {}
    if text:
        try:
            raw = json.loads(text)
        except json.JSONDecodeError as e:
            raise ConfigInvalidError(f"Crawler config is not valid JSON: {e}") from e
        if not isinstance(raw, dict):
            raise ConfigInvalidError("Crawler config must be a JSON object")
    return build_run_config(raw, inline_url=inline_url, require_hd=require_hd)
