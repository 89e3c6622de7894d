from __future__ import annotations

import logging
import re
from typing import Callable, Dict, List, Mapping, Optional

from discovery.utils import AdapterNotFoundError

from .base import ExtractionAdapter

log = logging.getLogger(__name__)

DEFAULT_ADAPTER_ID = "default"

_UNSAFE_DOMAIN_CHARS = re.compile(r"[^a-z0-9.-]")

AdapterFactory = Callable[[], ExtractionAdapter]


def sanitize_domain(hostname: str) -> str:
    return _UNSAFE_DOMAIN_CHARS.sub("-", (hostname or "").lower())


def _has_capabilities(obj: object) -> bool:
    return all(
        callable(getattr(obj, attr, None))
        for attr in ("wait_for_player", "trigger_play", "extract")
    )


class AdapterRegistry:
    """
    Startup-time table of adapter factories keyed by adapter id.

    Ids are either a sanitized hostname ("media.example.com") or an arbitrary
    name referenced from the run's adapter_overrides. Resolution is a pure
    lookup: override for the exact host, then the sanitized host, then
    DEFAULT_ADAPTER_ID.
    """

    def __init__(self) -> None:
        self._factories: Dict[str, AdapterFactory] = {}

    def register(self, adapter_id: str, factory: AdapterFactory) -> None:
        self._factories[adapter_id] = factory

    def __contains__(self, adapter_id: str) -> bool:
        return adapter_id in self._factories

    def candidates(self, hostname: str, overrides: Optional[Mapping[str, str]] = None) -> List[str]:
        host = (hostname or "").lower()
        out: List[str] = []
        override = (overrides or {}).get(host)
        if override:
            out.append(override)
        for cid in (sanitize_domain(host), DEFAULT_ADAPTER_ID):
            if cid not in out:
                out.append(cid)
        return out

    def _load(self, adapter_id: str) -> Optional[ExtractionAdapter]:
        factory = self._factories.get(adapter_id)
        if factory is None:
            return None
        try:
            adapter = factory()
        except Exception as e:
            log.debug("Adapter %s failed to load: %s", adapter_id, e)
            return None
        if not _has_capabilities(adapter):
            log.debug("Adapter %s lacks the capability set; skipping", adapter_id)
            return None
        return adapter

    def resolve(self, hostname: str, overrides: Optional[Mapping[str, str]] = None) -> ExtractionAdapter:
        for cid in self.candidates(hostname, overrides):
            adapter = self._load(cid)
            if adapter is not None:
                log.debug("Resolved adapter %s for host=%s", cid, hostname)
                return adapter
        raise AdapterNotFoundError(hostname)


_DEFAULT_REGISTRY = AdapterRegistry()


def register_adapter(adapter_id: str) -> Callable[[AdapterFactory], AdapterFactory]:
    """Class/factory decorator that adds an adapter to the shared registry."""
    def _decorator(factory: AdapterFactory) -> AdapterFactory:
        _DEFAULT_REGISTRY.register(adapter_id, factory)
        return factory
    return _decorator


def default_registry() -> AdapterRegistry:
    # importing the bundled adapters registers them
    from . import default  # noqa: F401
    return _DEFAULT_REGISTRY
