from __future__ import annotations

from typing import Iterable, NamedTuple, Optional
from urllib.parse import urlsplit, urlunsplit

_DEFAULT_PORTS = {"http": 80, "https": 443}


class KeywordVerdict(NamedTuple):
    blocked: bool
    reason: str


# ========== URL helpers ==========

def canonicalize_url(url: str) -> Optional[str]:
    """
    Canonical form used as dedupe key and policy input: fragment removed,
    default port (80/443) dropped, scheme and host lowercased.
    Returns None for anything that does not parse into scheme + host.
    """
    if not isinstance(url, str):
        return None
    try:
        parts = urlsplit(url.strip())
        host = parts.hostname
        port = parts.port
    except ValueError:
        return None
    scheme = parts.scheme.lower()
    if not scheme or not host:
        return None

    if ":" in host:
        host = f"[{host}]"
    netloc = host
    if port is not None and port != _DEFAULT_PORTS.get(scheme):
        netloc = f"{host}:{port}"
    if parts.username or parts.password:
        userinfo = parts.username or ""
        if parts.password:
            userinfo = f"{userinfo}:{parts.password}"
        netloc = f"{userinfo}@{netloc}"

    path = parts.path
    if not path and scheme in _DEFAULT_PORTS:
        path = "/"
    return urlunsplit((scheme, netloc, path, parts.query, ""))


def is_http_url(url: str) -> bool:
    try:
        s = urlsplit(url).scheme.lower()
    except (ValueError, AttributeError):
        return False
    return s in {"http", "https"}


def hostname_of(url: str) -> str:
    """Lowercase hostname, or "" when the input does not parse."""
    try:
        return (urlsplit(url).hostname or "").lower()
    except (ValueError, AttributeError):
        return ""


# ========== Domain matching ==========

def host_matches_domain(host: str, domain: str) -> bool:
    host = (host or "").lower()
    domain = (domain or "").strip().lower()
    if not host or not domain:
        return False
    return host == domain or host.endswith("." + domain)


def is_host_allowed(host: str, domains: Iterable[str]) -> bool:
    return any(host_matches_domain(host, d) for d in domains)


def is_allowlisted_url(url: str, allowlist_domains: Iterable[str]) -> bool:
    host = hostname_of(url)
    if not host:
        return False
    return is_host_allowed(host, allowlist_domains)


# ========== Content policy ==========

def _first_hit(normalized: str, terms: Iterable[str]) -> Optional[str]:
    for term in terms:
        if term and term.lower() in normalized:
            return term
    return None


def violates_keyword_policy(
    text: Optional[str],
    blacklist_keywords: Iterable[str] = (),
    blocked_keywords: Iterable[str] = (),
) -> KeywordVerdict:
    """
    Case-insensitive substring check. The blocked list is consulted before the
    blacklist; within a list the first matching term wins.
    """
    normalized = (text or "").lower()

    hit = _first_hit(normalized, blocked_keywords)
    if hit is not None:
        return KeywordVerdict(True, f"blocked_keyword:{hit}")

    hit = _first_hit(normalized, blacklist_keywords)
    if hit is not None:
        return KeywordVerdict(True, f"blacklist_keyword:{hit}")

    return KeywordVerdict(False, "ok")
