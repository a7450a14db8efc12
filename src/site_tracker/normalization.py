"""Utilities to map resource URLs to attribution domains."""

from __future__ import annotations

from typing import Optional
from urllib.parse import urlsplit

UNKNOWN_DOMAIN = "unknown"

# Host UI and extension pages never count towards usage.
_INTERNAL_SCHEMES = frozenset(
    {
        "about",
        "brave",
        "chrome",
        "chrome-extension",
        "chrome-search",
        "devtools",
        "edge",
        "moz-extension",
        "opera",
        "view-source",
    }
)


def classify_domain(url: Optional[str]) -> str:
    """Return the hostname of ``url`` or ``"unknown"`` when none applies."""
    if not url:
        return UNKNOWN_DOMAIN
    try:
        parts = urlsplit(url.strip())
        hostname = parts.hostname
    except ValueError:
        return UNKNOWN_DOMAIN
    if parts.scheme.lower() in _INTERNAL_SCHEMES or not hostname:
        return UNKNOWN_DOMAIN
    return hostname


def is_trackable_url(url: Optional[str]) -> bool:
    """Whether a focused resource should open a session at all."""
    if not url or not url.strip():
        return False
    try:
        scheme = urlsplit(url.strip()).scheme.lower()
    except ValueError:
        return False
    return scheme not in _INTERNAL_SCHEMES
