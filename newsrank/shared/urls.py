"""
URL canonicalization, domain extraction and stable identifiers.

canonical form: fragment dropped, http upgraded to https, every run of
slashes in the path collapsed, trailing slash removed from non-root paths.
The query string is preserved. Canonicalizing a canonical URL returns it unchanged.
"""

import hashlib
import logging
import re
from functools import lru_cache
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

import tldextract

logger = logging.getLogger(__name__)

# Bundled public-suffix snapshot only; never fetch the list over the network.
_extractor = tldextract.TLDExtract(suffix_list_urls=())

_MULTI_SLASH = re.compile(r"/{2,}")


def canonicalize_url(raw: str) -> str:
    """Canonical form of a URL; unparseable input is returned trimmed."""
    text = (raw or "").strip()
    if not text:
        return ""
    try:
        parts = urlsplit(text)
    except ValueError:
        return text
    if not parts.scheme or not parts.netloc:
        return text

    scheme = parts.scheme.lower()
    if scheme == "http":
        scheme = "https"
    netloc = parts.netloc.lower()

    path = parts.path or "/"
    if path != "/":
        path = _MULTI_SLASH.sub("/", path)
        if path.endswith("/"):
            path = path.rstrip("/") or "/"

    return urlunsplit((scheme, netloc, path, parts.query, ""))


def get_domain(url: str) -> str:
    """Hostname without a leading www., lower-cased; 'unknown' when unparseable."""
    try:
        hostname = urlsplit((url or "").strip()).hostname
    except ValueError:
        return "unknown"
    if not hostname:
        return "unknown"
    hostname = hostname.lower()
    if hostname.startswith("www."):
        hostname = hostname[4:]
    return hostname


@lru_cache(maxsize=4096)
def registered_domain(domain: str) -> Optional[str]:
    """
    Registrable part of a host name ("in.reuters.com" → "reuters.com").

    Returns None when the host has no public suffix (e.g. "localhost").
    """
    if not domain or domain == "unknown":
        return None
    try:
        extracted = _extractor(domain)
    except Exception as e:
        logger.debug(f"tldextract failed for {domain!r}: {e}")
        return None
    if extracted.domain and extracted.suffix:
        return f"{extracted.domain}.{extracted.suffix}".lower()
    return None


def hash_id(*parts: str) -> str:
    """Stable short id for a tuple of strings (sha1, 16 hex chars)."""
    joined = "||".join(str(p) for p in parts)
    return hashlib.sha1(joined.encode("utf-8")).hexdigest()[:16]
