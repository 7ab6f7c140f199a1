"""
Text normalization helpers shared by every text signal.

All lexical signals (classifier, clustering, topic dedup, region scoring)
tokenize the same way so that a token counted by one stage means the same
thing to the next.
"""

import math
import re
from functools import lru_cache
from typing import List

_WHITESPACE = re.compile(r"\s+")
_TOKEN_SPLIT = re.compile(r"[^a-z0-9+]+")


def sanitize(text) -> str:
    """Collapse whitespace and trim. None/empty → ''."""
    if not text:
        return ""
    return _WHITESPACE.sub(" ", str(text)).strip()


def tokenize(text) -> List[str]:
    """Lower-case tokens split on anything that is not [a-z0-9+]."""
    return [t for t in _TOKEN_SPLIT.split(sanitize(text).lower()) if t]


@lru_cache(maxsize=2048)
def _phrase_pattern(phrase: str) -> "re.Pattern":
    return re.compile(r"(?<![a-z0-9])" + re.escape(phrase) + r"(?![a-z0-9])")


def contains_phrase(text: str, phrase: str) -> bool:
    """Word-bounded substring match ("ga" does not match "gaming")."""
    if not phrase or not text:
        return False
    return _phrase_pattern(phrase.lower()).search(text) is not None


def clamp01(value) -> float:
    """Clamp to [0, 1]; NaN/inf/None → 0."""
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(value) or value < 0:
        return 0.0
    return 1.0 if value > 1 else value


def clamp(value: float, low: float, high: float) -> float:
    if value is None or not math.isfinite(value):
        return low
    return max(low, min(high, value))
