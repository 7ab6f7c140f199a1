"""
Shortlist tuning: topic-weight mix and shortlist size.

Topic weights are relative and get normalized to percentages (sum 100).
Negative or non-numeric weights count as 0; if nothing positive remains the
defaults apply. max_shortlist is clamped to [3, 15].
"""

import json
import logging
import math
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, Field

from newsrank.config import get_settings
from newsrank.schemas.base import TOPIC_ORDER

logger = logging.getLogger(__name__)

MIN_SHORTLIST = 3
MAX_SHORTLIST = 15
DEFAULT_TOPIC_WEIGHTS = {"regulation": 0.0, "product": 0.0, "ai": 90.0, "other": 10.0}


def _default_weights() -> Dict[str, float]:
    try:
        raw = json.loads(get_settings().topic_weights)
    except ValueError:
        logger.warning("TOPIC_WEIGHTS is not valid JSON, using built-in topic mix")
        return dict(DEFAULT_TOPIC_WEIGHTS)
    if not isinstance(raw, dict):
        return dict(DEFAULT_TOPIC_WEIGHTS)
    return _normalize(raw, DEFAULT_TOPIC_WEIGHTS)


def _normalize(raw: Mapping[str, Any], fallback: Mapping[str, float]) -> Dict[str, float]:
    """Percentages per topic; fallback (already percentages) when nothing is positive."""
    cleaned: Dict[str, float] = {}
    for topic in TOPIC_ORDER:
        try:
            value = float(raw.get(topic, 0.0))
        except (TypeError, ValueError):
            value = 0.0
        cleaned[topic] = value if math.isfinite(value) and value > 0 else 0.0
    total = sum(cleaned.values())
    if total <= 0:
        return dict(fallback)
    return {topic: value / total * 100.0 for topic, value in cleaned.items()}


class SelectionTuning(BaseModel):
    """Resolved topic mix (percentages) and shortlist size."""
    topic_weights: Dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_TOPIC_WEIGHTS))
    max_shortlist: int = 10

    class Config:
        frozen = True

    def fraction(self, topic: str) -> float:
        return self.topic_weights.get(topic, 0.0) / 100.0

    @classmethod
    def resolve(cls, overrides: Optional[Mapping[str, Any]] = None) -> "SelectionTuning":
        """
        Merge overrides onto the configured defaults.

        Args:
            overrides: {"topic_weights": {...}, "max_shortlist": int}; either key optional
        """
        overrides = overrides or {}
        defaults = _default_weights()

        weights_raw = overrides.get("topic_weights")
        if isinstance(weights_raw, Mapping):
            weights = _normalize(weights_raw, defaults)
        else:
            weights = defaults

        size_raw = overrides.get("max_shortlist", get_settings().max_shortlist)
        try:
            size = int(size_raw)
        except (TypeError, ValueError):
            size = get_settings().max_shortlist
        size = max(MIN_SHORTLIST, min(MAX_SHORTLIST, size))

        return cls(topic_weights=weights, max_shortlist=size)


def parse_tuning(raw_json: Optional[str]) -> SelectionTuning:
    """Tuning from a JSON document; malformed input falls back to defaults."""
    if not raw_json or not raw_json.strip():
        return SelectionTuning.resolve()
    try:
        payload = json.loads(raw_json)
    except ValueError as e:
        logger.warning(f"Invalid tuning JSON ({e}), using defaults")
        return SelectionTuning.resolve()
    if not isinstance(payload, dict):
        logger.warning("Tuning JSON is not an object, using defaults")
        return SelectionTuning.resolve()
    return SelectionTuning.resolve(payload)
