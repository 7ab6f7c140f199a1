"""
Impact scoring and shortlist data models.

Hierarchy: ClassifiedItem (news.py) → ScoredItem → ShortlistedCandidate

ImpactWeights is an immutable value object; every weight map that reaches
the scorer goes through ImpactWeights.resolve(), which drops negative or
non-finite entries, fills missing keys from the packaged defaults and
renormalizes to sum 1.
"""

import math
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, Field, field_validator

from newsrank.shared.tables import load_table
from newsrank.shared.text import clamp01

from .base import Topic, UrgencyTag
from .news import ClassifiedItem

# Canonical component order (weights, logs and calibration all iterate this)
COMPONENT_KEYS = (
    "recency",
    "surface_reach",
    "graph_novelty",
    "authority",
    "commerce_tie",
    "region_tie",
    "momentum",
)


def default_weight_map() -> Dict[str, float]:
    """Packaged default impact weights (newsrank/data/impact_weights.json)."""
    weights = load_table("impact_weights")["weights"]
    return {key: float(weights.get(key, 0.0)) for key in COMPONENT_KEYS}


class ClusterImpactSummary(BaseModel):
    """Cluster-level reach/velocity signals within the lookback window."""
    id: str
    surface_reach: float = 0.0
    distinct_domains: int = 0
    trusted_domains: int = 0
    velocity: float = 0.0
    total_items: int = 0
    window_hours: float = 72.0


class ImpactComponents(BaseModel):
    """Seven independent relevance signals, each clamped to [0, 1]."""
    recency: float = 0.0
    surface_reach: float = 0.0
    graph_novelty: float = 0.0
    authority: float = 0.0
    commerce_tie: float = 0.0
    region_tie: float = 0.0
    momentum: float = 0.0

    @field_validator(*COMPONENT_KEYS, mode='before')
    @classmethod
    def clamp_component(cls, v):
        return clamp01(v)

    def as_dict(self) -> Dict[str, float]:
        return {key: getattr(self, key) for key in COMPONENT_KEYS}


class ImpactWeights(BaseModel):
    """Normalized component weights (sum 1). Build with ImpactWeights.resolve()."""
    recency: float = 0.0
    surface_reach: float = 0.0
    graph_novelty: float = 0.0
    authority: float = 0.0
    commerce_tie: float = 0.0
    region_tie: float = 0.0
    momentum: float = 0.0

    class Config:
        frozen = True

    @classmethod
    def resolve(
        cls, mapping: Union[None, Mapping[str, Any], "ImpactWeights"] = None,
    ) -> "ImpactWeights":
        """
        Normalize an arbitrary weight mapping.

        Missing keys take their packaged default; negative, non-numeric or
        non-finite values count as 0. If nothing positive remains, the
        packaged defaults are used.
        """
        defaults = default_weight_map()
        if isinstance(mapping, ImpactWeights):
            source: Mapping[str, Any] = mapping.as_dict()
        else:
            source = mapping or {}

        cleaned: Dict[str, float] = {}
        for key in COMPONENT_KEYS:
            raw = source.get(key, defaults[key])
            try:
                value = float(raw)
            except (TypeError, ValueError):
                value = 0.0
            cleaned[key] = value if math.isfinite(value) and value > 0 else 0.0

        total = sum(cleaned.values())
        if total <= 0:
            cleaned = defaults
            total = sum(cleaned.values())
        return cls(**{key: value / total for key, value in cleaned.items()})

    def as_dict(self) -> Dict[str, float]:
        return {key: getattr(self, key) for key in COMPONENT_KEYS}

    def score(self, components: ImpactComponents) -> float:
        """Weighted sum of components, clamped to [0, 1]."""
        return clamp01(sum(getattr(self, key) * getattr(components, key) for key in COMPONENT_KEYS))


class ImpactScore(BaseModel):
    """Composite impact with the components and weights that produced it."""
    impact: float = Field(ge=0.0, le=1.0, default=0.0)
    components: ImpactComponents = Field(default_factory=ImpactComponents)
    weights: ImpactWeights = Field(default_factory=ImpactWeights.resolve)


class ScoredItem(ClassifiedItem):
    """ClassifiedItem + impact score, cluster summary and duplicate URLs."""
    impact: ImpactScore = Field(default_factory=ImpactScore)
    # {"features": region-model features, "decisions": authority/momentum inputs}
    impact_meta: Dict[str, Any] = Field(default_factory=dict)
    duplicate_urls: List[str] = Field(default_factory=list)
    cluster_impact: Optional[ClusterImpactSummary] = None
    trusted_domain_count: int = 0
    graph_novelty: bool = False

    @property
    def impact_score(self) -> float:
        return self.impact.impact


class RankedCandidate(BaseModel):
    """Selector-internal ranking record (before quotas and filters)."""
    item: ScoredItem
    base_score: float = 0.0
    final_score: float = 0.0
    region_score: float = 0.0
    topic_scores: Dict[str, float] = Field(default_factory=dict)
    dominant_topic: Topic = Topic.OTHER


class ShortlistedCandidate(BaseModel):
    """
    Final output contract handed to narrative composition.

    topic_scores is keyed by Topic value ("regulation", "product", "ai", "other").
    signals holds 0-2 short keywords for the narrative prompt.
    """
    item: ScoredItem
    base_score: float = 0.0
    final_score: float = 0.0
    region_score: float = 0.0
    product_score: float = 0.0
    topic_scores: Dict[str, float] = Field(default_factory=dict)
    topic: Topic = Topic.OTHER
    signals: List[str] = Field(default_factory=list)
    urgency: UrgencyTag = UrgencyTag.CONTEXT
