"""
Composite impact scoring.

Seven components, each in [0, 1]:

  recency        exp(−age_h / 48); future timestamps → 1; unparseable → 0
  surface_reach  trusted-domain reach of the story cluster
  graph_novelty  1 when the item introduced a new entity relationship
  authority      0.55×source score + 0.25×cluster trust density + 0.20×confidence
                 (source score = max of trusted-domain table and regulator cue)
  commerce_tie   1 for COMMERCE, else commerce lexicon hits / 3
  region_tie     calibrated regional relevance (RegionModel)
  momentum       cluster velocity, floored at 0.05

impact = clamp(Σ wᵢ·cᵢ) with the resolved (normalized) weights.
"""

import logging
import math
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from newsrank.config import get_settings
from newsrank.schemas.base import Archetype
from newsrank.schemas.news import ClassifiedItem, ClusterContext
from newsrank.schemas.scoring import ClusterImpactSummary, ImpactComponents, ImpactScore, ScoredItem
from newsrank.shared.tables import load_table
from newsrank.shared.text import clamp01, tokenize
from newsrank.shared.timeutil import hours_between, parse_utc, utc_now

from .cluster_signals import compute_cluster_signals, trusted_domain_score
from .region import RegionModel, regulator_signal_score
from .weights import ScoringParameters, factor_breakdown

logger = logging.getLogger(__name__)

AUTHORITY_SOURCE_WEIGHT = 0.55
AUTHORITY_DENSITY_WEIGHT = 0.25
AUTHORITY_CONFIDENCE_WEIGHT = 0.20
COMMERCE_HIT_SATURATION = 3


def recency_score(published_at: str, now: datetime, half_life_hours: float = 48.0) -> float:
    published = parse_utc(published_at)
    if published is None:
        return 0.0
    age = hours_between(published, now)
    if age < 0:
        return 1.0
    return clamp01(math.exp(-age / half_life_hours))


class ImpactScorer:
    """
    Scores classified items against the current weight configuration.

    Args:
        params: weights + decay/caps (packaged defaults when None)
        region_model: regional relevance model (packaged table when None)
    """

    def __init__(self, params: Optional[ScoringParameters] = None, region_model: Optional[RegionModel] = None):
        self.params = params or ScoringParameters()
        self.region_model = region_model or RegionModel()
        self.momentum_floor = get_settings().momentum_floor
        self.commerce_lexicon = set(load_table("selection")["commerce_lexicon"])

    @property
    def weights(self):
        return self.params.weights

    def commerce_tie(self, item: ClassifiedItem) -> Tuple[float, int]:
        if item.archetype == Archetype.COMMERCE:
            return 1.0, 0
        hits = len(self.commerce_lexicon & set(tokenize(item.text())))
        return clamp01(hits / COMMERCE_HIT_SATURATION), hits

    def score(
        self,
        item: ClassifiedItem,
        cluster_summary: Optional[ClusterImpactSummary] = None,
        novel: bool = False,
        now: Optional[datetime] = None,
        orgs: Optional[List[str]] = None,
    ) -> ScoredItem:
        """
        Score one item.

        Args:
            item: classified item
            cluster_summary: reach/velocity of its story cluster; when None the
                item is treated as its own singleton and momentum takes the floor
            novel: novelty verdict from the entity graph
            now: reference time (defaults to current UTC)
            orgs: extracted organizations (defaults to item.entities)
        """
        now = now or utc_now()
        clustered = cluster_summary is not None
        if cluster_summary is None:
            cluster_summary = compute_cluster_signals(
                ClusterContext(id=item.id, items=[item]),
                now,
                cap=self.params.surface_reach_cap,
                recent_hours=self.params.momentum_window_hours,
            )

        trusted_score = trusted_domain_score(item.domain)
        regulator_score = regulator_signal_score(item)
        source_score = max(trusted_score, regulator_score)
        density = (
            cluster_summary.trusted_domains / cluster_summary.distinct_domains
            if cluster_summary.distinct_domains else 0.0
        )
        authority = (
            AUTHORITY_SOURCE_WEIGHT * source_score
            + AUTHORITY_DENSITY_WEIGHT * density
            + AUTHORITY_CONFIDENCE_WEIGHT * item.confidence
        )
        commerce, commerce_hits = self.commerce_tie(item)
        region_tie, region_features = self.region_model.score(item, cluster_summary, orgs)
        velocity = cluster_summary.velocity if clustered else 0.0
        momentum = max(self.momentum_floor, velocity)

        components = ImpactComponents(
            recency=recency_score(item.published_at, now, self.params.recency_half_life_hours),
            surface_reach=cluster_summary.surface_reach,
            graph_novelty=1.0 if novel else 0.0,
            authority=authority,
            commerce_tie=commerce,
            region_tie=region_tie,
            momentum=momentum,
        )
        impact = ImpactScore(
            impact=self.weights.score(components),
            components=components,
            weights=self.weights,
        )
        decisions: Dict[str, object] = {
            "trusted_domain_score": trusted_score,
            "regulator_signal": regulator_score,
            "source_score": source_score,
            "cluster_trust_density": density,
            "commerce_hits": commerce_hits,
            "momentum_floor_applied": momentum > velocity,
            "breakdown": factor_breakdown(components, self.weights),
        }

        scored = ScoredItem(**{
            **item.model_dump(),
            "impact": impact,
            "impact_meta": {"features": region_features, "decisions": decisions},
            "cluster_impact": cluster_summary if clustered else None,
            "trusted_domain_count": cluster_summary.trusted_domains,
            "graph_novelty": bool(novel),
        })
        logger.debug(
            f"Impact {impact.impact:.3f} for '{item.title[:50]}' "
            f"(recency={components.recency:.2f}, authority={components.authority:.2f}, "
            f"region={components.region_tie:.2f})"
        )
        return scored


def rescore(item: ScoredItem, **component_updates: float) -> ScoredItem:
    """Copy of item with some components replaced and impact recomputed with its own weights."""
    components = item.impact.components.model_copy(update={
        key: clamp01(value) for key, value in component_updates.items()
    })
    weights = item.impact.weights
    impact = ImpactScore(impact=weights.score(components), components=components, weights=weights)
    return item.model_copy(update={"impact": impact})
