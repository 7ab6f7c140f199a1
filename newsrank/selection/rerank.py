"""
Cluster heads and diversity-aware reranking (Maximal Marginal Relevance).

select_heads() collapses every story cluster to its highest-impact member;
the other members' URLs become duplicate_urls and each extra corroborating
item adds 0.05 surface reach to the head (impact recomputed with the head's
own weights).

mmr_rerank() then orders the heads greedily by
    λ·impact − (1−λ)·max similarity to the already selected heads
so that near-identical stories do not fill the top of the list. Heads under
the impact floor are excluded outright; no admissible head is ever dropped.

REF: Carbonell & Goldstein, "The use of MMR, diversity-based reranking" (1998)
"""

import logging
from typing import Dict, List, Optional

from newsrank.config import get_settings
from newsrank.news.clustering import ItemProfile, build_profile, similarity
from newsrank.schemas.scoring import ScoredItem
from newsrank.scoring.impact import rescore

logger = logging.getLogger(__name__)

HEAD_REACH_BONUS = 0.05


def select_heads(items: List[ScoredItem]) -> List[ScoredItem]:
    """
    One head per cluster, in descending impact order.

    Unclustered items are their own heads.
    """
    groups: Dict[str, List[ScoredItem]] = {}
    order: List[str] = []
    for item in items:
        key = item.cluster_id or f"item:{item.id}"
        if key not in groups:
            groups[key] = []
            order.append(key)
        groups[key].append(item)

    heads: List[ScoredItem] = []
    for key in order:
        members = groups[key]
        # max() keeps the first of equal-impact members
        head = max(members, key=lambda i: i.impact_score)
        others = [m for m in members if m.id != head.id]
        if others:
            boosted_reach = min(1.0, head.impact.components.surface_reach + HEAD_REACH_BONUS * len(others))
            head = rescore(head, surface_reach=boosted_reach)
            head = head.model_copy(update={
                "duplicate_urls": [m.url for m in others if m.url],
            })
        heads.append(head)

    heads.sort(key=lambda h: h.impact_score, reverse=True)
    logger.info(f"Cluster heads: {len(items)} items → {len(heads)} heads")
    return heads


def mmr_rerank(
    heads: List[ScoredItem],
    profiles: Optional[Dict[str, ItemProfile]] = None,
    lambda_: Optional[float] = None,
    impact_floor: Optional[float] = None,
    limit: Optional[int] = None,
) -> List[ScoredItem]:
    """
    Diversity-aware ordering of cluster heads.

    Args:
        heads: candidate heads
        profiles: item id → similarity profile (built on demand when missing)
        lambda_: relevance/diversity trade-off (1 = pure impact order)
        impact_floor: heads below this impact are excluded
        limit: max results (default: all admissible heads)

    Returns:
        min(limit, admissible) heads in MMR order.
    """
    settings = get_settings()
    lam = lambda_ if lambda_ is not None else settings.mmr_lambda
    floor = impact_floor if impact_floor is not None else settings.impact_floor
    profiles = dict(profiles or {})

    remaining = [h for h in heads if h.impact_score >= floor]
    for head in remaining:
        if head.id not in profiles:
            profiles[head.id] = build_profile(head)
    target = len(remaining) if limit is None else min(limit, len(remaining))

    selected: List[ScoredItem] = []
    while remaining and len(selected) < target:
        best_idx = 0
        best_value = float("-inf")
        for idx, candidate in enumerate(remaining):
            redundancy = max(
                (similarity(profiles[candidate.id], profiles[s.id]) for s in selected),
                default=0.0,
            )
            value = lam * candidate.impact_score - (1 - lam) * redundancy
            if value > best_value:
                best_idx, best_value = idx, value
        selected.append(remaining.pop(best_idx))

    logger.info(
        f"MMR rerank: {len(heads)} heads → {len(selected)} "
        f"(floor={floor:.2f}, lambda={lam:.2f})"
    )
    return selected
