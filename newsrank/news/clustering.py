"""
Greedy similarity clustering of near-identical stories.

Each item gets a lightweight profile:
  - title token set (Jaccard)
  - L2-normalized term-frequency vector over title + description (cosine)
  - canonical URL

  similarity(a, b) = 1 when the canonical URLs match,
                     else 0.6×Jaccard(title tokens) + 0.4×cosine(TF vectors)

Items are visited in input order and join the best-matching cluster when the
similarity reaches the threshold (0.68), otherwise they open a new cluster
"cluster-N". A cluster's profile is the union of its titles' tokens and the
renormalized sum of its members' vectors. The procedure is deliberately
order-dependent: the same input order always gives the same assignments.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

import numpy as np

from newsrank.config import get_settings
from newsrank.schemas.news import ClassificationEvidence, ClassifiedItem, ClusterContext
from newsrank.scoring.cluster_signals import count_trusted_domains
from newsrank.shared.timeutil import parse_utc, to_iso
from newsrank.shared.text import tokenize

logger = logging.getLogger(__name__)

JACCARD_WEIGHT = 0.6
COSINE_WEIGHT = 0.4


@dataclass
class ItemProfile:
    """Similarity profile of one item (or of a whole cluster)."""
    tokens: Set[str] = field(default_factory=set)
    vector: Dict[str, float] = field(default_factory=dict)
    canonical_url: str = ""


@dataclass
class ClusterPreparation:
    """Output of StoryClusterer.cluster()."""
    clusters: List[ClusterContext] = field(default_factory=list)
    profiles: Dict[str, ItemProfile] = field(default_factory=dict)  # item id → profile
    trusted_counts: Dict[str, int] = field(default_factory=dict)  # cluster id → trusted domains
    unclustered: List[str] = field(default_factory=list)  # item ids

    def cluster_by_id(self, cluster_id: str) -> Optional[ClusterContext]:
        for cluster in self.clusters:
            if cluster.id == cluster_id:
                return cluster
        return None


def _normalize(counts: Dict[str, float]) -> Dict[str, float]:
    norm = float(np.linalg.norm(np.fromiter(counts.values(), dtype=np.float64, count=len(counts))))
    if norm == 0:
        return {}
    return {k: v / norm for k, v in counts.items()}


def build_profile(item) -> ItemProfile:
    """Profile from an item's title, description and canonical URL."""
    title_tokens = tokenize(item.title)
    counts = Counter(tokenize(f"{item.title} {item.description}"))
    return ItemProfile(
        tokens=set(title_tokens),
        vector=_normalize(dict(counts)),
        canonical_url=item.canonical_url or "",
    )


def jaccard(a: Set[str], b: Set[str]) -> float:
    if not a and not b:
        return 1.0
    union = a | b
    return len(a & b) / len(union) if union else 0.0


def cosine(a: Dict[str, float], b: Dict[str, float]) -> float:
    """Dot product of two L2-normalized sparse vectors."""
    shared = [key for key in a if key in b]
    if not shared:
        return 0.0
    return float(np.dot([a[k] for k in shared], [b[k] for k in shared]))


def similarity(a: ItemProfile, b: ItemProfile) -> float:
    """Story similarity in [0, 1]; identical non-empty canonical URLs → 1."""
    if a.canonical_url and a.canonical_url == b.canonical_url:
        return 1.0
    score = JACCARD_WEIGHT * jaccard(a.tokens, b.tokens) + COSINE_WEIGHT * cosine(a.vector, b.vector)
    return max(0.0, min(1.0, score))


def merge_profiles(cluster: ItemProfile, item: ItemProfile) -> ItemProfile:
    summed = dict(cluster.vector)
    for key, value in item.vector.items():
        summed[key] = summed.get(key, 0.0) + value
    return ItemProfile(
        tokens=cluster.tokens | item.tokens,
        vector=_normalize(summed),
        canonical_url=cluster.canonical_url,
    )


def build_cluster_context(
    cluster_id: str,
    items: List[ClassifiedItem],
    evidence: Optional[Dict[str, ClassificationEvidence]] = None,
) -> ClusterContext:
    """ClusterContext with time window, per-domain counts and member evidence."""
    evidence = evidence or {}
    stamps = [ts for ts in (parse_utc(i.published_at) for i in items) if ts is not None]
    domain_counts: Dict[str, int] = {}
    for item in items:
        domain_counts[item.domain] = domain_counts.get(item.domain, 0) + 1
    return ClusterContext(
        id=cluster_id,
        items=items,
        window_start=to_iso(min(stamps)) if stamps else None,
        window_end=to_iso(max(stamps)) if stamps else None,
        domain_counts=domain_counts,
        representative_id=items[0].id if items else None,
        evidence={i.id: evidence[i.id] for i in items if i.id in evidence},
    )


class StoryClusterer:
    """
    Order-preserving greedy clusterer.

    Args:
        threshold: minimum similarity to join an existing cluster (default 0.68)
    """

    def __init__(self, threshold: Optional[float] = None):
        self.threshold = threshold if threshold is not None else get_settings().story_similarity_threshold

    def cluster(
        self,
        items: List[ClassifiedItem],
        evidence: Optional[Dict[str, ClassificationEvidence]] = None,
    ) -> ClusterPreparation:
        """
        Assign cluster ids in place and build the cluster records.

        Items with neither a title nor a URL stay unclustered (cluster_id None).
        """
        prep = ClusterPreparation()
        order: List[str] = []
        cluster_profiles: Dict[str, ItemProfile] = {}
        members: Dict[str, List[ClassifiedItem]] = {}

        for item in items:
            if not item.title.strip() and not item.url.strip():
                item.cluster_id = None
                item.cluster_size = 1
                prep.unclustered.append(item.id)
                continue

            profile = build_profile(item)
            prep.profiles[item.id] = profile

            best_id: Optional[str] = None
            best_score = -1.0
            for cluster_id in order:
                score = similarity(profile, cluster_profiles[cluster_id])
                if score > best_score:
                    best_id, best_score = cluster_id, score

            if best_id is not None and best_score >= self.threshold:
                cluster_profiles[best_id] = merge_profiles(cluster_profiles[best_id], profile)
                members[best_id].append(item)
                item.cluster_id = best_id
            else:
                new_id = f"cluster-{len(order) + 1}"
                order.append(new_id)
                cluster_profiles[new_id] = profile
                members[new_id] = [item]
                item.cluster_id = new_id

        for cluster_id in order:
            group = members[cluster_id]
            for item in group:
                item.cluster_size = len(group)
            context = build_cluster_context(cluster_id, group, evidence)
            prep.clusters.append(context)
            prep.trusted_counts[cluster_id] = count_trusted_domains(context.domain_counts)

        multi = sum(1 for c in prep.clusters if c.size > 1)
        logger.info(
            f"Story clustering: {len(items)} items → {len(prep.clusters)} clusters "
            f"({multi} multi-source, {len(prep.unclustered)} unclustered, threshold={self.threshold:.2f})"
        )
        return prep
