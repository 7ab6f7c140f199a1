"""
Hybrid lexicon + hashed-embedding event classification.

Each item is matched against the closed archetype taxonomy
(LAUNCH, PARTNERSHIP, POLICY, COMMERCE, TREND, OTHER) with two signals:

  1. LEXICON: keyword/booster hits from data/archetypes.json
       phrase in text +1.2, token hit +1.0, verb hit +1.5
       booster in text +0.6, booster token +0.5
       raw = kw×0.18 + boost×0.12 (+0.25 when any keyword hit), capped at 1
  2. EMBEDDING: cosine between a hashed bag-of-tokens vector (FNV-1a 32-bit
     mod dim) and each archetype's prototype vector. No model download, fully
     deterministic across processes.

  hybrid = 0.6×lexicon + 0.4×embedding
  best < floor (0.25) → OTHER
  confidence = 0.7×best + 0.3×(best − runner-up)

Market wraps ("stocks to watch", "closing bell", ...) are forced to TREND
with confidence ≤ 0.18 so they never outrank real events.

After clustering, refine_with_consensus() lets a clear peer majority
override a weakly classified member of the same story cluster.
"""

import logging
from collections import Counter
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np

from newsrank.config import get_settings
from newsrank.schemas.base import Archetype
from newsrank.schemas.news import (
    ClassificationEvidence,
    ClassificationSignals,
    ClassifiedItem,
    ClusterContext,
    NormalizedItem,
)
from newsrank.shared.tables import load_table
from newsrank.shared.text import clamp01, contains_phrase, sanitize, tokenize

logger = logging.getLogger(__name__)

LEXICON_WEIGHT = 0.6
EMBEDDING_WEIGHT = 0.4
MARKET_WRAP_CONFIDENCE = 0.18

FNV32_OFFSET = 0x811C9DC5
FNV32_PRIME = 0x01000193


def fnv1a_32(text: str) -> int:
    """Stable 32-bit FNV-1a hash (Python's hash() is salted per process)."""
    h = FNV32_OFFSET
    for byte in text.encode("utf-8"):
        h ^= byte
        h = (h * FNV32_PRIME) & 0xFFFFFFFF
    return h


def hashed_vector(tokens: Iterable[str], dim: int) -> np.ndarray:
    """Bag-of-tokens count vector with hashed buckets."""
    vec = np.zeros(dim, dtype=np.float64)
    for token in tokens:
        if token:
            vec[fnv1a_32(token) % dim] += 1.0
    return vec


def _cosine(a: np.ndarray, b: np.ndarray) -> float:
    na = float(np.linalg.norm(a))
    nb = float(np.linalg.norm(b))
    if na == 0 or nb == 0:
        return 0.0
    return float(np.dot(a, b) / (na * nb))


def strip_suffix(token: str) -> str:
    if token.endswith("ies") and len(token) > 4:
        return token[:-3] + "y"
    if token.endswith("ing") and len(token) > 4:
        return token[:-3]
    if token.endswith("ed") and len(token) > 4:
        return token[:-2]
    if token.endswith("es") and len(token) > 4:
        return token[:-2]
    if token.endswith("s") and len(token) > 3:
        return token[:-1]
    return token


def fallback_verbs(tokens: Iterable[str]) -> List[str]:
    """Inflected tokens (≥4 chars ending in ing/ed/es/s) plus their stems."""
    verbs: List[str] = []
    for token in tokens:
        if len(token) >= 4 and token.endswith(("ing", "ed", "es", "s")):
            verbs.append(token)
            verbs.append(strip_suffix(token))
    return verbs


class HybridEventClassifier:
    """
    Deterministic archetype classifier.

    Args:
        floor: best hybrid score below this → OTHER (default from settings)
        dim: hashed vector dimension (default from settings)
        table: archetype table; defaults to the packaged data/archetypes.json
    """

    def __init__(self, floor: Optional[float] = None, dim: Optional[int] = None, table: Optional[dict] = None):
        settings = get_settings()
        self.floor = floor if floor is not None else settings.classifier_floor
        self.dim = dim or settings.classifier_vector_dim
        self.consensus_margin = settings.consensus_margin
        self.confidence_ceiling = settings.consensus_confidence_ceiling

        table = table or load_table("archetypes")
        self.trend_prior = float(table.get("trend_lexicon_prior", 0.08))
        self.market_wrap_patterns = [p.lower() for p in table.get("market_wrap_patterns", [])]
        self.archetypes: List[Archetype] = [Archetype(name) for name in table["archetypes"]]
        self.keywords: Dict[Archetype, List[str]] = {}
        self.boosters: Dict[Archetype, List[str]] = {}
        self.prototypes: Dict[Archetype, np.ndarray] = {}
        for name, entry in table["archetypes"].items():
            archetype = Archetype(name)
            self.keywords[archetype] = [k.lower() for k in entry.get("keywords", [])]
            self.boosters[archetype] = [b.lower() for b in entry.get("boosters", [])]
            self.prototypes[archetype] = hashed_vector(
                (t.lower() for t in entry.get("prototype", [])), self.dim,
            )
        self._seed_terms = {kw for kws in self.keywords.values() for kw in kws}

    # ── signals ──────────────────────────────────────────────────────────────

    def is_market_wrap(self, text: str) -> bool:
        lowered = sanitize(text).lower()
        return any(pattern in lowered for pattern in self.market_wrap_patterns)

    def _verbs(self, tokens: List[str], item_verbs: Optional[Iterable[str]]) -> set:
        verbs = {v.lower() for v in (item_verbs or []) if v}
        verbs.update(fallback_verbs(tokens))
        # seed hints: taxonomy keywords that appear as bare tokens
        verbs.update(t for t in tokens if t in self._seed_terms)
        return verbs

    def lexicon_score(self, archetype: Archetype, text: str, tokens: set, verbs: set) -> Tuple[float, float]:
        """(score in [0,1], raw keyword hit weight)."""
        if archetype == Archetype.TREND:
            return self.trend_prior, 0.0
        if archetype == Archetype.OTHER:
            return 0.0, 0.0

        kw = 0.0
        for keyword in self.keywords[archetype]:
            if contains_phrase(text, keyword):
                kw += 1.2
            if keyword in tokens:
                kw += 1.0
            if keyword in verbs:
                kw += 1.5
        boost = 0.0
        for booster in self.boosters[archetype]:
            if contains_phrase(text, booster):
                boost += 0.6
            if booster in tokens:
                boost += 0.5

        if archetype == Archetype.LAUNCH and any(v.startswith("launch") for v in verbs):
            kw += 0.8
        if archetype == Archetype.PARTNERSHIP and "joins forces" in text:
            kw += 1.2

        raw = kw * 0.18 + boost * 0.12 + (0.25 if kw > 0 else 0.0)
        return min(1.0, raw), kw

    def embedding_score(self, archetype: Archetype, vector: np.ndarray) -> float:
        return clamp01(_cosine(vector, self.prototypes[archetype]))

    # ── classification ───────────────────────────────────────────────────────

    def classify(
        self, item: NormalizedItem, verbs: Optional[Iterable[str]] = None,
    ) -> Tuple[ClassifiedItem, ClassificationEvidence]:
        """
        Classify one item.

        Args:
            item: normalized item
            verbs: verbs from entity extraction (falls back to item.verbs)

        Returns:
            (ClassifiedItem, ClassificationEvidence)
        """
        corpus = sanitize(item.text())
        text = corpus.lower()
        token_list = tokenize(corpus)
        tokens = set(token_list)
        verb_set = self._verbs(token_list, verbs if verbs is not None else item.verbs)
        vector = hashed_vector(token_list, self.dim)

        hybrid: Dict[Archetype, float] = {}
        lexicon: Dict[Archetype, float] = {}
        embedding: Dict[Archetype, float] = {}
        for archetype in self.archetypes:
            lexicon[archetype], _ = self.lexicon_score(archetype, text, tokens, verb_set)
            embedding[archetype] = self.embedding_score(archetype, vector)
            hybrid[archetype] = clamp01(
                LEXICON_WEIGHT * lexicon[archetype] + EMBEDDING_WEIGHT * embedding[archetype]
            )

        ranked = sorted(self.archetypes, key=lambda a: hybrid[a], reverse=True)
        best = ranked[0]
        best_score = hybrid[best]
        second_score = hybrid[ranked[1]] if len(ranked) > 1 else 0.0
        confidence = clamp01(0.7 * best_score + 0.3 * (best_score - second_score))

        archetype = best if best_score >= self.floor else Archetype.OTHER
        if self.is_market_wrap(corpus):
            archetype = Archetype.TREND
            confidence = min(confidence, MARKET_WRAP_CONFIDENCE)

        evidence = ClassificationEvidence(
            archetype=archetype,
            lexicon_score=lexicon.get(archetype, 0.0),
            embedding_score=embedding.get(archetype, 0.0),
            hybrid_score=best_score,
            confidence=confidence,
            scores={a.value: hybrid[a] for a in self.archetypes},
        )
        classified = ClassifiedItem(**{
            **item.model_dump(),
            "archetype": archetype,
            "confidence": confidence,
            "signals": ClassificationSignals(
                lexicon=evidence.lexicon_score,
                embedding=evidence.embedding_score,
            ),
        })
        logger.debug(
            f"Classified '{item.title[:50]}' → {archetype.value} "
            f"(hybrid={best_score:.3f}, confidence={confidence:.3f})"
        )
        return classified, evidence

    def classify_batch(
        self, items: List[NormalizedItem], verbs_by_id: Optional[Dict[str, List[str]]] = None,
    ) -> Tuple[List[ClassifiedItem], Dict[str, ClassificationEvidence]]:
        """Classify every item; returns items in input order plus evidence by item id."""
        verbs_by_id = verbs_by_id or {}
        classified: List[ClassifiedItem] = []
        evidence: Dict[str, ClassificationEvidence] = {}
        for item in items:
            result, ev = self.classify(item, verbs_by_id.get(item.id))
            classified.append(result)
            evidence[item.id] = ev

        distribution = Counter(c.archetype.value for c in classified)
        avg_conf = np.mean([c.confidence for c in classified]) if classified else 0.0
        other_pct = distribution.get(Archetype.OTHER.value, 0) / max(len(classified), 1) * 100
        logger.info(
            f"Event classification: {dict(distribution)} | "
            f"floor={self.floor:.2f}, avg_confidence={avg_conf:.3f}, other={other_pct:.0f}%"
        )
        return classified, evidence

    # ── cluster consensus ────────────────────────────────────────────────────

    def refine_with_consensus(self, cluster: ClusterContext) -> int:
        """
        Let a story cluster's peer majority override weak member labels.

        Override requires: majority differs from the item's own archetype,
        support > half of the peers, mean supporting-peer hybrid for that
        archetype ≥ own best hybrid + margin, and own confidence < ceiling.
        Votes use the labels as they were before this pass, so member order
        does not matter. Returns the number of overridden items.
        """
        members = cluster.items
        if len(members) < 2:
            for item in members:
                item.signals.cluster_voting = 0.0
            return 0

        labels = {item.id: item.archetype for item in members}
        confidences = {item.id: item.confidence for item in members}
        overridden = 0

        for item in members:
            peers = [p for p in members if p.id != item.id]
            votes = Counter(labels[p.id] for p in peers)
            majority, support = votes.most_common(1)[0]
            own = cluster.evidence.get(item.id)
            own_hybrid = own.hybrid_score if own else 0.0

            if (
                majority != labels[item.id]
                and support > len(peers) / 2
                and confidences[item.id] < self.confidence_ceiling
            ):
                supporters = [p for p in peers if labels[p.id] == majority]
                peer_hybrid = np.mean([
                    cluster.evidence[p.id].scores.get(majority.value, 0.0)
                    if p.id in cluster.evidence else 0.0
                    for p in supporters
                ])
                if peer_hybrid >= own_hybrid + self.consensus_margin:
                    peer_conf = np.mean([confidences[p.id] for p in supporters])
                    item.archetype = majority
                    item.confidence = clamp01((confidences[item.id] + peer_conf) / 2)
                    if own:
                        cluster.evidence[item.id] = own.model_copy(
                            update={"archetype": majority, "confidence": item.confidence}
                        )
                    overridden += 1
                    logger.debug(
                        f"Consensus override in {cluster.id}: {item.id} "
                        f"{labels[item.id].value} → {majority.value} ({support}/{len(peers)} peers)"
                    )

            agreeing = sum(1 for p in peers if labels[p.id] == item.archetype)
            item.signals.cluster_voting = agreeing / len(peers)

        return overridden
