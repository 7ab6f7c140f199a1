"""
Shortlist selection: rank, diversify, filter.

SELECTION ORDER:
  1. language allow-list (untagged items checked with langdetect; skipped
     when the batch was filtered upstream)
  2. rank by final score (base score blended with the topic mix)
  3. one candidate per story cluster
  4. topic dedup (TopicDeduplicator, first seen wins)
  5. topic quotas (tuning percentages, backfilled)
  6. canonical URL dedup
  7. market-noise filter (pre-market, closing bell, ...)
  8. entertainment filter
  9. cut to the limit

BASE SCORE:
  impact + 0.2×region (−0.1 when region < 0.2) + archetype weight
  + 0.05 when more than one trusted domain covered the story
  + authority bonus (0.08 at ≥0.45, 0.04 at ≥0.3)
FINAL SCORE:
  base×(0.2 + 0.8×regulation share) + Σ topic score × topic share
"""

import logging
from collections import Counter
from typing import Iterable, List, Optional, Set

from langdetect import DetectorFactory, LangDetectException, detect

from newsrank.config import get_settings
from newsrank.news.dedup import TopicDeduplicator
from newsrank.schemas.base import Archetype, Topic, UrgencyTag
from newsrank.schemas.scoring import RankedCandidate, ScoredItem, ShortlistedCandidate
from newsrank.scoring.region import region_relevance_score
from newsrank.shared.stopwords import COMMON_STOPWORDS, SIGNAL_STOPWORDS
from newsrank.shared.tables import load_table
from newsrank.shared.text import clamp01, contains_phrase, sanitize, tokenize

from .topics import apply_topic_quotas, compute_topic_quotas, compute_topic_scores, dominant_topic
from .tuning import SelectionTuning

DetectorFactory.seed = 0  # Deterministic language detection

logger = logging.getLogger(__name__)

MIN_DETECTABLE_CHARS = 20
MAX_SIGNALS = 2


# ── language ─────────────────────────────────────────────────────────────────

def is_supported_language(item, allowed: Optional[Set[str]] = None) -> bool:
    """
    Tagged items must be on the allow-list; untagged items are detected.

    Text too short for reliable detection (< 20 chars) or that langdetect
    cannot decide on is let through.
    """
    allowed = allowed if allowed is not None else get_settings().get_supported_languages()
    if item.language:
        return item.language.strip().lower() in allowed
    text = sanitize(f"{item.title} {item.description}")
    if len(text) < MIN_DETECTABLE_CHARS:
        return True
    try:
        return detect(text[:500]).lower() in allowed
    except LangDetectException:
        return True


def filter_languages(items: Iterable, allowed: Optional[Set[str]] = None) -> List:
    items = list(items)
    kept = [item for item in items if is_supported_language(item, allowed)]
    if len(kept) < len(items):
        logger.info(f"Language filter: {len(items)} → {len(kept)} (removed {len(items) - len(kept)})")
    return kept


# ── scoring helpers ──────────────────────────────────────────────────────────

def base_score(item: ScoredItem, region_score: float) -> float:
    table = load_table("selection")
    components = item.impact.components
    score = item.impact_score + 0.2 * region_score
    if region_score < 0.2:
        score -= 0.1
    score += float(table["class_weight"].get(item.archetype.value, 0.0))
    if item.trusted_domain_count > 1:
        score += 0.05
    if components.authority >= 0.45:
        score += 0.08
    elif components.authority >= 0.3:
        score += 0.04
    return clamp01(score)


def final_score(base: float, topic_scores: dict, tuning: SelectionTuning) -> float:
    score = base * (0.2 + 0.8 * tuning.fraction(Topic.REGULATION.value))
    score += sum(value * tuning.fraction(topic) for topic, value in topic_scores.items())
    return clamp01(score)


def extract_signals(item) -> List[str]:
    """Two most frequent content tokens (≥4 chars) for the narrative prompt."""
    counts = Counter(
        token for token in tokenize(f"{item.title} {item.description}")
        if len(token) >= 4 and token not in SIGNAL_STOPWORDS and token not in COMMON_STOPWORDS
    )
    return [token for token, _ in counts.most_common(MAX_SIGNALS)]


def is_ipo_story(item) -> bool:
    text = sanitize(f" {item.title} {item.description}").lower()
    return any(contains_phrase(text, kw.strip()) for kw in load_table("selection")["ipo_keywords"])


def urgency_for(candidate: RankedCandidate) -> UrgencyTag:
    item = candidate.item
    base = candidate.base_score
    product = candidate.topic_scores.get(Topic.PRODUCT.value, 0.0)
    ai = candidate.topic_scores.get(Topic.AI.value, 0.0)
    if item.archetype == Archetype.POLICY and base >= 0.6:
        return UrgencyTag.BLOCKER
    if (
        (item.archetype == Archetype.LAUNCH and is_ipo_story(item))
        or (product >= 0.5 and base >= 0.55)
        or (ai >= 0.6 and base >= 0.5)
        or base >= 0.72
    ):
        return UrgencyTag.ACT_NOW
    return UrgencyTag.CONTEXT


def is_market_noise(item) -> bool:
    text = sanitize(f"{item.title} {item.description}").lower()
    return any(pattern in text for pattern in load_table("selection")["market_noise_patterns"])


def is_entertainment(item) -> bool:
    text = sanitize(f"{item.title} {item.description}").lower()
    return any(contains_phrase(text, kw) for kw in load_table("selection")["entertainment_keywords"])


class ShortlistSelector:
    """
    Builds the final shortlist from scored (typically MMR-ordered) heads.

    Args:
        tuning: topic mix and shortlist size (resolved from settings when None)
        deduplicator: topic deduplicator
        allowed_languages: language allow-list (settings when None)
        check_languages: apply the allow-list in select(); off when the caller
            already filtered the batch (run_pipeline does this up front)
    """

    def __init__(
        self,
        tuning: Optional[SelectionTuning] = None,
        deduplicator: Optional[TopicDeduplicator] = None,
        allowed_languages: Optional[Set[str]] = None,
        check_languages: bool = True,
    ):
        self.tuning = tuning or SelectionTuning.resolve()
        self.deduplicator = deduplicator or TopicDeduplicator()
        self.allowed_languages = allowed_languages
        self.check_languages = check_languages

    def rank(self, items: List[ScoredItem]) -> List[RankedCandidate]:
        """RankedCandidates sorted by final score (stable for ties)."""
        ranked: List[RankedCandidate] = []
        for item in items:
            region = region_relevance_score(item)
            topics = compute_topic_scores(item)
            base = base_score(item, region)
            ranked.append(RankedCandidate(
                item=item,
                base_score=base,
                final_score=final_score(base, topics, self.tuning),
                region_score=region,
                topic_scores=topics,
                dominant_topic=dominant_topic(topics),
            ))
        ranked.sort(key=lambda c: c.final_score, reverse=True)
        return ranked

    @staticmethod
    def _one_per_cluster(ranked: List[RankedCandidate]) -> List[RankedCandidate]:
        seen = set()
        kept = []
        for candidate in ranked:
            cluster_id = candidate.item.cluster_id
            if cluster_id:
                if cluster_id in seen:
                    continue
                seen.add(cluster_id)
            kept.append(candidate)
        return kept

    @staticmethod
    def _unique_urls(ranked: List[RankedCandidate]) -> List[RankedCandidate]:
        seen = set()
        kept = []
        for candidate in ranked:
            url = candidate.item.canonical_url
            if url:
                if url in seen:
                    continue
                seen.add(url)
            kept.append(candidate)
        return kept

    def select(self, items: List[ScoredItem], limit: Optional[int] = None) -> List[ShortlistedCandidate]:
        """
        Shortlist up to limit candidates (default: tuning.max_shortlist).

        Returns:
            ShortlistedCandidates in final-score order.
        """
        limit = self.tuning.max_shortlist if limit is None else max(0, limit)
        counts = {"input": len(items)}

        pool = filter_languages(items, self.allowed_languages) if self.check_languages else list(items)
        counts["language"] = len(pool)

        ranked = self._one_per_cluster(self.rank(pool))
        counts["cluster"] = len(ranked)

        ranked = self.deduplicator.dedupe(ranked, get_item=lambda c: c.item)
        counts["topic"] = len(ranked)

        quotas = compute_topic_quotas(self.tuning.topic_weights, limit)
        ranked = apply_topic_quotas(ranked, quotas, limit)
        counts["quota"] = len(ranked)

        ranked = self._unique_urls(ranked)
        ranked = [c for c in ranked if not is_market_noise(c.item)]
        counts["noise"] = len(ranked)
        ranked = [c for c in ranked if not is_entertainment(c.item)]
        counts["entertainment"] = len(ranked)

        shortlist = [
            ShortlistedCandidate(
                item=c.item,
                base_score=c.base_score,
                final_score=c.final_score,
                region_score=c.region_score,
                product_score=c.topic_scores.get(Topic.PRODUCT.value, 0.0),
                topic_scores=c.topic_scores,
                topic=c.dominant_topic,
                signals=extract_signals(c.item),
                urgency=urgency_for(c),
            )
            for c in ranked[:limit]
        ]
        logger.info(
            f"Shortlist: {len(shortlist)} selected | stages={counts} | quotas={quotas}"
        )
        return shortlist
