"""
Topic scoring and quota allocation.

Every candidate gets a score per topic bucket:
  regulation  authority component
  product     product-launch vocabulary (core + product terms + extras)
  ai          AI vocabulary (core + action terms + extras)
  other       min(0.6, 0.4×impact + 0.2×momentum + 0.1×novelty),
              capped at 0.3 for authoritative (≥0.35) stories

Quotas split the shortlist across topics by the tuning percentages
(largest remainder, at least one slot per enabled topic).
"""

import logging
import math
import re
from typing import Dict, List

from newsrank.schemas.base import TOPIC_ORDER, Topic
from newsrank.schemas.scoring import RankedCandidate, ScoredItem
from newsrank.shared.tables import load_table
from newsrank.shared.text import clamp01, contains_phrase, sanitize

logger = logging.getLogger(__name__)

REGULATION_DOMINANCE = 0.35
OTHER_TOPIC_CAP = 0.6
OTHER_TOPIC_AUTHORITY_CAP = 0.3

_GEN_AI = re.compile(r"\bgen(?:\s|-)ai\b")

# (pattern, bonus) extras on top of the table-driven vocabulary
PRODUCT_EXTRAS = (
    (re.compile(r"\bmodels?\b"), 0.08),
    (re.compile(r"\b(?:upgrade|update)s?\b"), 0.05),
    (re.compile(r"\bdevelopers?\b"), 0.05),
    (re.compile(r"\bautomation\b"), 0.05),
    (_GEN_AI, 0.12),
    (re.compile(r"\bapis?\b"), 0.05),
    (re.compile(r"\bsdks?\b"), 0.05),
    (re.compile(r"\bindia\b"), 0.04),
)
AI_EXTRAS = (
    (re.compile(r"\bopen[\s-]source\b"), 0.05),
    (re.compile(r"\bapis?\b"), 0.05),
    (re.compile(r"\bsdks?\b"), 0.05),
)


def _text(item) -> str:
    return sanitize(f"{item.title} {item.description}").lower()


def _term_score(text: str, terms: List[str], weight: float) -> float:
    return sum(weight for term in terms if contains_phrase(text, term.strip()))


def _extras(text: str, extras) -> float:
    return sum(bonus for pattern, bonus in extras if pattern.search(text))


def product_score(item) -> float:
    table = load_table("selection")["product"]
    text = _text(item)
    score = (
        _term_score(text, table["core_terms"], table["core_weight"])
        + _term_score(text, table["product_terms"], table["product_weight"])
        + _extras(text, PRODUCT_EXTRAS)
    )
    return clamp01(score)


def ai_score(item) -> float:
    table = load_table("selection")["ai"]
    text = _text(item)
    score = (
        _term_score(text, table["core_terms"], table["core_weight"])
        + _term_score(text, table["action_terms"], table["action_weight"])
        + _extras(text, AI_EXTRAS)
    )
    return clamp01(score)


def compute_topic_scores(item: ScoredItem) -> Dict[str, float]:
    """Score per topic, keyed in TOPIC_ORDER."""
    components = item.impact.components
    authority = components.authority
    other = min(
        OTHER_TOPIC_CAP,
        0.4 * item.impact_score + 0.2 * components.momentum + 0.1 * components.graph_novelty,
    )
    if authority >= REGULATION_DOMINANCE:
        other = min(other, OTHER_TOPIC_AUTHORITY_CAP)
    return {
        Topic.REGULATION.value: clamp01(authority),
        Topic.PRODUCT.value: product_score(item),
        Topic.AI.value: ai_score(item),
        Topic.OTHER.value: clamp01(other),
    }


def dominant_topic(scores: Dict[str, float]) -> Topic:
    """Regulation when it reaches 0.35, else the best-scoring topic (TOPIC_ORDER breaks ties)."""
    if scores.get(Topic.REGULATION.value, 0.0) >= REGULATION_DOMINANCE:
        return Topic.REGULATION
    best = TOPIC_ORDER[0]
    for topic in TOPIC_ORDER:
        if scores.get(topic, 0.0) > scores.get(best, 0.0):
            best = topic
    return Topic(best)


def compute_topic_quotas(weights: Dict[str, float], n: int) -> Dict[str, int]:
    """
    Split n slots across topics by weight.

    Floors first, then at least one slot per topic with a positive weight,
    trimmed from the largest quota when over-allocated, and the remainder
    handed out by largest fractional part. Sums to n whenever any weight is
    positive.
    """
    quotas = {topic: 0 for topic in TOPIC_ORDER}
    active = [t for t in TOPIC_ORDER if weights.get(t, 0.0) > 0]
    total = sum(weights.get(t, 0.0) for t in active)
    if n <= 0 or total <= 0:
        return quotas

    exact = {t: weights[t] / total * n for t in active}
    for t in active:
        quotas[t] = max(1, math.floor(exact[t]))

    while sum(quotas.values()) > n:
        largest = max(active, key=lambda t: (quotas[t], -TOPIC_ORDER.index(t)))
        quotas[largest] -= 1

    by_remainder = sorted(active, key=lambda t: (-(exact[t] - math.floor(exact[t])), TOPIC_ORDER.index(t)))
    i = 0
    while sum(quotas.values()) < n:
        quotas[by_remainder[i % len(by_remainder)]] += 1
        i += 1
    return quotas


def apply_topic_quotas(
    ranked: List[RankedCandidate], quotas: Dict[str, int], limit: int,
) -> List[RankedCandidate]:
    """
    Fill each topic bucket in rank order up to its quota, backfill any free
    slots from the leftovers, and return the result sorted by final score.
    """
    taken = {topic: 0 for topic in TOPIC_ORDER}
    admitted: List[RankedCandidate] = []
    leftovers: List[RankedCandidate] = []
    for candidate in ranked:
        bucket = candidate.dominant_topic.value
        if len(admitted) < limit and taken[bucket] < quotas.get(bucket, 0):
            admitted.append(candidate)
            taken[bucket] += 1
        else:
            leftovers.append(candidate)

    for candidate in leftovers:
        if len(admitted) >= limit:
            break
        admitted.append(candidate)

    admitted.sort(key=lambda c: c.final_score, reverse=True)
    logger.debug(f"Topic quotas {quotas} → taken {taken}, {len(admitted)} admitted")
    return admitted
