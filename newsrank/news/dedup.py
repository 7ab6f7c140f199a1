"""
Topic-level deduplication of ranked candidates.

Story clustering already merges near-identical copies of one article. This
stage catches the next level up: different outlets writing about the same
TOPIC with different words ("RBI hikes repo rate" vs "Repo rate hiked by
RBI, loans to cost more").

PER ITEM PROFILE (TF-IDF over the candidate batch):
  - tokens: lower-cased, stop words removed, ≤2-char tokens dropped unless
    numeric, folded by a light stemmer (ies→y, ing, ied→y, ed, es, then a
    trailing s unless ss) so inflections collide
  - category tags (@pricing, @security, ...) for tokens matching a category
  - shingles #a_b (+1.4) and #a_b_c (+1.2) for phrase overlap
  - ACRONYMS from the raw title casing (+2, category +1.8)
  - terms present in ≥ max(2, ceil(0.6n)) documents are suppressed unless
    they are category tags, short, numeric or acronyms
  - idf = ln(1 + N/df); top 6 tokens; 64-bit SimHash of the weighted
    terms (simhash.Simhash, f=64)

TWO ITEMS ARE THE SAME TOPIC when any of:
  hamming ≤ 12 | shared top ≥ 3 | jaccard ≥ 0.62 or cosine ≥ 0.9 |
  shared ≥ 2 and (cosine ≥ 0.58 or jaccard ≥ 0.32 or hamming ≤ 16) |
  jaccard ≥ 0.45 and cosine ≥ 0.75

dedupe() keeps the first-seen candidate of every topic, so callers pass
candidates in rank order.
"""

import logging
import math
import re
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple, TypeVar

import numpy as np
from simhash import Simhash

from newsrank.shared.stopwords import COMMON_STOPWORDS
from newsrank.shared.tables import load_table

logger = logging.getLogger(__name__)

T = TypeVar("T")

TOP_TOKENS = 6
DF_CUTOFF_SHARE = 0.6

FINGERPRINT_BITS = 64

TITLE_SOURCE_SEPARATORS = (" - ", " | ", " \u2014 ", " \u2013 ")

_ACRONYM = re.compile(r"\b[A-Z0-9]{3,}\b")
_EDGE_PUNCT = re.compile(r"^[^a-z0-9]+|[^a-z0-9]+$")
_SPLIT = re.compile(r"\s+")


def fingerprint_distance(a: Optional[Simhash], b: Optional[Simhash]) -> int:
    """Hamming distance between two fingerprints; a missing one is maximally far."""
    if a is None or b is None:
        return FINGERPRINT_BITS
    return a.distance(b)


def normalize_topic_token(raw: str) -> str:
    """Lower-case, strip edge punctuation, fold common inflections."""
    token = _EDGE_PUNCT.sub("", raw.lower())
    if len(token) > 4:
        if token.endswith("ies"):
            token = token[:-3] + "y"
        elif token.endswith("ing"):
            token = token[:-3]
        elif token.endswith("ied"):
            token = token[:-3] + "y"
        elif token.endswith("ed"):
            token = token[:-2]
        elif token.endswith("es"):
            token = token[:-2]
    if token.endswith("s") and len(token) > 3 and not token.endswith("ss"):
        token = token[:-1]
    return token


def strip_title_source(title: str) -> str:
    """Drop a trailing " - Publisher" style suffix located in the second half of the title."""
    text = (title or "").strip()
    cut = -1
    for sep in TITLE_SOURCE_SEPARATORS:
        idx = text.rfind(sep)
        if idx > 0 and idx >= 0.5 * len(text):
            cut = max(cut, idx)
    return text[:cut].strip() if cut > 0 else text


@dataclass
class TopicProfile:
    """TF-IDF view of one item used for topic comparison."""
    vector: Dict[str, float] = field(default_factory=dict)
    top_tokens: List[str] = field(default_factory=list)
    simhash: Optional[Simhash] = None


def fingerprint(weights: Dict[str, float]) -> Optional[Simhash]:
    """64-bit SimHash of weighted terms (None for an empty vector)."""
    if not weights:
        return None
    return Simhash(sorted(weights.items()), f=FINGERPRINT_BITS)


def _is_numeric(term: str) -> bool:
    return term.isdigit()


class TopicDeduplicator:
    """
    Batch TF-IDF topic matcher.

    Args:
        categories: tag name → regex over normalized tokens (defaults to
            selection.json token_categories)
    """

    def __init__(self, categories: Optional[Dict[str, str]] = None):
        if categories is None:
            categories = load_table("selection")["token_categories"]
        self.categories = {name: re.compile(pattern) for name, pattern in categories.items()}

    def _categories_for(self, token: str) -> List[str]:
        return [f"@{name}" for name, pattern in self.categories.items() if pattern.match(token)]

    def term_weights(self, title: str, description: str = "") -> Tuple[Dict[str, float], Set[str]]:
        """Raw (pre-IDF) term weights for one document, plus its normalized acronyms."""
        text = f"{strip_title_source(title)} {description or ''}".strip()
        weights: Dict[str, float] = defaultdict(float)

        tokens: List[str] = []
        for raw in _SPLIT.split(text):
            lowered = _EDGE_PUNCT.sub("", raw.lower())
            if not lowered or lowered in COMMON_STOPWORDS:
                continue
            token = normalize_topic_token(lowered)
            if not token or token in COMMON_STOPWORDS:
                continue
            if len(token) <= 2 and not _is_numeric(token):
                continue
            tokens.append(token)

        for token in tokens:
            weights[token] += 1.0
            for tag in self._categories_for(token):
                weights[tag] += 0.9

        for i in range(len(tokens) - 1):
            pair = tokens[i:i + 2]
            if all(len(p) > 2 for p in pair):
                weights["#" + "_".join(pair)] += 1.4
            triple = tokens[i:i + 3]
            if len(triple) == 3 and all(len(p) > 2 for p in triple):
                weights["#" + "_".join(triple)] += 1.2

        acronyms: Set[str] = set()
        for match in _ACRONYM.findall(text):
            token = normalize_topic_token(match)
            if not token:
                continue
            acronyms.add(token)
            weights[token] += 2.0
            for tag in self._categories_for(token):
                weights[tag] += 1.8

        return dict(weights), acronyms

    def build_profiles(self, docs: Sequence[tuple]) -> List[TopicProfile]:
        """
        TF-IDF profiles for a batch of (title, description) pairs.

        Document frequencies are computed over this batch only.
        """
        raw = [self.term_weights(title, description) for title, description in docs]
        n = len(raw)
        df: Dict[str, int] = defaultdict(int)
        for weights, _ in raw:
            for term in weights:
                df[term] += 1
        cutoff = max(2, math.ceil(DF_CUTOFF_SHARE * n))

        profiles: List[TopicProfile] = []
        for weights, acronyms in raw:
            vector: Dict[str, float] = {}
            for term, weight in weights.items():
                freq = df[term]
                suppressed = (
                    freq >= cutoff
                    and not term.startswith("@")
                    and len(term) > 3
                    and not _is_numeric(term)
                    and term not in acronyms
                )
                if suppressed:
                    continue
                vector[term] = weight * math.log(1 + n / freq)
            top = sorted(vector.items(), key=lambda kv: (-kv[1], kv[0]))[:TOP_TOKENS]
            profiles.append(TopicProfile(
                vector=vector,
                top_tokens=[term for term, _ in top],
                simhash=fingerprint(vector),
            ))
        return profiles

    @staticmethod
    def _cosine(a: TopicProfile, b: TopicProfile) -> float:
        if not set(a.vector) & set(b.vector):
            return 0.0
        terms = sorted(set(a.vector) | set(b.vector))
        va = np.array([a.vector.get(t, 0.0) for t in terms])
        vb = np.array([b.vector.get(t, 0.0) for t in terms])
        norm_a = float(np.linalg.norm(va))
        norm_b = float(np.linalg.norm(vb))
        if norm_a == 0 or norm_b == 0:
            return 0.0
        return float(np.dot(va, vb) / (norm_a * norm_b))

    def is_same_topic(self, a: TopicProfile, b: TopicProfile) -> bool:
        """Symmetric topic match using the threshold ladder in the module docstring."""
        if not a.top_tokens or not b.top_tokens:
            return False
        top_a, top_b = set(a.top_tokens), set(b.top_tokens)
        shared = len(top_a & top_b)
        jac = shared / len(top_a | top_b)
        cos = self._cosine(a, b)
        dist = fingerprint_distance(a.simhash, b.simhash)

        if dist <= 12:
            return True
        if shared >= 3:
            return True
        if jac >= 0.62 or cos >= 0.9:
            return True
        if shared >= 2 and (cos >= 0.58 or jac >= 0.32 or dist <= 16):
            return True
        return jac >= 0.45 and cos >= 0.75

    def dedupe(self, candidates: List[T], get_item: Optional[Callable[[T], object]] = None) -> List[T]:
        """
        Drop candidates that repeat the topic of an earlier candidate.

        Args:
            candidates: in priority order (first seen wins)
            get_item: maps a candidate to an object with title/description
        """
        if len(candidates) < 2:
            return list(candidates)
        get_item = get_item or (lambda c: c)
        items = [get_item(c) for c in candidates]
        profiles = self.build_profiles([(i.title, i.description) for i in items])

        kept: List[T] = []
        kept_profiles: List[TopicProfile] = []
        for candidate, item, profile in zip(candidates, items, profiles):
            duplicate_of = next(
                (p for p in kept_profiles if self.is_same_topic(profile, p)), None,
            )
            if duplicate_of is not None:
                logger.debug(f"Topic dedup: dropping '{item.title[:60]}' (top={profile.top_tokens})")
                continue
            kept.append(candidate)
            kept_profiles.append(profile)

        removed = len(candidates) - len(kept)
        if removed:
            logger.info(f"Topic dedup: {len(candidates)} → {len(kept)} (removed {removed})")
        return kept
