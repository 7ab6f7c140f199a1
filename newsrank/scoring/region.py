"""
Regional relevance: a calibrated logistic model and a keyword heuristic.

REGION MODEL (region_tie impact component):
  Six features, each in [0, 1]:
    publisher_geo        trusted regional publisher, else country TLD prior
    regulator_signal     1 regulator domain / 0.85 regulator source / 0.6 phrase
    event_class_lift     per-archetype prior (POLICY lifts most)
    entity_overlap       share of organizations with a regional name prefix
    semantic_similarity  regional vocabulary share + cluster trust density
    keyword_prior        regional keyword hits (+2 for regional publishers) / 12
  p = logistic(bias + Σ wᵢ·fᵢ), then isotonic piecewise-linear calibration
  over the breakpoint table. Coefficients live in data/region_model.json.

HEURISTIC (selector region score, authority regulator signal):
  priority domain +0.6, priority source +0.2, keyword hits (≤0.3),
  regulator signal, wide-region phrase +0.1; clamped to [0, 1].
"""

import logging
import math
from typing import Any, Dict, List, Optional, Tuple

from newsrank.schemas.news import ClassifiedItem
from newsrank.schemas.scoring import ClusterImpactSummary
from newsrank.shared.tables import load_table
from newsrank.shared.text import clamp01, contains_phrase, sanitize, tokenize

logger = logging.getLogger(__name__)

FEATURE_KEYS = (
    "publisher_geo",
    "regulator_signal",
    "event_class_lift",
    "entity_overlap",
    "semantic_similarity",
    "keyword_prior",
)


def _archetype_value(item) -> str:
    archetype = getattr(item, "archetype", None)
    if archetype is None:
        return "OTHER"
    return getattr(archetype, "value", str(archetype))


def isotonic(value: float, breakpoints: List[float], values: List[float]) -> float:
    """Piecewise-linear interpolation, flat outside the breakpoint range."""
    if not breakpoints:
        return clamp01(value)
    if value <= breakpoints[0]:
        return values[0]
    for i in range(1, len(breakpoints)):
        if value <= breakpoints[i]:
            x0, x1 = breakpoints[i - 1], breakpoints[i]
            y0, y1 = values[i - 1], values[i]
            if x1 == x0:
                return y1
            return y0 + (value - x0) / (x1 - x0) * (y1 - y0)
    return values[-1]


class RegionModel:
    """Logistic + isotonic regional relevance model."""

    def __init__(self, table: Optional[Dict[str, Any]] = None):
        table = table or load_table("region_model")
        self.bias = float(table["bias"])
        self.weights = {key: float(table["weights"].get(key, 0.0)) for key in FEATURE_KEYS}
        self.class_lift = table.get("event_class_lift", {})
        self.geo_tld = list(table.get("geo_tld", {}).items())
        self.regional_domains = table.get("trusted_regional_domains", {})
        self.regulator_domains = set(table.get("regulator_domains", []))
        self.regulator_phrases = [p.lower() for p in table.get("regulator_phrases", [])]
        self.entity_prefixes = [p.lower() for p in table.get("entity_prefixes", [])]
        self.similarity_floor = float(table.get("semantic", {}).get("similarity_floor", 0.1))
        self.keyword_hints = set(table.get("keyword_hints", []))
        iso = table.get("isotonic", {})
        self.breakpoints = [float(x) for x in iso.get("breakpoints", [])]
        self.values = [float(y) for y in iso.get("values", [])]

    def publisher_geo(self, domain: str) -> float:
        if domain in self.regional_domains:
            return float(self.regional_domains[domain])
        for suffix, score in self.geo_tld:
            if domain.endswith(suffix):
                return float(score)
        return 0.0

    def regulator_signal(self, domain: str, source: str, text: str) -> float:
        if domain in self.regulator_domains:
            return 1.0
        if source in self.regulator_domains:
            return 0.85
        if any(phrase in text for phrase in self.regulator_phrases):
            return 0.6
        return 0.0

    def entity_overlap(self, orgs: List[str]) -> float:
        if not orgs:
            return 0.0
        hits = sum(
            1 for org in orgs
            if any(org.lower().startswith(prefix) for prefix in self.entity_prefixes)
        )
        return hits / len(orgs)

    def features(
        self,
        item: ClassifiedItem,
        cluster: Optional[ClusterImpactSummary] = None,
        orgs: Optional[List[str]] = None,
    ) -> Dict[str, float]:
        domain = (item.domain or "").lower()
        source = (item.source or "").strip().lower()
        text = sanitize(item.text()).lower()
        tokens = tokenize(text)

        if orgs is None:
            orgs = list(item.entities.orgs) if item.entities else []

        hits = sum(1 for token in tokens if token in self.keyword_hints)
        lexical_share = hits / len(tokens) if tokens else 0.0
        trust_density = (
            cluster.trusted_domains / cluster.total_items
            if cluster is not None and cluster.total_items else 0.0
        )
        regional_publisher = 2 if domain in self.regional_domains else 0

        return {
            "publisher_geo": clamp01(self.publisher_geo(domain)),
            "regulator_signal": clamp01(self.regulator_signal(domain, source, text)),
            "event_class_lift": clamp01(self.class_lift.get(_archetype_value(item), 0.0)),
            "entity_overlap": clamp01(self.entity_overlap(orgs)),
            "semantic_similarity": clamp01(
                max(self.similarity_floor, lexical_share * 2 + trust_density * 0.3)
            ),
            "keyword_prior": clamp01((hits + regional_publisher) / 12),
        }

    def score(
        self,
        item: ClassifiedItem,
        cluster: Optional[ClusterImpactSummary] = None,
        orgs: Optional[List[str]] = None,
    ) -> Tuple[float, Dict[str, float]]:
        """(calibrated region_tie, features incl. logit/probability)."""
        features = self.features(item, cluster, orgs)
        logit = self.bias + sum(self.weights[key] * features[key] for key in FEATURE_KEYS)
        probability = 1.0 / (1.0 + math.exp(-logit))
        calibrated = clamp01(isotonic(probability, self.breakpoints, self.values))
        return calibrated, {**features, "logit": logit, "probability": probability}


# ── keyword heuristic ────────────────────────────────────────────────────────

def _heuristic() -> Dict[str, Any]:
    return load_table("region_model")["heuristic"]


def _domain_matches(domain: str, needle: str) -> bool:
    if needle.startswith("."):
        return domain.endswith(needle)
    return needle in domain


def regulator_signal_score(item) -> float:
    """Strongest regulator cue: domain 0.75, named source 0.6, or a regulator mention."""
    table = _heuristic()
    domain = (getattr(item, "domain", "") or "").lower()
    source = (getattr(item, "source", "") or "").lower()
    text = sanitize(f"{item.title} {item.description}").lower()
    tokens = set(tokenize(text))

    score = 0.0
    if any(_domain_matches(domain, needle) for needle in table["regulator_domains"]):
        score = max(score, float(table["regulator_domain_score"]))
    if source and any(contains_phrase(source, name) for name in table["regulator_sources"]):
        score = max(score, float(table["regulator_source_score"]))
    for phrase, bonus in table["regulator_token_bonus"].items():
        hit = phrase in text if " " in phrase else phrase in tokens
        if hit:
            score = max(score, float(bonus))
    return clamp01(score)


def region_relevance_score(item) -> float:
    """Keyword/domain heuristic for how regional a story is, in [0, 1]."""
    table = _heuristic()
    domain = (getattr(item, "domain", "") or "").lower()
    source = (getattr(item, "source", "") or "").lower()
    text = sanitize(f"{item.title} {item.description}").lower()
    tokens = set(tokenize(text))

    score = 0.0
    if any(_domain_matches(domain, needle) for needle in table["priority_domains"]):
        score += 0.6
    if source and any(name in source for name in table["priority_sources"]):
        score += 0.2
    hits = sum(1 for keyword in table["keywords"] if keyword in tokens)
    score += min(0.3, hits * 0.12)
    score += regulator_signal_score(item)
    if any(phrase in text for phrase in table["wide_region_phrases"]):
        score += 0.1
    return clamp01(score)
