"""Tests for impact weights, the region model and the impact scorer."""

import math
from datetime import timedelta

import pytest

from newsrank.schemas import Archetype, ImpactComponents, ImpactWeights
from newsrank.schemas.scoring import COMPONENT_KEYS, default_weight_map
from newsrank.scoring import (
    ImpactScorer,
    RegionModel,
    ScoringParameters,
    load_scoring_parameters,
    region_relevance_score,
    regulator_signal_score,
    rescore,
)
from newsrank.scoring.impact import recency_score
from newsrank.scoring.region import isotonic
from newsrank.scoring.weights import factor_breakdown


def regulator_item(make_classified, **kwargs):
    return make_classified(
        "Governor's statement on the financial stability outlook",
        domain="rbi.org.in",
        archetype=Archetype.OTHER,
        confidence=0.1,
        **kwargs,
    )


class TestImpactWeights:
    def test_defaults_sum_to_one(self):
        weights = ImpactWeights.resolve()
        assert sum(weights.as_dict().values()) == pytest.approx(1.0)
        assert weights.recency == pytest.approx(default_weight_map()["recency"])

    def test_bad_values_count_as_zero(self):
        weights = ImpactWeights.resolve({
            "recency": -1, "surface_reach": float("nan"), "graph_novelty": "lots",
            "authority": 1, "commerce_tie": 0, "region_tie": 1, "momentum": 0,
        })
        assert weights.recency == 0.0
        assert weights.surface_reach == 0.0
        assert weights.graph_novelty == 0.0
        assert weights.authority == pytest.approx(0.5)
        assert weights.region_tie == pytest.approx(0.5)

    def test_nothing_positive_falls_back_to_defaults(self):
        weights = ImpactWeights.resolve({key: 0 for key in COMPONENT_KEYS})
        assert weights == ImpactWeights.resolve()

    def test_missing_keys_use_defaults(self):
        defaults = default_weight_map()
        weights = ImpactWeights.resolve({"recency": defaults["recency"] * 2})
        total = sum(defaults.values()) + defaults["recency"]
        assert weights.recency == pytest.approx(2 * defaults["recency"] / total)

    def test_score_is_clamped_weighted_sum(self):
        weights = ImpactWeights.resolve({"recency": 1, "authority": 1, **{
            key: 0 for key in COMPONENT_KEYS if key not in ("recency", "authority")
        }})
        components = ImpactComponents(recency=1.0, authority=0.5, momentum=7)
        assert components.momentum == 1.0
        assert weights.score(components) == pytest.approx(0.75)

    def test_breakdown_explains_score(self):
        weights = ImpactWeights.resolve()
        components = ImpactComponents(recency=0.5, region_tie=1.0)
        breakdown = factor_breakdown(components, weights)
        assert set(breakdown) == set(COMPONENT_KEYS)
        total = sum(entry["contribution"] for entry in breakdown.values())
        assert total == pytest.approx(weights.score(components), abs=1e-3)


class TestScoringParameters:
    def test_packaged_defaults(self, weight_store):
        params = load_scoring_parameters(weight_store)
        assert params.version == 1
        assert params.recency_half_life_hours == 48
        assert params.momentum_window_hours == 18
        assert params.surface_reach_cap == 10

    def test_overrides_win(self, weight_store):
        params = load_scoring_parameters(weight_store, overrides={"recency": 1.0, **{
            key: 0 for key in COMPONENT_KEYS if key != "recency"
        }})
        assert params.weights.recency == 1.0


class TestRecency:
    def test_half_life_decay(self, now):
        published = (now - timedelta(hours=48)).isoformat()
        assert recency_score(published, now) == pytest.approx(math.exp(-1))

    def test_future_is_fresh(self, now):
        assert recency_score((now + timedelta(hours=2)).isoformat(), now) == 1.0

    def test_unparseable_is_stale(self, now):
        assert recency_score("sometime last week", now) == 0.0


class TestRegionModel:
    def test_isotonic_interpolation(self):
        assert isotonic(0.5, [0.0, 1.0], [0.0, 1.0]) == 0.5
        assert isotonic(-1, [0.0, 1.0], [0.1, 0.9]) == 0.1
        assert isotonic(2, [0.0, 1.0], [0.1, 0.9]) == 0.9

    def test_regulator_publisher_is_regional(self, make_classified):
        score, features = RegionModel().score(regulator_item(make_classified))
        assert features["publisher_geo"] == 1.0
        assert features["regulator_signal"] == 1.0
        assert features["keyword_prior"] == pytest.approx(2 / 12)
        assert score >= 0.6

    def test_foreign_story_is_not_regional(self, make_classified):
        item = make_classified(
            "Startup raises seed round in Berlin", domain="techcrunch.com", archetype=Archetype.OTHER,
        )
        score, features = RegionModel().score(item)
        assert features["publisher_geo"] == 0.0
        assert features["semantic_similarity"] == pytest.approx(0.1)
        assert score < 0.2

    def test_entity_overlap_uses_prefixes(self):
        assert RegionModel().entity_overlap(["Razorpay", "Stripe"]) == 0.5
        assert RegionModel().entity_overlap([]) == 0.0


class TestRegionHeuristics:
    def test_regulator_domain(self, make_item):
        item = make_item("RBI issues circular on UPI", domain="rbi.org.in")
        assert regulator_signal_score(item) == 0.75
        assert region_relevance_score(item) == 1.0

    def test_regulator_mention(self, make_item):
        item = make_item("Reserve Bank flags fintech lending risks", domain="techcrunch.com")
        assert regulator_signal_score(item) == 0.5

    def test_regulator_source(self, make_item):
        item = make_item("Statement on lending", domain="example.com", source="Reserve Bank of India")
        assert regulator_signal_score(item) == 0.6

    def test_unrelated_story(self, make_item):
        item = make_item("Startup raises seed round in Berlin", domain="techcrunch.com")
        assert regulator_signal_score(item) == 0.0
        assert region_relevance_score(item) == 0.0

    def test_wide_region_phrase(self, make_item):
        item = make_item("South Asia fintech funding dips", domain="techcrunch.com")
        assert region_relevance_score(item) == pytest.approx(0.1)


class TestImpactScorer:
    def test_regulator_story_scores_authority_and_region(self, make_classified, now):
        scored = ImpactScorer().score(regulator_item(make_classified), now=now)
        components = scored.impact.components
        assert components.region_tie >= 0.6
        assert components.authority >= 0.45
        assert components.authority == pytest.approx(0.55 * 0.95 + 0.25 + 0.2 * 0.1)
        assert 0.0 <= scored.impact_score <= 1.0
        assert scored.cluster_impact is None
        assert scored.trusted_domain_count == 1
        assert set(scored.impact_meta) == {"features", "decisions"}
        assert scored.impact_meta["decisions"]["momentum_floor_applied"] is True

    def test_unclustered_momentum_takes_floor(self, make_classified, now):
        scored = ImpactScorer().score(regulator_item(make_classified), now=now)
        assert scored.impact.components.momentum == pytest.approx(0.05)

    def test_novelty_flag(self, make_classified, now):
        scorer = ImpactScorer()
        item = regulator_item(make_classified)
        novel = scorer.score(item, novel=True, now=now)
        stale = scorer.score(item, novel=False, now=now)
        assert novel.impact.components.graph_novelty == 1.0
        assert novel.graph_novelty is True
        assert novel.impact_score > stale.impact_score

    @pytest.mark.parametrize("archetype,title,expected", [
        (Archetype.COMMERCE, "Anything at all", 1.0),
        (Archetype.LAUNCH, "New payment wallet checkout flow", 1.0),
        (Archetype.LAUNCH, "New wallet for commuters", pytest.approx(1 / 3)),
        (Archetype.LAUNCH, "New rocket engine test", 0.0),
    ])
    def test_commerce_tie(self, make_classified, archetype, title, expected):
        item = make_classified(title, archetype=archetype)
        assert ImpactScorer().commerce_tie(item)[0] == expected

    def test_item_weights_are_recorded(self, make_classified, now):
        params = ScoringParameters(weights=ImpactWeights.resolve({"recency": 1, **{
            key: 0 for key in COMPONENT_KEYS if key != "recency"
        }}))
        scored = ImpactScorer(params=params).score(regulator_item(make_classified, hours_ago=0), now=now)
        assert scored.impact_score == pytest.approx(1.0)
        assert scored.impact.weights.recency == 1.0

    def test_rescore_uses_item_weights(self, make_classified, now):
        scored = ImpactScorer().score(regulator_item(make_classified), now=now)
        bumped = rescore(scored, surface_reach=scored.impact.components.surface_reach + 0.05)
        assert bumped.impact.components.surface_reach == pytest.approx(
            min(1.0, scored.impact.components.surface_reach + 0.05)
        )
        assert bumped.impact_score == pytest.approx(scored.impact.weights.score(bumped.impact.components))
        assert bumped.id == scored.id
