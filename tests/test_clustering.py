"""Tests for story clustering and cluster reach/velocity signals."""

import pytest

from newsrank.news.clustering import (
    ItemProfile,
    StoryClusterer,
    build_profile,
    cosine,
    jaccard,
    similarity,
)
from newsrank.schemas import Archetype, ClassificationEvidence, ClusterContext
from newsrank.scoring.cluster_signals import (
    compute_cluster_signals,
    count_trusted_domains,
    trusted_domain_score,
)


def rate_story(make_classified, domain, hours_ago=1.0):
    return make_classified(
        "RBI raises repo rate by 25 basis points", domain=domain, hours_ago=hours_ago,
    )


class TestSimilarity:
    def test_same_canonical_url_is_identical(self, make_classified):
        a = make_classified("Headline one", url="http://example.com/story#a")
        b = make_classified("Completely different words", url="https://example.com/story")
        assert similarity(build_profile(a), build_profile(b)) == 1.0

    def test_empty_urls_do_not_match(self):
        a = ItemProfile(tokens={"rbi"}, vector={"rbi": 1.0})
        b = ItemProfile(tokens={"sebi"}, vector={"sebi": 1.0})
        assert similarity(a, b) == 0.0

    def test_two_empty_token_sets(self):
        assert jaccard(set(), set()) == 1.0
        assert similarity(ItemProfile(), ItemProfile()) == pytest.approx(0.6)

    def test_cosine_of_normalized_vectors(self, make_classified):
        profile = build_profile(make_classified("rbi rbi repo", description="rate"))
        assert profile.vector["rbi"] == pytest.approx(2 / 6 ** 0.5)
        assert cosine(profile.vector, profile.vector) == pytest.approx(1.0)
        assert cosine({"rbi": 0.6, "repo": 0.8}, {"repo": 1.0}) == pytest.approx(0.8)
        assert cosine({"rbi": 1.0}, {}) == 0.0

    def test_identical_titles(self, make_classified):
        a = rate_story(make_classified, "livemint.com")
        b = rate_story(make_classified, "reuters.com")
        assert similarity(build_profile(a), build_profile(b)) == pytest.approx(1.0)


class TestStoryClusterer:
    def test_groups_matching_stories(self, make_classified):
        items = [
            rate_story(make_classified, "livemint.com", hours_ago=5),
            rate_story(make_classified, "reuters.com", hours_ago=1),
            make_classified("Zomato launches drone delivery in Bengaluru", domain="inc42.com"),
        ]
        prep = StoryClusterer().cluster(items)

        assert [i.cluster_id for i in items] == ["cluster-1", "cluster-1", "cluster-2"]
        assert [i.cluster_size for i in items] == [2, 2, 1]
        first = prep.cluster_by_id("cluster-1")
        assert first.domain_counts == {"livemint.com": 1, "reuters.com": 1}
        assert first.representative_id == items[0].id
        assert first.window_start == "2025-06-02T07:00:00Z"
        assert first.window_end == "2025-06-02T11:00:00Z"
        assert prep.trusted_counts == {"cluster-1": 1, "cluster-2": 1}
        assert set(prep.profiles) == {i.id for i in items}

    def test_same_order_same_assignment(self, make_classified):
        def batch():
            return [
                rate_story(make_classified, "livemint.com"),
                make_classified("Zomato launches drone delivery in Bengaluru"),
                rate_story(make_classified, "reuters.com"),
            ]
        first, second = batch(), batch()
        StoryClusterer().cluster(first)
        StoryClusterer().cluster(second)
        assert [i.cluster_id for i in first] == [i.cluster_id for i in second]

    def test_items_without_title_or_url_stay_unclustered(self, make_classified):
        blank = make_classified("", url="")
        prep = StoryClusterer().cluster([blank])
        assert blank.cluster_id is None
        assert prep.unclustered == [blank.id]
        assert prep.clusters == []

    def test_evidence_is_attached_per_member(self, make_classified, classifier_evidence):
        item = rate_story(make_classified, "livemint.com")
        evidence = classifier_evidence(item)
        prep = StoryClusterer().cluster([item], {item.id: evidence})
        assert prep.clusters[0].evidence == {item.id: evidence}

    def test_high_threshold_splits_everything(self, make_classified):
        items = [
            rate_story(make_classified, "livemint.com"),
            make_classified("RBI raises repo rate by 50 basis points", domain="reuters.com"),
        ]
        StoryClusterer(threshold=0.99).cluster(items)
        assert items[0].cluster_id != items[1].cluster_id


@pytest.fixture
def classifier_evidence():
    def _make(item):
        return ClassificationEvidence(archetype=Archetype.POLICY, hybrid_score=0.5, confidence=0.4)
    return _make


class TestClusterSignals:
    def test_trusted_domain_lookup(self):
        assert trusted_domain_score("reuters.com") == 0.9
        assert trusted_domain_score("in.reuters.com") == 0.9
        assert trusted_domain_score("example.org") == 0.0
        assert count_trusted_domains(["reuters.com", "bloomberg.com", "example.org"]) == 2

    def test_reach_and_velocity(self, make_classified, now):
        cluster = ClusterContext(id="cluster-1", items=[
            make_classified("a", domain="reuters.com", hours_ago=2),
            make_classified("b", domain="bloomberg.com", hours_ago=10),
            make_classified("c", domain="example.org", hours_ago=20),
            make_classified("d", domain="fortune.com", hours_ago=100),   # outside window
            make_classified("e", domain="techcrunch.com", hours_ago=-3),  # future
            make_classified("f", domain="inc42.com", hours_ago=None),     # no timestamp
        ])
        summary = compute_cluster_signals(cluster, now)
        assert summary.total_items == 3
        assert summary.trusted_domains == 2
        assert summary.distinct_domains == 3
        assert summary.surface_reach == pytest.approx(0.2)
        assert summary.velocity == pytest.approx((2 / 3 - 0.6 / 3) + 0.4 * 2 / 3)

    def test_fading_story_has_no_velocity(self, make_classified, now):
        cluster = ClusterContext(id="cluster-2", items=[
            make_classified("a", domain="reuters.com", hours_ago=20),
            make_classified("b", domain="bloomberg.com", hours_ago=30),
        ])
        assert compute_cluster_signals(cluster, now).velocity == 0.0

    def test_reach_saturates_at_cap(self, make_classified, now):
        cluster = ClusterContext(id="cluster-3", items=[
            make_classified("a", domain="reuters.com"),
            make_classified("b", domain="bloomberg.com"),
        ])
        assert compute_cluster_signals(cluster, now, cap=2).surface_reach == 1.0

    def test_empty_cluster(self, now):
        summary = compute_cluster_signals(ClusterContext(id="cluster-4"), now)
        assert summary.surface_reach == 0.0
        assert summary.velocity == 0.0
