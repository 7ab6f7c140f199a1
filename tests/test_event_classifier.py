"""Tests for the hybrid archetype classifier and cluster consensus."""

import pytest

from newsrank.news.event_classifier import (
    HybridEventClassifier,
    fallback_verbs,
    fnv1a_32,
    hashed_vector,
    strip_suffix,
)
from newsrank.schemas import Archetype, ClassificationEvidence, ClusterContext


@pytest.fixture(scope="module")
def classifier():
    return HybridEventClassifier()


class TestHashing:
    def test_fnv1a_known_values(self):
        assert fnv1a_32("") == 0x811C9DC5
        assert fnv1a_32("a") == 0xE40C292C

    def test_hashed_vector_counts_tokens(self):
        vec = hashed_vector(["upi", "upi", "wallet"], 64)
        assert vec.sum() == 3
        assert vec[fnv1a_32("upi") % 64] >= 2

    @pytest.mark.parametrize("token,stem", [
        ("policies", "policy"), ("launching", "launch"), ("partnered", "partner"),
        ("launches", "launch"), ("wallets", "wallet"), ("ups", "ups"),
    ])
    def test_strip_suffix(self, token, stem):
        assert strip_suffix(token) == stem

    def test_fallback_verbs_include_stems(self):
        assert fallback_verbs(["launches", "ai", "new"]) == ["launches", "launch"]


class TestClassify:
    def test_commerce_keywords(self, classifier, make_item):
        item = make_item("Checkout payments wallet merchant commerce billing UPI POS")
        classified, evidence = classifier.classify(item)
        assert classified.archetype == Archetype.COMMERCE
        assert classified.confidence > 0.5
        assert evidence.hybrid_score >= 0.6
        assert evidence.scores[Archetype.COMMERCE.value] == evidence.hybrid_score

    def test_launch_from_inflected_verb(self, classifier, make_item):
        classified, _ = classifier.classify(make_item("Acme launches new AI platform"))
        assert classified.archetype == Archetype.LAUNCH

    def test_unrelated_text_is_other(self, classifier, make_item):
        classified, evidence = classifier.classify(
            make_item("Heavy rain expected across the coast this weekend")
        )
        assert classified.archetype == Archetype.OTHER
        assert classified.confidence < 0.3
        assert evidence.hybrid_score < classifier.floor

    def test_market_wrap_is_low_confidence_trend(self, classifier, make_item):
        classified, _ = classifier.classify(
            make_item("Stocks to watch: Reliance, Infosys shares in focus")
        )
        assert classified.archetype == Archetype.TREND
        assert classified.confidence <= 0.18

    def test_classification_is_deterministic(self, make_item):
        item = make_item("RBI issues circular on UPI merchant compliance")
        first, _ = HybridEventClassifier().classify(item)
        second, _ = HybridEventClassifier().classify(item)
        assert first.archetype == second.archetype
        assert first.confidence == second.confidence

    def test_classified_item_keeps_identity(self, classifier, make_item):
        item = make_item("Checkout payments wallet merchant")
        classified, _ = classifier.classify(item)
        assert classified.id == item.id
        assert classified.url == item.url

    def test_batch_preserves_order(self, classifier, make_item):
        items = [
            make_item("Acme launches new AI platform"),
            make_item("Heavy rain expected across the coast this weekend"),
        ]
        classified, evidence = classifier.classify_batch(items)
        assert [c.id for c in classified] == [i.id for i in items]
        assert set(evidence) == {i.id for i in items}


def consensus_cluster(make_classified, own_confidence=0.3, own_hybrid=0.3, peer_hybrid=0.7):
    own = make_classified("Acme tweaks merchant rules", archetype=Archetype.POLICY, confidence=own_confidence)
    peers = [
        make_classified(f"Acme opens checkout for merchants {n}", archetype=Archetype.COMMERCE, confidence=0.8)
        for n in range(2)
    ]
    evidence = {
        own.id: ClassificationEvidence(
            archetype=Archetype.POLICY, hybrid_score=own_hybrid, confidence=own_confidence,
            scores={"POLICY": own_hybrid, "COMMERCE": 0.2},
        ),
    }
    for peer in peers:
        evidence[peer.id] = ClassificationEvidence(
            archetype=Archetype.COMMERCE, hybrid_score=peer_hybrid, confidence=0.8,
            scores={"POLICY": 0.1, "COMMERCE": peer_hybrid},
        )
    return own, peers, ClusterContext(id="cluster-1", items=[own] + peers, evidence=evidence)


class TestConsensus:
    def test_peer_majority_overrides_weak_label(self, classifier, make_classified):
        own, peers, cluster = consensus_cluster(make_classified)
        assert classifier.refine_with_consensus(cluster) == 1
        assert own.archetype == Archetype.COMMERCE
        assert own.confidence == pytest.approx(0.55)
        assert own.signals.cluster_voting == 1.0
        assert cluster.evidence[own.id].archetype == Archetype.COMMERCE
        # peers vote against the snapshot, not the overridden label
        assert peers[0].signals.cluster_voting == 0.5

    def test_confident_label_is_kept(self, classifier, make_classified):
        own, _, cluster = consensus_cluster(make_classified, own_confidence=0.9)
        assert classifier.refine_with_consensus(cluster) == 0
        assert own.archetype == Archetype.POLICY

    def test_override_needs_margin(self, classifier, make_classified):
        own, _, cluster = consensus_cluster(make_classified, own_hybrid=0.3, peer_hybrid=0.32)
        assert classifier.refine_with_consensus(cluster) == 0
        assert own.archetype == Archetype.POLICY

    def test_singleton_has_no_votes(self, classifier, make_classified):
        item = make_classified("Lone story", archetype=Archetype.LAUNCH, confidence=0.4)
        cluster = ClusterContext(id="cluster-9", items=[item])
        assert classifier.refine_with_consensus(cluster) == 0
        assert item.signals.cluster_voting == 0.0
