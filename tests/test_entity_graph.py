"""Tests for headline entity extraction and the persistent novelty graph."""

from datetime import timedelta

import pytest

from newsrank.news.entity_extractor import EntityExtractor, clean_span, entity_kind, extract_verbs
from newsrank.news.entity_graph import NoveltyGraph, edge_key, normalize_entity
from newsrank.schemas import EntityExtraction
from newsrank.storage import InMemoryKeyValueStore, KeyValueStore, StoreError


class TestEntityExtractor:
    def test_ner_labels_map_to_orgs_and_products(self, extractor):
        extraction = extractor.extract("Razorpay Partners With Acme Technologies To Launch UPI Checkout")
        assert extraction.orgs == ["Razorpay", "Acme Technologies"]
        assert extraction.products == ["UPI Checkout"]
        assert extraction.verbs == ["partner", "launch"]

    def test_multiword_org_kept_whole_and_places_ignored(self, extractor):
        extraction = extractor.extract(
            "Yesterday Tata Motors said Reserve Bank of India approved the Nexon EV launch in Mumbai"
        )
        assert extraction.orgs == ["Tata Motors", "Reserve Bank of India"]
        assert extraction.products == ["Nexon EV"]
        assert extraction.verbs == ["approve", "launch"]

    def test_past_tense_verbs(self, extractor):
        extraction = extractor.extract("Acme Corp acquired Globex Inc")
        assert extraction.orgs == ["Acme Corp", "Globex Inc"]
        assert extraction.verbs == ["acquire"]

    def test_labels_are_retyped_by_suffix(self, extractor):
        extraction = extractor.extract("PhonePe Wallet rivals Globex Ltd")
        assert extraction.orgs == ["Globex Ltd"]
        assert extraction.products == ["PhonePe Wallet"]

    def test_batch_keeps_order_and_skips_empty_text(self, extractor):
        first, empty, last = extractor.extract_batch(["Acme, Globex sign payments pact", "   ", "Tata Motors"])
        assert first.orgs == ["Acme", "Globex"]
        assert "sign" in first.verbs
        assert empty.is_empty()
        assert empty.verbs == ["announce"]
        assert last.orgs == ["Tata Motors"]

    def test_missing_model_explains_download(self):
        with pytest.raises(OSError, match="spacy download"):
            EntityExtractor(model_name="newsrank_missing_model").nlp

    def test_verb_fallback(self):
        assert extract_verbs("Quarterly numbers look solid") == ["announce"]

    def test_tagged_verb_lemmas_follow_lexicon_verbs(self):
        assert extract_verbs("Acme launches and courts merchants", ["launch", "court"]) == ["launch", "court"]

    @pytest.mark.parametrize("span,cleaned", [
        ("the Reserve Bank of India", "Reserve Bank of India"),
        ("Yesterday Tata Motors", "Tata Motors"),
        ("Acme's", "Acme"),
        ("Monday", ""),
    ])
    def test_clean_span(self, span, cleaned):
        assert clean_span(span) == cleaned

    @pytest.mark.parametrize("label,text,kind", [
        ("ORG", "Globex Ltd", "ORG"),
        ("ORG", "PhonePe Wallet", "PRODUCT"),
        ("PRODUCT", "Gemini Model", "PRODUCT"),
        ("PRODUCT", "Nova Labs", "ORG"),
        ("WORK_OF_ART", "Sacred Games", "PRODUCT"),
        ("GPE", "Mumbai", ""),
        ("PERSON", "Nandan Nilekani", ""),
    ])
    def test_entity_kind(self, label, text, kind):
        assert entity_kind(label, text) == kind


def pair_item(make_item, title="Acme and Globex deal", verbs=("partner",), **kwargs):
    return make_item(
        title,
        entities=EntityExtraction(orgs=["Acme Corp", "Globex Inc"]),
        verbs=list(verbs),
        **kwargs,
    )


class FailingReadStore(KeyValueStore):
    def __init__(self):
        self.writes = {}

    def get(self, key):
        raise StoreError("backend down")

    def put(self, key, value, ttl_seconds=None):
        self.writes[key] = value


class FailingWriteStore(KeyValueStore):
    def get(self, key):
        return None

    def put(self, key, value, ttl_seconds=None):
        raise StoreError("disk full")


class TestNoveltyGraph:
    def test_first_sighting_is_novel(self, kv, make_item, now):
        item = pair_item(make_item)
        result = NoveltyGraph(kv).update([item], now=now)
        assert result.item_novelty[item.id] is True
        assert result.novelty_hits == 1
        assert len(result.nodes) == 2
        assert len(result.edges) == 1
        edge = next(iter(result.edges.values()))
        assert edge.source < edge.target
        assert edge.count == 1
        assert kv.get(edge_key(edge.source, edge.target, "partner")) is not None

    def test_repeat_within_window_is_not_novel(self, kv, clock, make_item, now):
        graph = NoveltyGraph(kv, clock=clock)
        item = pair_item(make_item)
        graph.update([item], now=now)

        clock.advance(days=1)
        result = graph.update([item], now=now + timedelta(days=1))
        assert result.item_novelty[item.id] is False
        edge = next(iter(result.edges.values()))
        assert edge.count == 2
        assert all(node.degree == 2 for node in result.nodes.values())

    def test_stale_edge_is_novel_again(self, kv, clock, make_item, now):
        graph = NoveltyGraph(kv, clock=clock)
        item = pair_item(make_item)
        graph.update([item], now=now)

        clock.advance(days=31)
        result = graph.update([item], now=now + timedelta(days=31))
        assert result.item_novelty[item.id] is True

    def test_expired_records_read_as_absent(self, kv, clock, make_item):
        graph = NoveltyGraph(kv, clock=clock, edge_ttl_days=90)
        item = pair_item(make_item)
        graph.update([item])

        clock.advance(days=91)
        result = graph.update([item])
        assert result.item_novelty[item.id] is True
        edge = next(iter(result.edges.values()))
        assert edge.count == 1

    def test_new_verb_bucket_is_novel(self, kv, make_item, now):
        graph = NoveltyGraph(kv)
        graph.update([pair_item(make_item)], now=now)
        acquisition = pair_item(make_item, title="Acme buys Globex", verbs=("acquire",))
        result = graph.update([acquisition], now=now)
        assert result.item_novelty[acquisition.id] is True

    def test_missing_verbs_use_default_bucket(self, kv, make_item, now):
        item = pair_item(make_item, verbs=())
        result = NoveltyGraph(kv).update([item], now=now)
        edge = next(iter(result.edges.values()))
        assert edge.verb_bucket == "observe"

    def test_single_entity_and_no_entity_are_not_novel(self, kv, make_item, now):
        single = make_item("Acme results", entities=EntityExtraction(orgs=["Acme Corp"]))
        empty = make_item("markets are quiet", entities=EntityExtraction())
        result = NoveltyGraph(kv).update([single, empty], now=now)
        assert result.item_novelty == {single.id: False, empty.id: False}
        assert len(result.edges) == 0

    def test_entities_extracted_when_not_supplied(self, kv, make_item, now, extractor):
        item = make_item("Acme Technologies Partners With Globex Systems")
        supplied = pair_item(make_item)
        result = NoveltyGraph(kv, extractor=extractor).update([item, supplied], now=now)
        assert result.extractions[supplied.id].orgs == ["Acme Corp", "Globex Inc"]
        assert result.extractions[item.id].orgs == ["Acme Technologies", "Globex Systems"]
        assert result.item_novelty[item.id] is True

    def test_failed_reads_are_not_evidence_of_novelty(self, make_item, now):
        store = FailingReadStore()
        item = pair_item(make_item)
        result = NoveltyGraph(store).update([item], now=now)
        assert result.item_novelty[item.id] is False
        assert any(key.startswith("graph:edge:") for key in store.writes)

    def test_failed_writes_do_not_abort(self, make_item, now):
        item = pair_item(make_item)
        result = NoveltyGraph(FailingWriteStore()).update([item], now=now)
        assert result.item_novelty[item.id] is True

    def test_corrupt_record_reads_as_absent(self, kv, make_item, now):
        graph = NoveltyGraph(kv)
        item = pair_item(make_item)
        first = graph.update([item], now=now)
        edge = next(iter(first.edges.values()))
        kv.put(edge_key(edge.source, edge.target, "partner"), "{not json")
        again = graph.update([item], now=now)
        assert again.item_novelty[item.id] is True

    def test_product_does_not_shadow_org(self, now):
        item_entities = EntityExtraction(orgs=["Paytm"], products=["Paytm", "Soundbox"])
        graph = NoveltyGraph(InMemoryKeyValueStore())
        nodes = graph._nodes_for(item_entities)
        assert len(nodes) == 2
        assert normalize_entity("Acme, Inc.") == "acme inc"
