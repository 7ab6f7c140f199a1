"""End-to-end tests for run_pipeline."""

import random

import pytest

from newsrank.config import Settings
from newsrank.pipeline import run_pipeline
from newsrank.selection import selector as selector_module
from newsrank.storage import InMemoryKeyValueStore, StoreError, WeightStore

REGULATOR_TITLE = "Governor's statement on the financial stability outlook"
PARTNER_TITLE = "Razorpay Partners With Acme Technologies To Launch UPI Checkout"
RATE_TITLE = "RBI hikes repo rate by 25 bps to curb inflation"

# Low floor so small synthetic batches still yield a shortlist
SETTINGS = Settings(IMPACT_FLOOR=0.2)


class FailingWeightStore(WeightStore):
    def save(self, record):
        raise StoreError("disk full")


@pytest.fixture(autouse=True)
def ruler_extractor(monkeypatch, extractor):
    """Route the shared spaCy extractor to the entity-ruler pipeline."""
    monkeypatch.setattr("newsrank.news.entity_graph.get_extractor", lambda: extractor)


@pytest.fixture
def batch(make_item):
    outlets = ["livemint.com", "reuters.com", "economictimes.indiatimes.com", "business-standard.com"]
    items = [
        make_item(RATE_TITLE, domain=domain, hours_ago=2 + n)
        for n, domain in enumerate(outlets)
    ]
    items += [
        make_item(REGULATOR_TITLE, domain="rbi.org.in", hours_ago=3),
        make_item(PARTNER_TITLE, domain="techcrunch.com", hours_ago=5),
        make_item(
            "OpenAI releases new model for enterprise agents",
            description="The AI model targets automation and machine learning workloads.",
            domain="theverge.com",
            hours_ago=6,
        ),
        make_item("SEBI tightens disclosure norms for SME listings", domain="moneycontrol.com", hours_ago=8),
        make_item("Heavy rain expected across the coast this weekend", domain="weather.example.com", hours_ago=4),
        make_item("La banque centrale relève ses taux", domain="lemonde.fr", language="fr", hours_ago=2),
    ]
    return items


def run(batch, kv, weight_store, run_logger, now, **kwargs):
    kwargs.setdefault("calibrate", False)
    kwargs.setdefault("settings", SETTINGS)
    return run_pipeline(
        batch, kv, weight_store=weight_store, run_logger=run_logger, now=now, batch_id="batch-1", **kwargs,
    )


class TestRunPipeline:
    def test_empty_batch(self, kv, weight_store, run_logger, now):
        result = run([], kv, weight_store, run_logger, now)
        assert result.shortlist == []
        assert result.stats.scanned == 0
        assert result.run_log is None

    def test_full_run(self, batch, kv, weight_store, run_logger, now):
        result = run(batch, kv, weight_store, run_logger, now, limit=5)

        assert result.stats.scanned == len(batch)
        assert result.stats.classified == len(batch) - 1
        assert all(item.language != "fr" for item in result.classified)
        assert sum(result.provider_counts.values()) == len(batch) - 1

        assert 0 < len(result.shortlist) <= 5
        for candidate in result.shortlist:
            assert 0.0 <= candidate.final_score <= 1.0
        cluster_ids = [c.item.cluster_id for c in result.shortlist if c.item.cluster_id]
        assert len(cluster_ids) == len(set(cluster_ids))

        assert result.run_log.batch_id == "batch-1"
        assert [r.batch_id for r in run_logger.load().runs] == ["batch-1"]
        assert "total" in result.phase_times
        assert result.calibration is None

    def test_syndicated_story_shares_a_cluster(self, batch, kv, weight_store, run_logger, now):
        result = run(batch, kv, weight_store, run_logger, now)
        cluster_ids = {item.cluster_id for item in result.classified if item.title == RATE_TITLE}
        assert len(cluster_ids) == 1
        assert None not in cluster_ids

    def test_regulator_story_is_regional_and_authoritative(self, batch, kv, weight_store, run_logger, now):
        result = run(batch, kv, weight_store, run_logger, now)
        scored = next(s for s in result.scored if s.title == REGULATOR_TITLE)
        assert scored.impact.components.region_tie >= 0.6
        assert scored.impact.components.authority >= 0.45

    def test_novelty_is_remembered_between_runs(self, batch, kv, weight_store, run_logger, now):
        first = run(batch, kv, weight_store, run_logger, now)
        partner = next(i for i in first.classified if i.title == PARTNER_TITLE)
        assert first.novelty[partner.id] is True

        second = run(batch, kv, weight_store, run_logger, now)
        assert second.stats.novelty_hits == 0
        assert second.novelty[partner.id] is False

    def test_same_input_same_shortlist(self, batch, clock, weight_store, run_logger, now):
        results = [
            run(batch, InMemoryKeyValueStore(clock=clock), weight_store, run_logger, now)
            for _ in range(2)
        ]
        ids = [[c.item.id for c in r.shortlist] for r in results]
        scores = [[c.final_score for c in r.shortlist] for r in results]
        assert ids[0] == ids[1]
        assert scores[0] == scores[1]

    def test_small_batch_skips_calibration(self, batch, kv, weight_store, run_logger, now):
        result = run(batch, kv, weight_store, run_logger, now, calibrate=True, limit=3, rng=random.Random(5))
        assert result.calibration.skipped is True
        assert result.calibration.persisted is True
        assert result.run_log.calibration["skipped"] is True
        assert weight_store.load().version == 2

    def test_weight_store_failure_becomes_warning(self, batch, kv, run_logger, tmp_path, now):
        store = FailingWeightStore(path=tmp_path / "weights.json")
        result = run(batch, kv, store, run_logger, now, calibrate=True, limit=3)
        assert result.calibration.persisted is False
        assert any(w.startswith("calibration write failed") for w in result.warnings)
        assert result.shortlist

    def test_accepts_plain_dicts(self, batch, kv, weight_store, run_logger, now):
        payload = [item.model_dump(mode="json") for item in batch]
        result = run(payload, kv, weight_store, run_logger, now)
        assert result.stats.scanned == len(batch)

    def test_default_impact_floor(self, batch, kv, weight_store, run_logger, now, extractor):
        settings = Settings()
        result = run(batch, kv, weight_store, run_logger, now, settings=settings, extractor=extractor)

        assert settings.impact_floor == 0.55
        assert all(head.impact_score >= settings.impact_floor for head in result.reranked)
        assert {c.item.id for c in result.shortlist} <= {head.id for head in result.reranked}
        assert result.stats.impact_qualified == sum(
            1 for s in result.scored if s.impact_score >= settings.impact_floor
        )
        assert result.stats.published == len(result.shortlist)

    def test_languages_checked_once_per_item(self, batch, kv, weight_store, run_logger, now, monkeypatch):
        checked = []
        original = selector_module.is_supported_language

        def counting(item, allowed=None):
            checked.append(item.id)
            return original(item, allowed)

        monkeypatch.setattr(selector_module, "is_supported_language", counting)
        run(batch, kv, weight_store, run_logger, now)
        assert sorted(checked) == sorted(item.id for item in batch)
