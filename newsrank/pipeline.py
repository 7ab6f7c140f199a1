"""
End-to-end relevance pipeline.

FLOW (one batch):
  1. language filter        allow-list + langdetect for untagged items
  2. provider counts        items per feed adapter
  3. novelty graph          entity extraction + co-occurrence novelty
  4. classification         hybrid lexicon/embedding archetypes
  5. story clustering       greedy similarity clusters
  6. consensus              peer-majority relabelling inside clusters
  7. cluster signals        surface reach + velocity per cluster
  8. impact                 seven-component composite score
  9. heads                  one item per cluster
 10. MMR rerank             impact floor + diversity ordering
 11. shortlist              topic scores, quotas, filters, urgency
 12. calibration            weight update from shortlisted vs rejected
 13. run log                telemetry, alerts, adaptive region floor

No stage is fatal: store failures degrade to documented defaults and are
surfaced in PipelineResult.warnings.
"""

import logging
import random
import time
from collections import Counter
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from newsrank.config import Settings, get_settings
from newsrank.learning.calibrator import Calibrator
from newsrank.learning.run_log import RunLogger
from newsrank.news.clustering import StoryClusterer
from newsrank.news.entity_extractor import EntityExtractor
from newsrank.news.entity_graph import NoveltyGraph
from newsrank.news.event_classifier import HybridEventClassifier
from newsrank.schemas.base import Archetype, SourceProvider
from newsrank.schemas.learning import CalibrationResult, RunCounts, RunLogEntry
from newsrank.schemas.news import ClassifiedItem, ClusterContext, NormalizedItem
from newsrank.schemas.scoring import ClusterImpactSummary, ScoredItem, ShortlistedCandidate
from newsrank.scoring.cluster_signals import compute_cluster_signals
from newsrank.scoring.impact import ImpactScorer
from newsrank.scoring.weights import load_scoring_parameters
from newsrank.selection.rerank import mmr_rerank, select_heads
from newsrank.selection.selector import ShortlistSelector, filter_languages
from newsrank.selection.tuning import SelectionTuning
from newsrank.shared.stopwords import COMMON_STOPWORDS
from newsrank.shared.text import tokenize
from newsrank.shared.timeutil import parse_utc, utc_now
from newsrank.storage.kv import KeyValueStore
from newsrank.storage.weights import WeightStore

logger = logging.getLogger(__name__)

SUMMARY_TOP_TOKENS = 3
SUMMARY_MAX_DOMAINS = 5


class ClusterSummary(BaseModel):
    """Compact view of a story cluster for downstream narrative composition."""
    id: str
    theme: str = "general"
    size: int = 0
    top_tokens: List[str] = Field(default_factory=list)
    domains: List[str] = Field(default_factory=list)
    sample: Dict[str, Any] = Field(default_factory=dict)
    signals: Optional[ClusterImpactSummary] = None


class PipelineStats(BaseModel):
    scanned: int = 0
    classified: int = 0
    clusters: int = 0
    impact_qualified: int = 0
    published: int = 0
    novelty_hits: int = 0
    class_distribution: Dict[str, int] = Field(default_factory=dict)


class PipelineResult(BaseModel):
    """Everything one run produced, stage by stage."""
    batch_id: str = ""
    classified: List[ClassifiedItem] = Field(default_factory=list)
    scored: List[ScoredItem] = Field(default_factory=list)
    heads: List[ScoredItem] = Field(default_factory=list)
    reranked: List[ScoredItem] = Field(default_factory=list)
    shortlist: List[ShortlistedCandidate] = Field(default_factory=list)
    clusters: List[ClusterContext] = Field(default_factory=list)
    cluster_summaries: List[ClusterSummary] = Field(default_factory=list)
    provider_counts: Dict[str, int] = Field(default_factory=dict)
    stats: PipelineStats = Field(default_factory=PipelineStats)
    novelty: Dict[str, bool] = Field(default_factory=dict)
    calibration: Optional[CalibrationResult] = None
    run_log: Optional[RunLogEntry] = None
    warnings: List[str] = Field(default_factory=list)
    phase_times: Dict[str, float] = Field(default_factory=dict)


def _summarize_cluster(
    cluster: ClusterContext,
    scored_by_id: Dict[str, ScoredItem],
    signals: Optional[ClusterImpactSummary],
) -> ClusterSummary:
    members = [scored_by_id[i.id] for i in cluster.items if i.id in scored_by_id]
    classes = Counter(m.archetype for m in members)
    top_class = classes.most_common(1)[0][0] if classes else Archetype.OTHER

    token_counts = Counter(
        token for m in members for token in tokenize(m.title)
        if len(token) >= 3 and token not in COMMON_STOPWORDS
    )
    top_tokens = [token for token, _ in token_counts.most_common(SUMMARY_TOP_TOKENS)]
    domains = [d for d, _ in Counter(cluster.domain_counts).most_common(SUMMARY_MAX_DOMAINS)]

    if top_class != Archetype.TREND:
        theme = top_class.value
    elif top_tokens:
        theme = " ".join(top_tokens)
    elif domains:
        theme = domains[0]
    else:
        theme = "general"

    sample: Dict[str, Any] = {}
    if members:
        best = max(members, key=lambda m: m.impact_score)
        sample = {"id": best.id, "title": best.title, "url": best.url, "impact": best.impact_score}

    return ClusterSummary(
        id=cluster.id,
        theme=theme,
        size=cluster.size,
        top_tokens=top_tokens,
        domains=domains,
        sample=sample,
        signals=signals,
    )


def run_pipeline(
    items: List[Union[NormalizedItem, Dict[str, Any]]],
    kv: KeyValueStore,
    weight_store: Optional[WeightStore] = None,
    settings: Optional[Settings] = None,
    now: Optional[Union[datetime, str]] = None,
    batch_id: Optional[str] = None,
    calibrate: Optional[bool] = None,
    run_logger: Optional[RunLogger] = None,
    tuning: Optional[SelectionTuning] = None,
    rng: Optional[random.Random] = None,
    limit: Optional[int] = None,
    extractor: Optional[EntityExtractor] = None,
) -> PipelineResult:
    """
    Run one batch through the whole engine.

    Args:
        items: NormalizedItems (or dicts accepted by NormalizedItem)
        kv: novelty-graph key-value store
        weight_store: impact weight configuration (settings path when None)
        settings: configuration (get_settings() when None)
        now: reference time for recency/novelty (current UTC when None)
        batch_id: run identifier (derived from now when None)
        calibrate: run the calibration loop (settings.calibration_enabled when None)
        run_logger: run-history writer (settings path when None)
        tuning: topic mix / shortlist size (settings when None)
        rng: random source for calibration sampling
        limit: shortlist size override
        extractor: spaCy entity extractor (built from settings.spacy_model when None)
    """
    settings = settings or get_settings()
    moment = parse_utc(now) if now is not None else None
    moment = moment or utc_now()
    batch_id = batch_id or f"run-{moment.strftime('%Y%m%dT%H%M%SZ')}"
    result = PipelineResult(batch_id=batch_id)

    normalized = [i if isinstance(i, NormalizedItem) else NormalizedItem(**i) for i in items]
    if not normalized:
        logger.info(f"Pipeline {batch_id}: empty batch, nothing to do")
        return result

    weight_store = weight_store or WeightStore()
    run_logger = run_logger or RunLogger()
    total_start = time.time()

    # 1. Language filter
    t = time.time()
    kept = filter_languages(normalized, settings.get_supported_languages())
    result.phase_times["language_filter"] = round(time.time() - t, 3)

    # 2. Provider counts
    provider_counts = {p.value: 0 for p in SourceProvider}
    for item in kept:
        provider_counts[item.provider.value] += 1
    result.provider_counts = provider_counts

    # 3. Novelty graph
    t = time.time()
    if extractor is None and settings.spacy_model != get_settings().spacy_model:
        extractor = EntityExtractor(settings.spacy_model)
    graph = NoveltyGraph(
        kv,
        novelty_window_days=settings.novelty_window_days,
        edge_ttl_days=settings.graph_edge_ttl_days,
        verb_bucket_limit=settings.graph_verb_bucket_limit,
        extractor=extractor,
    )
    graph_result = graph.update(kept, now=moment)
    result.novelty = dict(graph_result.item_novelty)
    result.phase_times["novelty_graph"] = round(time.time() - t, 3)

    # 4. Classification
    t = time.time()
    classifier = HybridEventClassifier(floor=settings.classifier_floor, dim=settings.classifier_vector_dim)
    verbs_by_id = {item_id: ext.verbs for item_id, ext in graph_result.extractions.items()}
    classified, evidence = classifier.classify_batch(kept, verbs_by_id)
    for item in classified:
        extraction = graph_result.extractions.get(item.id)
        if extraction is not None:
            item.entities = extraction
            item.verbs = list(extraction.verbs)
    result.phase_times["classification"] = round(time.time() - t, 3)

    # 5-6. Story clustering + consensus
    t = time.time()
    prep = StoryClusterer(settings.story_similarity_threshold).cluster(classified, evidence)
    overridden = sum(classifier.refine_with_consensus(cluster) for cluster in prep.clusters)
    if overridden:
        logger.info(f"Cluster consensus relabelled {overridden} items")
    result.classified = classified
    result.clusters = prep.clusters
    result.phase_times["clustering"] = round(time.time() - t, 3)

    # 7-8. Cluster signals + impact
    t = time.time()
    params = load_scoring_parameters(weight_store)
    summaries = {
        cluster.id: compute_cluster_signals(
            cluster,
            moment,
            window_hours=settings.surface_reach_window_hours,
            cap=params.surface_reach_cap,
            recent_hours=params.momentum_window_hours,
        )
        for cluster in prep.clusters
    }
    scorer = ImpactScorer(params)
    scored = [
        scorer.score(
            item,
            summaries.get(item.cluster_id) if item.cluster_id else None,
            novel=result.novelty.get(item.id, False),
            now=moment,
            orgs=item.entities.orgs if item.entities else None,
        )
        for item in classified
    ]
    result.scored = scored
    result.phase_times["impact"] = round(time.time() - t, 3)

    # 9-11. Heads, MMR, shortlist
    t = time.time()
    heads = select_heads(scored)
    reranked = mmr_rerank(heads, prep.profiles, settings.mmr_lambda, settings.impact_floor)
    # Languages were filtered in step 1
    selector = ShortlistSelector(tuning=tuning, check_languages=False)
    shortlist = selector.select(reranked, limit)
    result.heads = heads
    result.reranked = reranked
    result.shortlist = shortlist
    result.phase_times["selection"] = round(time.time() - t, 3)

    # 12. Calibration
    enabled = calibrate if calibrate is not None else settings.calibration_enabled
    if enabled:
        t = time.time()
        shortlisted_ids = {c.item.id for c in shortlist}
        rejected = [s for s in scored if s.id not in shortlisted_ids]
        calibration = Calibrator(weight_store, rng=rng).run(
            [c.item for c in shortlist], rejected, batch_id, now=moment,
        )
        result.calibration = calibration
        if calibration.warning:
            result.warnings.append(calibration.warning)
        result.phase_times["calibration"] = round(time.time() - t, 3)

    # Stats + cluster summaries
    scored_by_id = {s.id: s for s in scored}
    distribution = Counter(item.archetype.value for item in classified)
    result.stats = PipelineStats(
        scanned=len(normalized),
        classified=len(classified),
        clusters=len(prep.clusters),
        impact_qualified=sum(1 for s in scored if s.impact_score >= settings.impact_floor),
        published=len(shortlist),
        novelty_hits=graph_result.novelty_hits,
        class_distribution=dict(distribution),
    )
    result.cluster_summaries = sorted(
        (_summarize_cluster(c, scored_by_id, summaries.get(c.id)) for c in prep.clusters),
        key=lambda s: s.sample.get("impact", 0.0),
        reverse=True,
    )

    # 13. Run log
    result.run_log = run_logger.log_run(
        batch_id,
        classified,
        shortlist,
        counts=RunCounts(
            scanned=result.stats.scanned,
            classified=result.stats.classified,
            clusters=result.stats.clusters,
            impact_qualified=result.stats.impact_qualified,
            novelty_hits=result.stats.novelty_hits,
            provider_counts=provider_counts,
        ),
        calibration=result.calibration,
        now=moment,
    )

    total = time.time() - total_start
    result.phase_times["total"] = round(total, 3)
    logger.info(
        f"Pipeline {batch_id}: scanned={result.stats.scanned}, classified={result.stats.classified}, "
        f"clusters={result.stats.clusters}, qualified={result.stats.impact_qualified}, "
        f"published={result.stats.published}, novel={result.stats.novelty_hits} in {total:.2f}s"
    )
    return result
