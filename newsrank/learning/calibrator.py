"""
Self-calibration of impact weights from shortlist feedback.

Each run compares the shortlisted items (positives) with the scored items
that did not make the cut (negatives). For every component the calibrator
asks: did the component predict what a good story looks like?

  target (per item, 0/1):
    recency, authority   actionable: POLICY/COMMERCE or impact ≥ 0.72
    surface_reach        cluster surface reach ≥ 0.6
    graph_novelty        novelty ≥ 0.55
    region_tie           region ≥ 0.6
    momentum             momentum ≥ 0.5
    commerce_tie         LAUNCH / PARTNERSHIP / COMMERCE
  prediction = the component value

  error = 0.7×(pos target − pos prediction) + 0.3×(neg prediction − neg target)
  delta = clamp(error×alpha, ±max_delta)
  new   = max(min_weight, old + delta), then renormalized

Safety: per-cycle deltas are bounded, weights never drop under the floor,
samples are stratified by archetype so one dominant class cannot steer the
update, and too-small samples skip the cycle entirely.
"""

import logging
import random
from collections import defaultdict
from datetime import datetime
from statistics import mean
from typing import Dict, List, Optional

from newsrank.config import get_settings
from newsrank.schemas.base import ACTIONABLE_ARCHETYPES, UPSIDE_ARCHETYPES, Archetype
from newsrank.schemas.learning import CalibrationHistoryEntry, CalibrationResult
from newsrank.schemas.scoring import COMPONENT_KEYS, ImpactWeights, ScoredItem
from newsrank.shared.text import clamp
from newsrank.shared.timeutil import to_iso, utc_now
from newsrank.storage.kv import StoreError
from newsrank.storage.weights import WeightStore

logger = logging.getLogger(__name__)

ACTIONABLE_IMPACT = 0.72
REACH_TARGET = 0.6
NOVELTY_TARGET = 0.55
REGION_TARGET = 0.6
MOMENTUM_TARGET = 0.5
POSITIVE_SHARE = 0.7
NEGATIVE_SHARE = 0.3
MIN_REPORTED_GAP = 0.01

SKIP_NOTE = "insufficient_sample_size"
SKIP_REASON = "Calibration skipped: insufficient sample size"
NO_GAP_REASON = "No significant component gaps detected"


def stratified_sample(items: List[ScoredItem], size: int, rng: random.Random) -> List[ScoredItem]:
    """Round-robin across archetypes (each shuffled by rng) until size items are drawn."""
    groups: Dict[Archetype, List[ScoredItem]] = defaultdict(list)
    for item in items:
        groups[item.archetype].append(item)
    ordered = [groups[a] for a in Archetype if a in groups]
    for group in ordered:
        rng.shuffle(group)

    sample: List[ScoredItem] = []
    depth = 0
    while len(sample) < size and any(depth < len(g) for g in ordered):
        for group in ordered:
            if depth < len(group) and len(sample) < size:
                sample.append(group[depth])
        depth += 1
    return sample


def component_target(item: ScoredItem, component: str) -> float:
    """1.0 when the item is the kind of story this component should favour."""
    components = item.impact.components
    if component in ("recency", "authority"):
        actionable = item.archetype in ACTIONABLE_ARCHETYPES or item.impact_score >= ACTIONABLE_IMPACT
        return 1.0 if actionable else 0.0
    if component == "surface_reach":
        reach = item.cluster_impact.surface_reach if item.cluster_impact else components.surface_reach
        return 1.0 if reach >= REACH_TARGET else 0.0
    if component == "graph_novelty":
        return 1.0 if components.graph_novelty >= NOVELTY_TARGET else 0.0
    if component == "region_tie":
        return 1.0 if components.region_tie >= REGION_TARGET else 0.0
    if component == "momentum":
        return 1.0 if components.momentum >= MOMENTUM_TARGET else 0.0
    if component == "commerce_tie":
        return 1.0 if item.archetype in UPSIDE_ARCHETYPES else 0.0
    return 0.0


class Calibrator:
    """
    Bounded weight calibration against a WeightStore.

    Args:
        store: weight store read at the start and appended at the end
        rng: random source for sampling (inject a seeded Random in tests)
        sample_size / min_sample / alpha / max_delta / min_weight:
            override the settings defaults
    """

    def __init__(
        self,
        store: WeightStore,
        rng: Optional[random.Random] = None,
        sample_size: Optional[int] = None,
        min_sample: Optional[int] = None,
        alpha: Optional[float] = None,
        max_delta: Optional[float] = None,
        min_weight: Optional[float] = None,
    ):
        settings = get_settings()
        self.store = store
        self.rng = rng or random.Random()
        self.sample_size = sample_size or settings.calibration_sample_size
        self.min_sample = min_sample or settings.calibration_min_sample
        self.alpha = alpha if alpha is not None else settings.calibration_alpha
        self.max_delta = max_delta if max_delta is not None else settings.calibration_max_delta
        self.min_weight = min_weight if min_weight is not None else settings.calibration_min_weight

    def _persist(self, result: CalibrationResult) -> CalibrationResult:
        try:
            self.store.append(result.weights_after, result.history_entry)
        except StoreError as e:
            logger.warning(f"Calibration {result.batch_id}: weights not persisted ({e})")
            return result.model_copy(update={"persisted": False, "warning": f"calibration write failed: {e}"})
        return result.model_copy(update={"persisted": True})

    def run(
        self,
        shortlisted: List[ScoredItem],
        rejected: List[ScoredItem],
        batch_id: str,
        now: Optional[datetime] = None,
    ) -> CalibrationResult:
        """
        One calibration cycle.

        Returns:
            CalibrationResult; persistence failures are reported in
            result.warning instead of raising.
        """
        timestamp = to_iso(now or utc_now())
        before = self.store.current_weights().as_dict()
        positives = stratified_sample(shortlisted, self.sample_size, self.rng)
        negatives = stratified_sample(rejected, self.sample_size, self.rng)

        if len(positives) < self.min_sample or len(negatives) < self.min_sample:
            zeros = {key: 0.0 for key in COMPONENT_KEYS}
            entry = CalibrationHistoryEntry(
                batch_id=batch_id, timestamp=timestamp, deltas=zeros, weights=before, notes=SKIP_NOTE,
            )
            logger.info(
                f"Calibration {batch_id}: skipped ({len(positives)} shortlisted / "
                f"{len(negatives)} rejected, need {self.min_sample} each)"
            )
            return self._persist(CalibrationResult(
                batch_id=batch_id,
                sampled_shortlisted=len(positives),
                sampled_rejected=len(negatives),
                weights_before=before,
                weights_after=dict(before),
                deltas=zeros,
                reasons=[SKIP_REASON],
                history_entry=entry,
                skipped=True,
            ))

        deltas: Dict[str, float] = {}
        reasons: List[str] = []
        adjusted: Dict[str, float] = {}
        for key in COMPONENT_KEYS:
            pos_target = mean(component_target(i, key) for i in positives)
            pos_pred = mean(getattr(i.impact.components, key) for i in positives)
            neg_target = mean(component_target(i, key) for i in negatives)
            neg_pred = mean(getattr(i.impact.components, key) for i in negatives)

            blended = POSITIVE_SHARE * (pos_target - pos_pred) + NEGATIVE_SHARE * (neg_pred - neg_target)
            delta = clamp(blended * self.alpha, -self.max_delta, self.max_delta)
            deltas[key] = delta
            adjusted[key] = max(self.min_weight, before[key] + delta)
            if delta != 0 and abs(blended) >= MIN_REPORTED_GAP:
                reasons.append(f"{key}:gap={blended:.2f} -> adjusted {delta:+.3f}")

        after = ImpactWeights.resolve(adjusted).as_dict()
        if not reasons:
            reasons.append(NO_GAP_REASON)

        entry = CalibrationHistoryEntry(
            batch_id=batch_id, timestamp=timestamp, deltas=deltas, weights=after, notes="; ".join(reasons),
        )
        logger.info(
            f"Calibration {batch_id}: {len(positives)} shortlisted vs {len(negatives)} rejected | "
            + ", ".join(f"{k}={v:+.3f}" for k, v in deltas.items())
        )
        return self._persist(CalibrationResult(
            batch_id=batch_id,
            sampled_shortlisted=len(positives),
            sampled_rejected=len(negatives),
            weights_before=before,
            weights_after=after,
            deltas=deltas,
            reasons=reasons,
            history_entry=entry,
        ))
