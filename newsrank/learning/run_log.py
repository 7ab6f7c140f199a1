"""
Per-run telemetry with self-monitoring alerts.

Each run appends a RunLogEntry (counts, impact distribution, calibration
summary) to a bounded JSON history and raises alerts/tasks when:
  - more than 25% of scanned items fell into OTHER → "expand taxonomy seeds"
  - the median surface reach dropped below 75% of the trailing 7-run
    median → "source expansion check"
  - fewer than 3 shortlisted items cleared the region floor two runs in a
    row → the floor is relaxed by 0.05 (never below 0.3) and
    "review regional corpus freshness"
"""

import json
import logging
import math
from collections import Counter
from datetime import datetime
from pathlib import Path
from statistics import median
from typing import List, Optional, Union

from pydantic import ValidationError

from newsrank.config import get_settings
from newsrank.schemas.base import Archetype
from newsrank.schemas.learning import (
    CalibrationResult,
    ImpactMetrics,
    RunCounts,
    RunHistory,
    RunLogEntry,
)
from newsrank.schemas.news import ClassifiedItem
from newsrank.schemas.scoring import ShortlistedCandidate
from newsrank.shared.timeutil import to_iso, utc_now

logger = logging.getLogger(__name__)

OTHER_ALERT_SHARE = 0.25
REACH_DROP_RATIO = 0.75
REACH_TRAILING_RUNS = 7
REGION_MIN_COUNT = 3
REGION_SHORTFALL_RUNS = 2
REGION_FLOOR_STEP = 0.05
REGION_FLOOR_MIN = 0.3

TASK_TAXONOMY = "expand taxonomy seeds"
TASK_SOURCES = "source expansion check"
TASK_REGION = "review regional corpus freshness"


class RunLogger:
    """
    Bounded run-history writer.

    Args:
        path: history JSON file (settings.run_history_path)
        limit: runs kept (settings.run_history_limit, 200)
        region_floor_default: starting region floor (0.6)
    """

    def __init__(
        self,
        path: Optional[Union[str, Path]] = None,
        limit: Optional[int] = None,
        region_floor_default: Optional[float] = None,
    ):
        settings = get_settings()
        self.path = Path(path or settings.run_history_path)
        self.limit = limit or settings.run_history_limit
        self.region_floor_default = (
            region_floor_default if region_floor_default is not None else settings.region_floor_default
        )

    def load(self) -> RunHistory:
        if not self.path.exists():
            return RunHistory(region_floor=self.region_floor_default)
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return RunHistory(**json.load(f))
        except (OSError, ValueError, ValidationError) as e:
            logger.warning(f"Run log: unreadable {self.path} ({e}), starting a fresh history")
            return RunHistory(region_floor=self.region_floor_default)

    def save(self, history: RunHistory) -> bool:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(history.model_dump(), f, indent=2)
            return True
        except OSError as e:
            logger.warning(f"Run log: failed to write {self.path}: {e}")
            return False

    def log_run(
        self,
        batch_id: str,
        classified: List[ClassifiedItem],
        shortlist: List[ShortlistedCandidate],
        counts: Optional[RunCounts] = None,
        calibration: Optional[CalibrationResult] = None,
        now: Optional[datetime] = None,
    ) -> RunLogEntry:
        """Compute metrics and alerts for one run and append it to the history."""
        history = self.load()
        counts = counts or RunCounts(scanned=len(classified), classified=len(classified))
        counts = counts.model_copy(update={"shortlisted": len(shortlist)})
        alerts: List[str] = []
        tasks: List[str] = []

        # Impact distribution over the shortlist
        impacts = [c.item.impact_score for c in shortlist]
        avg = sum(impacts) / len(impacts) if impacts else 0.0
        std = math.sqrt(sum((x - avg) ** 2 for x in impacts) / len(impacts)) if impacts else 0.0
        reaches = [
            c.item.cluster_impact.surface_reach if c.item.cluster_impact else c.item.impact.components.surface_reach
            for c in shortlist
        ]
        median_reach = median(reaches) if reaches else 0.0

        distribution = Counter(item.archetype.value for item in classified)
        scanned = counts.scanned or len(classified)
        percent_other = distribution.get(Archetype.OTHER.value, 0) / scanned if scanned else 0.0
        if percent_other > OTHER_ALERT_SHARE:
            alerts.append(f"%OTHER above threshold at {percent_other * 100:.1f}%")
            tasks.append(TASK_TAXONOMY)

        trailing = [run.impact_metrics.median_surface_reach for run in history.runs[-REACH_TRAILING_RUNS:]]
        if trailing:
            previous = median(trailing)
            if median_reach < previous * REACH_DROP_RATIO:
                alerts.append(
                    f"Median surface reach dropped to {median_reach:.2f} "
                    f"(trailing median {previous:.2f})"
                )
                tasks.append(TASK_SOURCES)

        # Adaptive region floor
        floor = history.region_floor
        region_count = sum(1 for c in shortlist if c.item.impact.components.region_tie >= floor)
        shortfall = history.region_shortfall_count
        if region_count < REGION_MIN_COUNT:
            shortfall += 1
            if shortfall >= REGION_SHORTFALL_RUNS:
                relaxed = max(REGION_FLOOR_MIN, round(floor - REGION_FLOOR_STEP, 2))
                alerts.append(
                    f"Only {region_count} regional items above floor {floor:.2f} for "
                    f"{shortfall} runs; floor relaxed to {relaxed:.2f}"
                )
                tasks.append(TASK_REGION)
                floor = relaxed
                shortfall = 0
        else:
            shortfall = 0

        entry = RunLogEntry(
            batch_id=batch_id,
            timestamp=to_iso(now or utc_now()),
            counts=counts,
            impact_metrics=ImpactMetrics(
                average=avg,
                std_dev=std,
                median_surface_reach=median_reach,
                percent_other=percent_other,
                top_classes=[
                    {"archetype": name, "count": count}
                    for name, count in distribution.most_common(3)
                ],
            ),
            calibration=calibration.model_dump(exclude={"history_entry"}) if calibration else None,
            alerts=alerts,
            tasks=tasks,
            region_floor=floor,
            region_count=region_count,
        )

        history = history.model_copy(update={
            "runs": (list(history.runs) + [entry])[-self.limit:],
            "region_floor": floor,
            "region_shortfall_count": shortfall,
        })
        self.save(history)

        for alert in alerts:
            logger.warning(f"Run {batch_id}: {alert}")
        logger.info(
            f"Run {batch_id}: scanned={counts.scanned}, shortlisted={len(shortlist)}, "
            f"avg_impact={avg:.3f}, median_reach={median_reach:.2f}, other={percent_other * 100:.0f}%"
        )
        return entry
