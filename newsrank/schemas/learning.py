"""
Calibration, weight-configuration and run-log data models.

CalibrationHistoryEntry records are append-only: the weight store keeps the
last N of them and never rewrites an existing entry.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class CalibrationHistoryEntry(BaseModel):
    """One calibration cycle: deltas applied, resulting weights, rationale."""
    batch_id: str
    timestamp: str
    deltas: Dict[str, float] = Field(default_factory=dict)
    weights: Dict[str, float] = Field(default_factory=dict)
    notes: str = ""

    class Config:
        frozen = True


class CalibrationResult(BaseModel):
    """Outcome of one calibration run, including the skip path."""
    batch_id: str
    sampled_shortlisted: int = 0
    sampled_rejected: int = 0
    weights_before: Dict[str, float] = Field(default_factory=dict)
    weights_after: Dict[str, float] = Field(default_factory=dict)
    deltas: Dict[str, float] = Field(default_factory=dict)
    reasons: List[str] = Field(default_factory=list)
    history_entry: CalibrationHistoryEntry
    skipped: bool = False
    persisted: bool = False
    warning: Optional[str] = None


class WeightRecord(BaseModel):
    """Versioned weight configuration as persisted by the weight store."""
    version: int = 0
    updated_at: str = ""
    weights: Dict[str, float] = Field(default_factory=dict)
    decay: Dict[str, float] = Field(default_factory=dict)
    caps: Dict[str, float] = Field(default_factory=dict)
    history: List[CalibrationHistoryEntry] = Field(default_factory=list)


class RunCounts(BaseModel):
    scanned: int = 0
    classified: int = 0
    clusters: int = 0
    shortlisted: int = 0
    impact_qualified: int = 0
    novelty_hits: int = 0
    provider_counts: Dict[str, int] = Field(default_factory=dict)


class ImpactMetrics(BaseModel):
    average: float = 0.0
    std_dev: float = 0.0
    median_surface_reach: float = 0.0
    percent_other: float = 0.0
    top_classes: List[Dict[str, Any]] = Field(default_factory=list)


class RunLogEntry(BaseModel):
    """Per-run telemetry record appended to the run history."""
    batch_id: str
    timestamp: str
    counts: RunCounts = Field(default_factory=RunCounts)
    impact_metrics: ImpactMetrics = Field(default_factory=ImpactMetrics)
    calibration: Optional[Dict[str, Any]] = None
    alerts: List[str] = Field(default_factory=list)
    tasks: List[str] = Field(default_factory=list)
    region_floor: float = 0.6
    region_count: int = 0


class RunHistory(BaseModel):
    """Persisted run history plus the adaptive region-floor state."""
    runs: List[RunLogEntry] = Field(default_factory=list)
    region_floor: float = 0.6
    region_shortfall_count: int = 0
