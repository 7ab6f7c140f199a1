"""
Schemas package: all data models for the newsrank engine.

Models are organized by domain in submodules:
  - base.py: enums and archetype/topic vocabularies
  - news.py: NormalizedItem, ClassifiedItem, ClusterContext, graph records
  - scoring.py: ImpactComponents, ImpactWeights, ScoredItem, ShortlistedCandidate
  - learning.py: calibration history, weight record, run log
"""

# base.py: enums
from newsrank.schemas.base import (
    SourceProvider, Archetype, Topic, UrgencyTag, EntityType,
    TOPIC_ORDER, ACTIONABLE_ARCHETYPES, UPSIDE_ARCHETYPES,
)

# news.py: item, cluster and graph models
from newsrank.schemas.news import (
    EntityExtraction, NormalizedItem, ClassificationSignals, ClassificationEvidence,
    ClassifiedItem, ClusterContext, EntityNode, EntityEdge, GraphUpdateResult,
)

# scoring.py: impact and shortlist models
from newsrank.schemas.scoring import (
    COMPONENT_KEYS, ClusterImpactSummary, ImpactComponents, ImpactWeights,
    ImpactScore, ScoredItem, RankedCandidate, ShortlistedCandidate,
)

# learning.py: calibration and telemetry models
from newsrank.schemas.learning import (
    CalibrationHistoryEntry, CalibrationResult, WeightRecord,
    RunCounts, ImpactMetrics, RunLogEntry, RunHistory,
)
