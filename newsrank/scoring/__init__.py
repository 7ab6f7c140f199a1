"""
Layer 2: impact scoring.

Modules:
- cluster_signals.py: surface reach, velocity, trusted-domain lookups
- region.py: regional relevance model + keyword heuristic
- weights.py: weight/decay loading and factor breakdowns
- impact.py: ImpactScorer (seven-component composite)
"""

from .cluster_signals import compute_cluster_signals, trusted_domain_score
from .region import RegionModel, region_relevance_score, regulator_signal_score
from .weights import ScoringParameters, load_scoring_parameters
from .impact import ImpactScorer, rescore
