"""
Impact weight loading and per-factor breakdowns.

Priority: explicit weights > weight store (calibrated) > packaged defaults.
The weight record also carries the decay/caps the scorer uses; values
missing from the record fall back to settings.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from newsrank.config import get_settings
from newsrank.schemas.scoring import COMPONENT_KEYS, ImpactComponents, ImpactWeights
from newsrank.storage.weights import WeightStore, default_record

logger = logging.getLogger(__name__)


@dataclass
class ScoringParameters:
    """Everything the impact scorer reads from the weight configuration."""
    weights: ImpactWeights = field(default_factory=ImpactWeights.resolve)
    version: int = 0
    recency_half_life_hours: float = 48.0
    momentum_window_hours: float = 18.0
    surface_reach_cap: int = 10


def load_scoring_parameters(
    store: Optional[WeightStore] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> ScoringParameters:
    """
    Resolve the weights and decay/caps for one run.

    Args:
        store: weight store; the packaged defaults are used when None
        overrides: explicit weight mapping (still resolved/normalized)
    """
    settings = get_settings()
    record = store.load() if store is not None else default_record()
    weights = ImpactWeights.resolve(overrides if overrides is not None else record.weights)

    params = ScoringParameters(
        weights=weights,
        version=record.version,
        recency_half_life_hours=float(
            record.decay.get("recency_half_life_hours", settings.recency_half_life_hours)
        ),
        momentum_window_hours=float(
            record.decay.get("momentum_window_hours", settings.momentum_window_hours)
        ),
        surface_reach_cap=int(record.caps.get("surface_reach_domains", settings.surface_reach_cap)),
    )
    logger.info(
        f"Impact weights v{params.version}: "
        + ", ".join(f"{k}={v:.3f}" for k, v in weights.as_dict().items())
    )
    return params


def factor_breakdown(components: ImpactComponents, weights: ImpactWeights) -> Dict[str, Dict[str, float]]:
    """{factor: {weight, raw, contribution}} so a score can be explained."""
    breakdown = {}
    for key in COMPONENT_KEYS:
        weight = getattr(weights, key)
        raw = getattr(components, key)
        breakdown[key] = {
            "weight": round(weight, 4),
            "raw": round(raw, 4),
            "contribution": round(weight * raw, 4),
        }
    return breakdown
