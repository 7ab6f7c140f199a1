"""
Weight-configuration store: versioned impact weights persisted as JSON.

The record carries {version, updated_at, weights, decay, caps, history[]}.
A run reads the current weights at start and, when calibration is enabled,
appends one history entry at the end. Single writer assumed: two concurrent
calibrations both read version N and the later write wins.
"""

import json
import logging
from pathlib import Path
from typing import Dict, Optional, Union

from pydantic import ValidationError

from newsrank.config import get_settings
from newsrank.schemas.learning import CalibrationHistoryEntry, WeightRecord
from newsrank.schemas.scoring import ImpactWeights
from newsrank.shared.tables import load_table

from .kv import StoreError

logger = logging.getLogger(__name__)


def default_record() -> WeightRecord:
    """Packaged default configuration (newsrank/data/impact_weights.json)."""
    return WeightRecord(**load_table("impact_weights"))


class WeightStore:
    """JSON-file weight store with bounded calibration history."""

    def __init__(
        self,
        path: Optional[Union[str, Path]] = None,
        history_limit: Optional[int] = None,
    ):
        settings = get_settings()
        self.path = Path(path or settings.weights_path)
        self.history_limit = history_limit or settings.calibration_history_limit

    def load(self) -> WeightRecord:
        """Current record; packaged defaults when the file is missing or unreadable."""
        if not self.path.exists():
            return default_record()
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return WeightRecord(**json.load(f))
        except (OSError, ValueError, ValidationError) as e:
            logger.warning(f"Weight store: unreadable {self.path} ({e}), using packaged defaults")
            return default_record()

    def current_weights(self) -> ImpactWeights:
        return ImpactWeights.resolve(self.load().weights)

    def save(self, record: WeightRecord) -> None:
        """Write the record. Raises StoreError on any filesystem failure."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(self.path.suffix + ".tmp")
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(record.model_dump(), f, indent=2)
            tmp.replace(self.path)
        except OSError as e:
            raise StoreError(f"failed to persist weights to {self.path}: {e}") from e

    def append(self, weights: Dict[str, float], entry: CalibrationHistoryEntry) -> WeightRecord:
        """Bump version, replace weights and append entry (history bounded)."""
        record = self.load()
        history = list(record.history) + [entry]
        updated = record.model_copy(update={
            "version": record.version + 1,
            "updated_at": entry.timestamp,
            "weights": dict(weights),
            "history": history[-self.history_limit:],
        })
        self.save(updated)
        logger.info(
            f"Weight store: v{updated.version} saved to {self.path} "
            f"({len(updated.history)} history entries)"
        )
        return updated
