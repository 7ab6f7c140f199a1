"""
Loader for the externalized data tables shipped in newsrank/data/.

Keyword lists, domain scores, region-model coefficients and default weights
live in JSON so they can be tuned without touching code. Each table is read
once per process.
"""

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).resolve().parent.parent / "data"


@lru_cache(maxsize=None)
def load_table(name: str) -> Dict[str, Any]:
    """Load newsrank/data/{name}.json (cached)."""
    path = DATA_DIR / f"{name}.json"
    with open(path, "r", encoding="utf-8") as f:
        table = json.load(f)
    logger.debug(f"Loaded data table '{name}' ({len(table)} top-level keys)")
    return table
