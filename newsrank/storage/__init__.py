"""
Persistence seams for the engine.

- kv.py: key-value novelty store (in-memory and SQLAlchemy backends)
- weights.py: versioned impact-weight configuration (JSON file)
"""

from newsrank.storage.kv import (
    KeyValueStore, InMemoryKeyValueStore, SqlKeyValueStore, StoreError,
)
from newsrank.storage.weights import WeightStore
