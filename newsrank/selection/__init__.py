"""
Layer 3: reranking and shortlist selection.

Modules:
- tuning.py: topic mix and shortlist size
- rerank.py: cluster heads + MMR
- topics.py: topic scores and quotas
- selector.py: ShortlistSelector
"""

from .tuning import SelectionTuning, parse_tuning
from .rerank import mmr_rerank, select_heads
from .topics import apply_topic_quotas, compute_topic_quotas, compute_topic_scores
from .selector import ShortlistSelector
