"""
newsrank: news relevance engine.

Deduplicates and clusters near-identical stories, classifies them into
business-event archetypes, scores their impact, reranks for topical
diversity under per-topic quotas and self-calibrates its weights.
"""

import logging

__version__ = "0.1.0"


def configure_logging(level: int = logging.INFO) -> None:
    """Root logging in the engine's standard format."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
