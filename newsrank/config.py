"""
Configuration management for the newsrank relevance engine.

Every tunable constant of the ranking core is exposed here so it can be
overridden from the environment (or a .env file) without code changes.
Components take explicit arguments first and fall back to these settings.
"""

from functools import lru_cache
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ── Novelty Graph ──
    # spaCy pipeline used for ORG/PRODUCT recognition (python -m spacy download <name>)
    spacy_model: str = Field(default="en_core_web_sm", alias="SPACY_MODEL")
    # An entity pair + verb bucket seen within this window is "not novel".
    novelty_window_days: float = Field(default=30.0, alias="NOVELTY_WINDOW_DAYS")
    # Node/edge records expire from the key-value store after this many days.
    graph_edge_ttl_days: int = Field(default=90, alias="GRAPH_EDGE_TTL_DAYS")
    graph_verb_bucket_limit: int = Field(default=5, alias="GRAPH_VERB_BUCKET_LIMIT")
    kv_database_url: str = Field(default="sqlite:///./data/novelty_graph.db", alias="KV_DATABASE_URL")

    # ── Event Classifier ──
    # Best hybrid score below this floor → OTHER
    classifier_floor: float = Field(default=0.25, alias="CLASSIFIER_FLOOR")
    classifier_vector_dim: int = Field(default=256, alias="CLASSIFIER_VECTOR_DIM")
    # Cluster consensus: peer average must beat the item's own score by this margin,
    # and items at or above the ceiling are never overridden.
    consensus_margin: float = Field(default=0.05, alias="CONSENSUS_MARGIN")
    consensus_confidence_ceiling: float = Field(default=0.85, alias="CONSENSUS_CONFIDENCE_CEILING")

    # ── Story Clustering ──
    story_similarity_threshold: float = Field(default=0.68, alias="STORY_SIMILARITY_THRESHOLD")

    # ── Impact Scorer ──
    recency_half_life_hours: float = Field(default=48.0, alias="RECENCY_HALF_LIFE_HOURS")
    surface_reach_cap: int = Field(default=10, alias="SURFACE_REACH_CAP")
    surface_reach_window_hours: float = Field(default=72.0, alias="SURFACE_REACH_WINDOW_HOURS")
    momentum_window_hours: float = Field(default=18.0, alias="MOMENTUM_WINDOW_HOURS")
    momentum_floor: float = Field(default=0.05, alias="MOMENTUM_FLOOR")

    # ── Reranker & Selector ──
    # Topic-weight fractions (JSON string, override via env). Relative values;
    # normalized to percentages at resolve time.
    topic_weights: str = Field(
        default='{"regulation":0,"product":0,"ai":90,"other":10}',
        alias="TOPIC_WEIGHTS",
    )
    max_shortlist: int = Field(default=10, alias="MAX_SHORTLIST")
    mmr_lambda: float = Field(default=0.7, alias="MMR_LAMBDA")
    impact_floor: float = Field(default=0.55, alias="IMPACT_FLOOR")
    supported_languages: str = Field(
        default="en,en-us,en-gb,hi,en-in,en_in",
        alias="SUPPORTED_LANGUAGES",
    )

    # ── Calibration Loop ──
    calibration_enabled: bool = Field(default=True, alias="CALIBRATION_ENABLED")
    calibration_sample_size: int = Field(default=20, alias="CALIBRATION_SAMPLE_SIZE")
    calibration_min_sample: int = Field(default=5, alias="CALIBRATION_MIN_SAMPLE")
    calibration_alpha: float = Field(default=0.1, alias="CALIBRATION_ALPHA")
    calibration_max_delta: float = Field(default=0.03, alias="CALIBRATION_MAX_DELTA")
    calibration_min_weight: float = Field(default=0.01, alias="CALIBRATION_MIN_WEIGHT")
    calibration_history_limit: int = Field(default=50, alias="CALIBRATION_HISTORY_LIMIT")
    weights_path: str = Field(default="./data/impact_weights.json", alias="WEIGHTS_PATH")

    # ── Run Log ──
    run_history_path: str = Field(default="./data/run_history.json", alias="RUN_HISTORY_PATH")
    run_history_limit: int = Field(default=200, alias="RUN_HISTORY_LIMIT")
    region_floor_default: float = Field(default=0.6, alias="REGION_FLOOR_DEFAULT")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    def get_supported_languages(self) -> set:
        """Parsed language allow-list (lower-cased)."""
        return {
            lang.strip().lower()
            for lang in self.supported_languages.split(",")
            if lang.strip()
        }


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
