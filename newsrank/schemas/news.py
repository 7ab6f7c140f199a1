"""
News item, classification, cluster and entity-graph data models.

These models represent the raw material of the engine: items handed over by
the ingestion collaborator, the classifier's view of them, the story clusters
they are grouped into, and the persisted co-occurrence graph records.

Hierarchy: NormalizedItem → ClassifiedItem → ScoredItem (scoring.py)
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from newsrank.shared.urls import canonicalize_url, get_domain, hash_id

from .base import Archetype, EntityType, SourceProvider


class EntityExtraction(BaseModel):
    """Organizations, products and normalized verbs mentioned by an item."""
    orgs: List[str] = Field(default_factory=list)
    products: List[str] = Field(default_factory=list)
    verbs: List[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.orgs and not self.products


class NormalizedItem(BaseModel):
    """
    A news item as produced by the (external) ingestion collaborator.

    Immutable once created. Identity is a deterministic hash of canonical URL
    + provider + timestamp, so re-ingesting the same story from the same
    provider always yields the same id.
    """
    # Core content
    title: str = ""
    description: str = ""
    url: str = ""
    canonical_url: str = ""

    # Source attribution
    source: str = ""
    domain: str = ""
    provider: SourceProvider = SourceProvider.OTHER
    language: Optional[str] = None
    country: Optional[str] = None
    authors: List[str] = Field(default_factory=list)

    # Temporal (raw string as delivered; parsing happens at scoring time)
    published_at: str = ""

    # Optional pre-extracted entities/verbs (otherwise extracted by the graph stage)
    entities: Optional[EntityExtraction] = None
    verbs: Optional[List[str]] = None

    id: str = ""

    @model_validator(mode='before')
    @classmethod
    def derive_identity(cls, data):
        """Fill canonical_url, domain and id from the raw URL when not supplied."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        url = data.get('url') or ''
        data['published_at'] = str(data.get('published_at') or '')
        data['canonical_url'] = canonicalize_url(data.get('canonical_url') or url)
        domain = str(data.get('domain') or '').strip().lower()
        data['domain'] = domain or (get_domain(url) if url else "unknown")
        if not data.get('id'):
            provider = data.get('provider') or SourceProvider.OTHER
            provider_str = provider.value if isinstance(provider, SourceProvider) else str(provider)
            data['id'] = hash_id(data['canonical_url'], provider_str, data['published_at'])
        return data

    def text(self) -> str:
        """Title + description, the corpus every text signal is computed on."""
        return f"{self.title} {self.description}".strip()

    class Config:
        frozen = True


class ClassificationSignals(BaseModel):
    """Per-item breakdown of how the archetype was decided."""
    lexicon: float = 0.0
    embedding: float = 0.0
    cluster_voting: float = 0.0


class ClassificationEvidence(BaseModel):
    """
    Classifier evidence for one item, kept on the cluster for consensus voting.

    scores maps every archetype to its hybrid score so peers can be compared
    on the same archetype.
    """
    archetype: Archetype
    lexicon_score: float = 0.0
    embedding_score: float = 0.0
    hybrid_score: float = 0.0
    confidence: float = 0.0
    scores: Dict[str, float] = Field(default_factory=dict)


class ClassifiedItem(NormalizedItem):
    """NormalizedItem + archetype label, confidence and cluster assignment."""
    archetype: Archetype = Archetype.OTHER
    confidence: float = Field(ge=0.0, le=1.0, default=0.0)
    signals: ClassificationSignals = Field(default_factory=ClassificationSignals)

    # Clustering (assigned by StoryClusterer, stable for the run)
    cluster_id: Optional[str] = None
    cluster_size: int = 1

    class Config:
        frozen = False
        validate_assignment = False


class ClusterContext(BaseModel):
    """
    A story cluster: items corroborating the same story across sources.

    Created when an item fails to match any existing cluster; mutated by
    merging in new items; rebuilt from scratch every run.
    """
    id: str
    items: List[ClassifiedItem] = Field(default_factory=list)
    window_start: Optional[str] = None
    window_end: Optional[str] = None
    domain_counts: Dict[str, int] = Field(default_factory=dict)
    representative_id: Optional[str] = None
    evidence: Dict[str, ClassificationEvidence] = Field(default_factory=dict)

    @property
    def size(self) -> int:
        return len(self.items)


class EntityNode(BaseModel):
    """Co-occurrence graph node (persisted under graph:node:{id})."""
    id: str
    label: str
    type: EntityType = EntityType.ORG
    degree: int = 0
    last_seen: float = 0.0  # epoch seconds


class EntityEdge(BaseModel):
    """Co-occurrence graph edge (persisted under graph:edge:{source}:{target}:{bucket})."""
    id: str
    source: str
    target: str
    verb_bucket: str
    count: int = 0
    last_seen: float = 0.0  # epoch seconds


class GraphUpdateResult(BaseModel):
    """Snapshot of the nodes/edges touched by one batch + per-item novelty."""
    nodes: Dict[str, EntityNode] = Field(default_factory=dict)
    edges: Dict[str, EntityEdge] = Field(default_factory=dict)
    item_novelty: Dict[str, bool] = Field(default_factory=dict)
    extractions: Dict[str, EntityExtraction] = Field(default_factory=dict)

    @property
    def novelty_hits(self) -> int:
        return sum(1 for novel in self.item_novelty.values() if novel)
