"""
Entity co-occurrence graph with a novelty verdict per item.

APPROACH:
  Every item contributes its organizations and products as nodes. All
  unordered node pairs get an edge per verb bucket ("Acme + Globex + partner"
  is a different relationship from "Acme + Globex + acquire"). The graph lives
  in a key-value store so it persists across runs:

    graph:node:{id}                       → EntityNode JSON
    graph:edge:{source}:{target}:{bucket} → EntityEdge JSON  (source < target)

  An item is NOVEL when at least one of its pair × bucket edges was never
  seen before, or was last seen longer ago than the novelty window (30 days).
  Items with no entities, or a single entity (no pairs), are not novel.

  Store failures never abort a run: a failed read counts as "absent" for the
  running counts but is not evidence of novelty, and a failed write is
  logged and skipped.
"""

import logging
import re
import time
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from newsrank.config import get_settings
from newsrank.schemas.base import EntityType
from newsrank.schemas.news import (
    EntityEdge,
    EntityExtraction,
    EntityNode,
    GraphUpdateResult,
    NormalizedItem,
)
from newsrank.shared.urls import hash_id
from newsrank.storage.kv import KeyValueStore

from .entity_extractor import EntityExtractor, get_extractor

logger = logging.getLogger(__name__)

DEFAULT_VERB_BUCKET = "observe"

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def normalize_entity(label: str) -> str:
    return _NON_ALNUM.sub(" ", label.lower()).strip()


def node_key(node_id: str) -> str:
    return f"graph:node:{node_id}"


def edge_key(source: str, target: str, bucket: str) -> str:
    return f"graph:edge:{source}:{target}:{bucket}"


def _parse(model, raw: Optional[str]):
    """Stored JSON → model; corrupt records read as absent."""
    if not raw:
        return None
    try:
        return model.model_validate_json(raw)
    except ValueError as e:
        logger.warning(f"Discarding corrupt graph record: {e}")
        return None


def _epoch(now) -> float:
    if isinstance(now, datetime):
        return now.timestamp()
    return float(now)


class NoveltyGraph:
    """
    Persistent entity co-occurrence graph backed by a KeyValueStore.

    Args:
        kv: storage backend (InMemoryKeyValueStore in tests, SqlKeyValueStore in production)
        novelty_window_days: an edge seen within this window is not novel
        edge_ttl_days: TTL written with every node/edge record
        verb_bucket_limit: max verb buckets per item
        clock: epoch-seconds clock used when update() gets no explicit now
        extractor: spaCy entity extractor for items without pre-extracted entities
    """

    def __init__(
        self,
        kv: KeyValueStore,
        novelty_window_days: Optional[float] = None,
        edge_ttl_days: Optional[int] = None,
        verb_bucket_limit: Optional[int] = None,
        clock: Optional[Callable[[], float]] = None,
        extractor: Optional[EntityExtractor] = None,
    ):
        settings = get_settings()
        self.kv = kv
        window_days = novelty_window_days if novelty_window_days is not None else settings.novelty_window_days
        ttl_days = edge_ttl_days if edge_ttl_days is not None else settings.graph_edge_ttl_days
        self.window_seconds = window_days * 86400
        self.ttl_seconds = int(ttl_days * 86400)
        self.verb_bucket_limit = verb_bucket_limit or settings.graph_verb_bucket_limit
        self._clock = clock or time.time
        self._extractor = extractor

    @property
    def extractor(self) -> EntityExtractor:
        if self._extractor is None:
            self._extractor = get_extractor()
        return self._extractor

    # ── store access (never raises) ──────────────────────────────────────────

    def _read(self, key: str) -> Tuple[Optional[str], bool]:
        """(raw value or None, ok). ok=False means the read itself failed."""
        try:
            return self.kv.get(key), True
        except Exception as e:
            logger.warning(f"Novelty graph read failed for {key}: {e}")
            return None, False

    def _write(self, key: str, value: str) -> None:
        try:
            self.kv.put(key, value, self.ttl_seconds)
        except Exception as e:
            logger.warning(f"Novelty graph write failed for {key}: {e}")

    # ── graph building ───────────────────────────────────────────────────────

    def _extractions_for(self, items: List[NormalizedItem]) -> List[EntityExtraction]:
        """Pre-extracted entities as-is; everything else in one spaCy batch."""
        pending = [i for i, item in enumerate(items) if item.entities is None]
        parsed = self.extractor.extract_batch([items[i].text() for i in pending]) if pending else []
        extracted = dict(zip(pending, parsed))

        extractions = []
        for i, item in enumerate(items):
            if item.entities is not None:
                verbs = item.verbs if item.verbs is not None else item.entities.verbs
                extraction = EntityExtraction(
                    orgs=list(item.entities.orgs),
                    products=list(item.entities.products),
                    verbs=list(verbs),
                )
            else:
                extraction = extracted[i]
                if item.verbs is not None:
                    extraction = extraction.model_copy(update={"verbs": list(item.verbs)})
            extractions.append(extraction)
        return extractions

    @staticmethod
    def _nodes_for(extraction: EntityExtraction) -> Dict[str, Tuple[str, EntityType]]:
        """node id → (label, type). Products never shadow an org with the same name."""
        nodes: Dict[str, Tuple[str, EntityType]] = {}
        org_names = set()
        for label in extraction.orgs:
            norm = normalize_entity(label)
            if norm:
                org_names.add(norm)
                nodes[hash_id("org", norm)] = (label, EntityType.ORG)
        for label in extraction.products:
            norm = normalize_entity(label)
            if norm and norm not in org_names:
                nodes[hash_id("product", norm)] = (label, EntityType.PRODUCT)
        return nodes

    def _verb_buckets(self, verbs: Iterable[str]) -> List[str]:
        buckets: List[str] = []
        for verb in verbs:
            bucket = (verb or "").strip().lower()
            if bucket and bucket not in buckets:
                buckets.append(bucket)
            if len(buckets) >= self.verb_bucket_limit:
                break
        return buckets or [DEFAULT_VERB_BUCKET]

    def update(self, items: List[NormalizedItem], now=None) -> GraphUpdateResult:
        """
        Fold a batch of items into the graph and decide novelty per item.

        Args:
            items: normalized items (pre-extracted entities are used as-is)
            now: datetime or epoch seconds; defaults to the injected clock

        Returns:
            GraphUpdateResult with the touched nodes/edges, per-item novelty
            and the entity extraction used for each item.
        """
        now_ts = _epoch(now) if now is not None else self._clock()
        result = GraphUpdateResult()

        for item, extraction in zip(items, self._extractions_for(items)):
            result.extractions[item.id] = extraction

            nodes = self._nodes_for(extraction)
            if not nodes:
                result.item_novelty[item.id] = False
                continue

            # Nodes: degree grows by the number of co-mentioned entities
            extra_degree = max(0, len(nodes) - 1)
            for node_id, (label, entity_type) in nodes.items():
                raw, _ = self._read(node_key(node_id))
                existing = _parse(EntityNode, raw)
                node = EntityNode(
                    id=node_id,
                    label=label,
                    type=entity_type,
                    degree=(existing.degree if existing else 0) + extra_degree,
                    last_seen=now_ts,
                )
                self._write(node_key(node_id), node.model_dump_json())
                result.nodes[node_id] = node

            # Edges: every unordered pair × verb bucket
            novel = False
            node_ids = sorted(nodes)
            buckets = self._verb_buckets(extraction.verbs)
            for i in range(len(node_ids)):
                for j in range(i + 1, len(node_ids)):
                    source, target = node_ids[i], node_ids[j]
                    for bucket in buckets:
                        key = edge_key(source, target, bucket)
                        raw, ok = self._read(key)
                        existing = _parse(EntityEdge, raw)
                        if existing is None:
                            if ok:
                                novel = True
                        elif now_ts - existing.last_seen > self.window_seconds:
                            novel = True
                        edge = EntityEdge(
                            id=hash_id(source, target, bucket),
                            source=source,
                            target=target,
                            verb_bucket=bucket,
                            count=(existing.count if existing else 0) + 1,
                            last_seen=now_ts,
                        )
                        self._write(key, edge.model_dump_json())
                        result.edges[edge.id] = edge

            result.item_novelty[item.id] = novel
            logger.debug(f"Item {item.id}: {len(nodes)} entities, buckets={buckets}, novel={novel}")

        logger.info(
            f"Novelty graph: {len(items)} items, {len(result.nodes)} nodes, "
            f"{len(result.edges)} edges touched, {result.novelty_hits} novel"
        )
        return result
