"""
Layer 1: item understanding.

Modules:
- entity_extractor: spaCy NER org/product extraction + verb buckets
- entity_graph: persistent co-occurrence graph + novelty verdicts
- event_classifier: hybrid lexicon/hashed-embedding archetype classifier
- clustering: greedy story clustering
- dedup: TF-IDF + SimHash topic dedup
"""

from newsrank.news.entity_extractor import EntityExtractor, extract_entities
from newsrank.news.entity_graph import NoveltyGraph
from newsrank.news.event_classifier import HybridEventClassifier
from newsrank.news.clustering import StoryClusterer, build_profile, similarity
from newsrank.news.dedup import TopicDeduplicator
