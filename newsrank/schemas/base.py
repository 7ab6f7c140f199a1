"""
Common enums used across the entire engine.

These define the vocabulary of the system: where items come from, which
business-event archetype they belong to, which topic bucket they fill in the
shortlist, and how urgent a shortlisted story is.
"""

from enum import Enum


# ══════════════════════════════════════════════════════════════════════════════
# ENUMS - Classification Types
# ══════════════════════════════════════════════════════════════════════════════

class SourceProvider(str, Enum):
    """Feed adapter that produced an item."""
    NEWSAPI = "newsapi"
    GDELT = "gdelt"
    GOOGLE_RSS = "google-rss"
    REGISTRY = "registry"
    OTHER = "other"


class Archetype(str, Enum):
    """
    Closed business-event taxonomy.

    TREND collects market commentary and wraps; OTHER is the low-confidence
    residual bucket (best hybrid score under the classifier floor).
    """
    LAUNCH = "LAUNCH"
    PARTNERSHIP = "PARTNERSHIP"
    POLICY = "POLICY"
    COMMERCE = "COMMERCE"
    TREND = "TREND"
    OTHER = "OTHER"


class Topic(str, Enum):
    """Shortlist topic buckets used for quota allocation."""
    REGULATION = "regulation"
    PRODUCT = "product"
    AI = "ai"
    OTHER = "other"


class UrgencyTag(str, Enum):
    """Urgency marker handed to narrative composition."""
    ACT_NOW = "act_now"      # ⚡
    BLOCKER = "blocker"      # 🛑
    CONTEXT = "context"      # 🧩


class EntityType(str, Enum):
    """Node types in the co-occurrence graph."""
    ORG = "ORG"
    PRODUCT = "PRODUCT"


# Ordered topic keys for score/quota dicts (tie-breaks iterate in this order)
TOPIC_ORDER = [t.value for t in (Topic.REGULATION, Topic.PRODUCT, Topic.AI, Topic.OTHER)]

# Archetypes that count as directly actionable / commercial upside
ACTIONABLE_ARCHETYPES = frozenset({Archetype.POLICY, Archetype.COMMERCE})
UPSIDE_ARCHETYPES = frozenset({Archetype.LAUNCH, Archetype.PARTNERSHIP, Archetype.COMMERCE})
