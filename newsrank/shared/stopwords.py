"""
Consolidated stopword sets: single source for token filtering.

Used by:
  - newsrank.news.dedup (topic-vector stopwords)
  - newsrank.news.entity_extractor (edge words trimmed from entity spans)
  - newsrank.selection.selector (signal keyword stop-list)
"""
from __future__ import annotations

# Topic-dedup stopwords: function words plus newsroom boilerplate that never
# discriminates one story from another.
COMMON_STOPWORDS = frozenset({
    "a", "an", "and", "are", "as", "at", "be", "because", "been", "before",
    "being", "between", "but", "by", "can", "could", "did", "do", "does",
    "done", "during", "each", "for", "from", "has", "have", "having", "he",
    "her", "here", "him", "his", "how", "i", "if", "in", "into", "is", "it",
    "its", "just", "like", "made", "make", "many", "may", "might", "much",
    "must", "no", "not", "now", "of", "on", "once", "one", "only", "or",
    "other", "our", "out", "over", "said", "say", "says", "should", "so",
    "some", "such", "than", "that", "the", "their", "them", "then", "there",
    "these", "they", "this", "those", "through", "to", "under", "until", "up",
    "was", "were", "what", "when", "where", "which", "while", "who", "will",
    "with", "within", "without", "would", "you", "your",
    # newsroom boilerplate
    "news", "latest", "live", "update", "updates", "report", "reports",
    "article", "coverage", "analysis", "breaking", "today", "tonight",
    "morning", "evening", "watch", "video", "page", "full", "joins", "round",
    "press", "wire", "new", "india",
})

# Signal keyword stop-list: tokens too generic to hand to narrative composition.
SIGNAL_STOPWORDS = frozenset({
    "india", "indian", "update", "policy", "report", "launch", "new", "latest",
})

# Words trimmed from the edges of entity spans ("the Reserve Bank" → "Reserve Bank").
ENTITY_STOP = frozenset({
    "the", "a", "an", "and", "for", "its", "new", "all", "has", "was", "are",
    "to", "of", "in", "on", "at", "by", "as", "is", "it", "be", "or", "after",
    "before", "under", "about", "ahead", "during", "against", "says",
    "not", "but", "from", "with", "will", "been", "have", "this", "that",
    "said", "over", "more", "than", "also", "into", "amid", "who", "how",
    "why", "what", "when", "where", "may", "can", "now", "per", "via",
    "today", "yesterday", "tomorrow", "breaking", "live", "update", "updates", "report", "watch",
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday",
    "sunday", "january", "february", "march", "april", "june", "july",
    "august", "september", "october", "november", "december",
})
