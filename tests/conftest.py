"""Shared fixtures: a frozen clock, in-memory stores and item factories."""

from datetime import datetime, timedelta, timezone

import pytest

import spacy

from newsrank.news.entity_extractor import EntityExtractor
from newsrank.schemas import ClassifiedItem, NormalizedItem, ScoredItem
from newsrank.storage import InMemoryKeyValueStore, WeightStore
from newsrank.learning import RunLogger

NOW = datetime(2025, 6, 2, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Epoch-seconds clock that only moves when told to."""

    def __init__(self, start: datetime = NOW):
        self.current = start.timestamp()

    def __call__(self) -> float:
        return self.current

    def advance(self, **delta) -> None:
        self.current += timedelta(**delta).total_seconds()


def _iso(hours_ago: float) -> str:
    return (NOW - timedelta(hours=hours_ago)).isoformat().replace("+00:00", "Z")


def build_item(
    cls=NormalizedItem,
    title: str = "",
    description: str = "",
    url: str = "",
    domain: str = "",
    hours_ago: float = 1.0,
    provider: str = "newsapi",
    language: str = "en",
    source: str = "",
    **extra,
):
    if not url and title:
        slug = "-".join(title.lower().split())[:60]
        url = f"https://{domain or 'example.com'}/news/{slug}"
    data = {
        "title": title,
        "description": description,
        "url": url,
        "domain": domain,
        "published_at": _iso(hours_ago) if hours_ago is not None else "",
        "provider": provider,
        "language": language,
        "source": source,
    }
    data.update(extra)
    return cls(**data)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def kv(clock):
    return InMemoryKeyValueStore(clock=clock)


@pytest.fixture
def weight_store(tmp_path):
    return WeightStore(path=tmp_path / "weights.json", history_limit=5)


@pytest.fixture
def run_logger(tmp_path):
    return RunLogger(path=tmp_path / "runs.json", limit=20)


@pytest.fixture
def make_item():
    """Factory for NormalizedItem with a timestamp relative to NOW."""
    def _make(title="", **kwargs):
        return build_item(NormalizedItem, title=title, **kwargs)
    return _make


@pytest.fixture
def make_classified():
    """Factory for ClassifiedItem (archetype/confidence/cluster via kwargs)."""
    def _make(title="", **kwargs):
        return build_item(ClassifiedItem, title=title, **kwargs)
    return _make


@pytest.fixture
def make_scored():
    """Factory for ScoredItem (impact via kwargs)."""
    def _make(title="", **kwargs):
        return build_item(ScoredItem, title=title, **kwargs)
    return _make


@pytest.fixture
def paraphrases():
    """Twelve outlets reporting the same rate decision in slightly different words."""
    return [
        "RBI hikes repo rate by 25 bps - Mint",
        "RBI hiked repo rate by 25 bps | Reuters",
        "RBI hiking repo rate by 25 bps",
        "The RBI hikes the repo rate by 25 bps - Economic Times",
        "RBI hikes repo rate by 25 bps \u2013 Business Standard",
        "RBI hiked the repo rate by 25 bps \u2014 Moneycontrol",
        "RBI hikes its repo rate by 25 bps",
        "RBI hiked repo rate by 25 bps, says report",
        "RBI hiking repo rate by 25 bps | Hindustan Times",
        "Breaking: RBI hikes repo rate by 25 bps",
        "RBI hikes repo rate by 25 bps today",
        "RBI hiked repo rate by 25 bps - Live Mint",
    ]


ENTITY_PATTERNS = [
    {"label": "ORG", "pattern": name}
    for name in (
        "Razorpay", "Acme", "Acme Corp", "Acme Technologies", "Globex", "Globex Inc",
        "Globex Systems", "Tata Motors", "Reserve Bank of India", "PhonePe Wallet",
    )
] + [
    {"label": "PRODUCT", "pattern": name} for name in ("UPI Checkout", "Nexon EV", "Globex Ltd")
] + [
    {"label": "GPE", "pattern": name} for name in ("Mumbai", "India")
]


@pytest.fixture(scope="session")
def extractor():
    """EntityExtractor over a blank English pipeline with a fixed entity ruler."""
    nlp = spacy.blank("en")
    ruler = nlp.add_pipe("entity_ruler")
    ruler.add_patterns(ENTITY_PATTERNS)
    return EntityExtractor(model_name="blank:en", nlp=nlp)
