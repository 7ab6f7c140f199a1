"""
Named entity and verb extraction for news items using spaCy.

Organizations and products come from the spaCy NER pass:

  ORG                   → orgs
  PRODUCT, WORK_OF_ART  → products

An ORG span whose last word is a product noun ("UPI Checkout", "Paytm
Wallet") is filed as a product, and a PRODUCT span ending in a corporate
suffix ("Globex Inc") as an org. Leading/trailing function words are trimmed
from every span ("the Reserve Bank of India" → "Reserve Bank of India").

Verbs come from the verb lexicon, then the lemmas of tokens spaCy tags as
VERB, then -ing/-ed stripping; an item with no recognizable verb gets the
bucket ['announce'].

MODEL CHOICE:
  en_core_web_sm (default, SPACY_MODEL to override). Batches go through
  nlp.pipe() so a whole run is parsed in one pass.

REQUIRES: pip install spacy && python -m spacy download en_core_web_sm
"""

import logging
import re
from functools import lru_cache
from typing import Iterable, List, Optional

import spacy

from newsrank.config import get_settings
from newsrank.schemas.news import EntityExtraction
from newsrank.shared.stopwords import ENTITY_STOP
from newsrank.shared.text import sanitize, tokenize

logger = logging.getLogger(__name__)

MAX_ORGS = 6
MAX_PRODUCTS = 6
MAX_VERBS = 5

ORG_LABELS = {"ORG"}
PRODUCT_LABELS = {"PRODUCT", "WORK_OF_ART"}

# Base forms of verbs that carry the "action" of a business headline.
VERB_LEXICON = frozenset({
    "announce", "launch", "unveil", "introduce", "ship", "debut", "release",
    "roll", "rollout", "partner", "join", "collaborate", "integrate", "merge",
    "acquire", "buy", "sell", "raise", "invest", "expand", "enter", "exit",
    "sign", "ink", "tie", "team", "issue", "ban", "mandate", "approve",
    "reject", "fine", "penalise", "penalize", "probe", "order", "notify",
    "hike", "cut", "slash", "cap", "waive", "allow", "permit", "extend",
    "plan", "open", "close", "shut", "upgrade", "build", "deploy", "test",
    "pilot", "unlock", "enable", "add", "drop", "revise", "tighten", "ease",
})

_CORPORATE_SUFFIX = re.compile(r"\b(inc|corp|ltd|llc|plc|technologies|labs|systems|ventures|capital)\.?$")
_PRODUCT_SUFFIX = re.compile(r"\b(app|platform|suite|service|pay|checkout|wallet|ai|model|engine)$")


def _verb_stem(token: str) -> str:
    """Crude base form: launches → launch, partnered → partner, ties → tie."""
    if token in VERB_LEXICON:
        return token
    for suffix, replacement in (("ies", "y"), ("ing", ""), ("ed", ""), ("es", ""), ("s", "")):
        if token.endswith(suffix) and len(token) > len(suffix) + 2:
            stem = token[: -len(suffix)] + replacement
            if stem in VERB_LEXICON:
                return stem
            # partnered → partner ("ed"), but tied → tie needs the "d" variant
            if suffix in ("ed", "es") and token[:-1] in VERB_LEXICON:
                return token[:-1]
    return ""


def _dedupe(values: Iterable[str]) -> List[str]:
    seen = set()
    out = []
    for value in values:
        key = value.lower()
        if key in seen:
            continue
        seen.add(key)
        out.append(value)
    return out


def extract_verbs(text: str, verb_lemmas: Optional[List[str]] = None) -> List[str]:
    """
    Lexicon verbs (base form), then tagged verb lemmas, then -ing/-ed
    stripped tokens; ≤5, never empty.
    """
    verbs: List[str] = []
    stripped: List[str] = []
    for token in tokenize(text):
        stem = _verb_stem(token)
        if stem:
            verbs.append(stem)
        elif len(token) > 4 and token.endswith("ing"):
            stripped.append(token[:-3])
        elif len(token) > 3 and token.endswith("ed"):
            stripped.append(token[:-2])
    lemmas = [lemma.lower() for lemma in (verb_lemmas or []) if lemma and lemma.isalpha()]
    out = _dedupe(verbs + lemmas + stripped)[:MAX_VERBS]
    return out or ["announce"]


def clean_span(text: str) -> str:
    """Trim function words and possessives from the edges of an entity span."""
    words = sanitize(text).replace("\u2019", "'").split(" ")
    while words and words[0].lower().strip(".,'\"") in ENTITY_STOP:
        words = words[1:]
    while words and words[-1].lower().strip(".,'\"") in ENTITY_STOP:
        words = words[:-1]
    if words and words[-1].endswith("'s"):
        words[-1] = words[-1][:-2]
    return " ".join(words).strip(" ,.:;'\"")


def entity_kind(label: str, text: str) -> str:
    """'ORG', 'PRODUCT' or '' for a spaCy entity label and its cleaned span."""
    lowered = text.lower()
    if label in ORG_LABELS:
        return "PRODUCT" if _PRODUCT_SUFFIX.search(lowered) else "ORG"
    if label in PRODUCT_LABELS:
        return "ORG" if _CORPORATE_SUFFIX.search(lowered) else "PRODUCT"
    return ""


class EntityExtractor:
    """
    Batch org/product/verb extraction with spaCy.

    The pipeline is loaded lazily on first use. Tests (or callers with a
    custom pipeline) can pass a ready nlp object instead of a model name.
    """

    def __init__(self, model_name: Optional[str] = None, nlp=None):
        self.model_name = model_name or get_settings().spacy_model
        self._nlp = nlp

    @property
    def nlp(self):
        """Lazy-load the spaCy pipeline (only when first used)."""
        if self._nlp is None:
            try:
                self._nlp = spacy.load(self.model_name)
            except OSError as e:
                raise OSError(
                    f"spaCy model '{self.model_name}' not found. Run:\n"
                    f"  python -m spacy download {self.model_name}"
                ) from e
            logger.info(f"Loaded spaCy model: {self.model_name}")
        return self._nlp

    def _from_doc(self, doc) -> EntityExtraction:
        orgs: List[str] = []
        products: List[str] = []
        for ent in doc.ents:
            text = clean_span(ent.text)
            if len(text) < 2:
                continue
            kind = entity_kind(ent.label_, text)
            if kind == "ORG":
                orgs.append(text)
            elif kind == "PRODUCT":
                products.append(text)

        org_keys = {o.lower() for o in orgs}
        products = [p for p in _dedupe(products) if p.lower() not in org_keys]
        lemmas = [token.lemma_ for token in doc if token.pos_ == "VERB"]
        return EntityExtraction(
            orgs=_dedupe(orgs)[:MAX_ORGS],
            products=products[:MAX_PRODUCTS],
            verbs=extract_verbs(doc.text, lemmas),
        )

    def extract(self, text: str) -> EntityExtraction:
        return self.extract_batch([text])[0]

    def extract_batch(self, texts: List[str]) -> List[EntityExtraction]:
        """One EntityExtraction per text, in order. Empty texts skip the parser."""
        clean = [sanitize(t) for t in texts]
        results: List[Optional[EntityExtraction]] = [None] * len(clean)
        todo = [i for i, t in enumerate(clean) if t]
        docs = self.nlp.pipe([clean[i] for i in todo], batch_size=50) if todo else []
        for i, doc in zip(todo, docs):
            results[i] = self._from_doc(doc)
        for i, result in enumerate(results):
            if result is None:
                results[i] = EntityExtraction(verbs=["announce"])

        logger.debug(
            f"Entity extraction: {len(texts)} texts, "
            f"{sum(len(r.orgs) + len(r.products) for r in results)} entities"
        )
        return results


@lru_cache(maxsize=1)
def get_extractor() -> EntityExtractor:
    """Process-wide extractor on the configured model."""
    return EntityExtractor()


def extract_entities(text: str) -> EntityExtraction:
    """Organizations, products and verbs mentioned in text (shared extractor)."""
    return get_extractor().extract(text)
