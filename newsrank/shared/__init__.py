"""
Shared utilities used across all engine layers.

- text.py: sanitize/tokenize, phrase matching, clamping
- stopwords.py: stopword and noise vocabularies
- urls.py: URL canonicalization, domain extraction, stable ids
- timeutil.py: lenient UTC timestamp parsing
- tables.py: cached loader for the packaged JSON data tables
"""

from newsrank.shared.text import clamp01, contains_phrase, sanitize, tokenize
from newsrank.shared.urls import canonicalize_url, get_domain, hash_id
from newsrank.shared.timeutil import hours_between, parse_utc
