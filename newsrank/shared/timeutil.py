"""Lenient UTC timestamp parsing. Unparseable input is None, never an exception."""

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional


def parse_utc(value) -> Optional[datetime]:
    """
    Parse ISO-8601 (with or without 'Z') or RFC-2822 timestamps to aware UTC.

    Naive timestamps are assumed to be UTC.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if not text:
            return None
        parsed = None
        iso = text[:-1] + "+00:00" if text.endswith(("Z", "z")) else text
        try:
            parsed = datetime.fromisoformat(iso)
        except ValueError:
            try:
                parsed = parsedate_to_datetime(text)
            except (TypeError, ValueError, IndexError):
                return None
        if parsed is None:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def hours_between(earlier: datetime, later: datetime) -> float:
    """Signed hours from earlier to later."""
    return (later - earlier).total_seconds() / 3600.0


def to_iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
