"""
Key-value stores backing the entity co-occurrence graph.

Interface: get(key) -> Optional[str], put(key, value, ttl_seconds).
Values are opaque strings (the graph stores JSON). Each key is read and
written independently: there are no cross-key transactions, and two runs
writing the same key concurrently resolve as last-write-wins.

Backends:
  - InMemoryKeyValueStore: dict with TTL expiry and an injectable clock (tests)
  - SqlKeyValueStore: SQLAlchemy table kv_entries(key, value, expires_at)
"""

import logging
import time
from contextlib import contextmanager
from typing import Callable, Dict, Optional, Tuple

from sqlalchemy import Column, Float, String, Text, create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from newsrank.config import get_settings

logger = logging.getLogger(__name__)

Base = declarative_base()


class StoreError(RuntimeError):
    """A storage backend failed; wraps the underlying exception."""


class KeyValueStore:
    """Minimal get/put/ttl contract the novelty graph depends on."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def put(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        raise NotImplementedError


class InMemoryKeyValueStore(KeyValueStore):
    """
    Process-local store with TTL expiry.

    clock returns epoch seconds; tests inject a fake to move time forward.
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self._clock = clock or time.time
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}

    def get(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= self._clock():
            del self._data[key]
            return None
        return value

    def put(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds else None
        self._data[key] = (value, expires_at)

    def __len__(self) -> int:
        return len(self._data)

    def keys(self):
        return list(self._data.keys())


# ── SQL backend ──────────────────────────────────────────────────────────────

class KVEntryModel(Base):
    """One key-value record; expires_at is epoch seconds (NULL = never)."""
    __tablename__ = "kv_entries"

    key = Column(String(512), primary_key=True)
    value = Column(Text, nullable=False)
    expires_at = Column(Float, nullable=True, index=True)


class SqlKeyValueStore(KeyValueStore):
    """
    SQLAlchemy-backed store. Upserts via session.merge; expired rows read as
    absent (garbage collection is left to the operator).

    Backend exceptions are wrapped in StoreError so callers can degrade
    without knowing which database is underneath.
    """

    def __init__(
        self,
        database_url: Optional[str] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        url = database_url or get_settings().kv_database_url
        self._clock = clock or time.time
        self.engine = create_engine(url, echo=False)
        self.SessionLocal = sessionmaker(bind=self.engine)
        Base.metadata.create_all(self.engine)

    @contextmanager
    def get_session(self) -> Session:
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def get(self, key: str) -> Optional[str]:
        try:
            with self.get_session() as session:
                row = session.get(KVEntryModel, key)
                if row is None:
                    return None
                if row.expires_at is not None and row.expires_at <= self._clock():
                    return None
                return row.value
        except SQLAlchemyError as e:
            raise StoreError(f"kv get failed for {key}: {e}") from e

    def put(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds else None
        try:
            with self.get_session() as session:
                session.merge(KVEntryModel(key=key, value=value, expires_at=expires_at))  # merge = upsert
        except SQLAlchemyError as e:
            raise StoreError(f"kv put failed for {key}: {e}") from e

    def purge_expired(self) -> int:
        """Delete expired rows. Returns the number removed."""
        try:
            with self.get_session() as session:
                removed = (
                    session.query(KVEntryModel)
                    .filter(KVEntryModel.expires_at.isnot(None))
                    .filter(KVEntryModel.expires_at <= self._clock())
                    .delete(synchronize_session=False)
                )
        except SQLAlchemyError as e:
            raise StoreError(f"kv purge failed: {e}") from e
        if removed:
            logger.info(f"KV store: purged {removed} expired entries")
        return removed
