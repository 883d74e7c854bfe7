"""Redelivery suppression for inbound messages.

``claim`` is the only operation: it atomically checks whether a key has been
seen and records it, returning True exactly once per live key.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Protocol

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from .. import crud
from ..config import Settings, get_settings

logger = logging.getLogger(__name__)


class ProcessedMessageStore(Protocol):
    def claim(self, key: str) -> bool:
        """Record ``key``; return False if it was already recorded."""


class InMemoryMessageStore:
    """Process-local store, cleared wholesale once it reaches ``max_size``."""

    def __init__(
        self,
        *,
        max_size: int = 1000,
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._seen: dict[str, float] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._seen)

    def __contains__(self, key: object) -> bool:
        return key in self._seen

    def claim(self, key: str) -> bool:
        now = self._clock()
        with self._lock:
            seen_at = self._seen.get(key)
            if seen_at is not None and (self.ttl_seconds is None or now - seen_at < self.ttl_seconds):
                return False
            if len(self._seen) >= self.max_size:
                logger.info("Processed message cache reached %d entries, clearing", len(self._seen))
                self._seen.clear()
            self._seen[key] = now
            return True


class DatabaseMessageStore:
    """Store shared by every instance that talks to the same database."""

    def __init__(
        self,
        session_factory: sessionmaker[Session] | Callable[[], Session],
        *,
        ttl_seconds: float | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.ttl_seconds = ttl_seconds

    def claim(self, key: str) -> bool:
        now = datetime.now(timezone.utc)
        with self._session_factory() as db:
            if self.ttl_seconds is not None:
                crud.delete_processed_message(db, key, processed_before=now - timedelta(seconds=self.ttl_seconds))
            try:
                crud.insert_processed_message(db, key, processed_at=now)
            except IntegrityError:
                db.rollback()
                return False
            return True


def build_message_store(settings: Settings | None = None) -> ProcessedMessageStore:
    settings = settings or get_settings()
    if settings.message_dedup_backend == "database":
        from ..db import SessionLocal

        return DatabaseMessageStore(SessionLocal, ttl_seconds=settings.message_cache_ttl_seconds)
    return InMemoryMessageStore(
        max_size=settings.message_cache_max_size,
        ttl_seconds=settings.message_cache_ttl_seconds,
    )
