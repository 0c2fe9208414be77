"""
Tiered Cache Engine

Owns the two answer tiers and the usage counter for each normalized query:

- Canonical ("truth") record: authoritative answer with edit provenance.
  Written by human edits and by fresh model answers.
- Promoted ("cache") record: answer-only fast path, written once the usage
  counter exceeds the promotion threshold and rewritten on every later
  counted event.
- Usage counter: incremented once per counted save or model answer.

Write ordering:
    A counted event is two or three separate store writes (canonical, then
    promoted if the threshold is crossed, then the counter). The promoted
    record is written before the counter so a failed counter write can only
    leave a promotion that happened one event early, never a counter that
    claims a promotion which was not stored. A failure after the canonical
    write and before the counter step leaves the canonical record updated
    without its increment; callers see the StoreError.

Usage:
    engine = TieredCacheEngine(RecordStore(InMemoryKeyValueStore()), EngineConfig())
    await engine.record_edit("hello-world", "Hi", editor="alice")
    await engine.count_usage("hello-world", "Hi")
"""

import logging
from typing import Any, Dict, Optional

from veritas.cache.store import RecordStore
from veritas.config import EngineConfig
from veritas.models import CanonicalRecord, PromotedRecord
from veritas.utils.locks import KeyedLocks
from veritas.utils.temporal import Clock, now_ms

logger = logging.getLogger(__name__)

AI_EDITOR = "ai"
DEFAULT_EDITOR = "user"


class TieredCacheEngine:
    """
    Read/write routing for canonical records, promoted records and counters.

    All methods take an already-normalized query key.
    """

    def __init__(
        self,
        records: RecordStore,
        config: Optional[EngineConfig] = None,
        clock: Clock = now_ms,
    ):
        """
        Initialize the engine.

        Args:
            records: Typed record store
            config: Immutable cache policy (promotion threshold, ...)
            clock: Millisecond clock, injectable for tests
        """
        self.records = records
        self.config = config or EngineConfig()
        self.clock = clock
        self._counter_locks = KeyedLocks()

        # Statistics
        self._promoted_hits = 0
        self._promoted_misses = 0
        self._promotions = 0
        self._edits = 0
        self._ai_answers = 0

        logger.info(
            f"Initialized TieredCacheEngine: promotion_threshold={self.config.promotion_threshold}"
        )

    async def load(self, query_key: str) -> Optional[str]:
        """
        Peek at the canonical answer.

        Never consults the promoted tier and never counts.

        Returns:
            The canonical answer, or None when no record exists
        """
        record = await self.records.get_canonical(query_key)
        return record.answer if record else None

    async def get_canonical(self, query_key: str) -> Optional[CanonicalRecord]:
        return await self.records.get_canonical(query_key)

    async def get_promoted_answer(self, query_key: str) -> Optional[str]:
        """Fast-path answer if the query has been promoted."""
        record = await self.records.get_promoted(query_key)
        if record is None:
            self._promoted_misses += 1
            logger.debug(f"Promoted MISS for '{query_key[:50]}'")
            return None

        self._promoted_hits += 1
        logger.info(f"Promoted HIT for '{query_key[:50]}'")
        return record.answer

    async def record_edit(
        self,
        query_key: str,
        answer: str,
        editor: Optional[str] = None,
    ) -> CanonicalRecord:
        """
        Write a human-edited canonical answer.

        Keeps the original ``created`` of an existing record.
        """
        now = self.clock()
        existing = await self.records.get_canonical(query_key)
        record = CanonicalRecord(
            answer=answer,
            last_edited_by=editor or DEFAULT_EDITOR,
            edited=True,
            created=existing.created if existing else now,
            timestamp=now,
        )
        await self.records.put_canonical(query_key, record)
        self._edits += 1
        logger.info(f"Saved edited answer for '{query_key[:50]}' by {record.last_edited_by}")
        return record

    async def record_ai_answer(self, query_key: str, answer: str) -> CanonicalRecord:
        """Write a fresh model answer as the canonical record."""
        now = self.clock()
        record = CanonicalRecord(
            answer=answer,
            last_edited_by=AI_EDITOR,
            edited=False,
            created=now,
            timestamp=now,
        )
        await self.records.put_canonical(query_key, record)
        self._ai_answers += 1
        logger.info(f"Saved model answer for '{query_key[:50]}'")
        return record

    async def count_usage(self, query_key: str, answer: str) -> int:
        """
        Increment the usage counter and promote past the threshold.

        The read-increment-write sequence is serialized per query key.

        Args:
            query_key: Normalized query
            answer: Answer to promote if the new count exceeds the threshold

        Returns:
            The new counter value
        """
        async with self._counter_locks.hold(query_key):
            count = await self.records.get_count(query_key) + 1
            if count > self.config.promotion_threshold:
                await self.records.put_promoted(
                    query_key,
                    PromotedRecord(answer=answer, timestamp=self.clock()),
                )
                self._promotions += 1
                logger.info(f"Promoted '{query_key[:50]}' at count={count}")
            await self.records.put_count(query_key, count)

        logger.debug(f"Usage count for '{query_key[:50]}' is now {count}")
        return count

    def get_stats(self) -> Dict[str, Any]:
        """
        Get engine statistics.

        Returns:
            Dictionary with promoted-tier hits/misses, promotions and writes
        """
        total = self._promoted_hits + self._promoted_misses
        hit_rate = self._promoted_hits / total if total > 0 else 0.0

        return {
            "promoted_hits": self._promoted_hits,
            "promoted_misses": self._promoted_misses,
            "promoted_hit_rate": round(hit_rate, 4),
            "promotions": self._promotions,
            "edits": self._edits,
            "ai_answers": self._ai_answers,
            "promotion_threshold": self.config.promotion_threshold,
        }
