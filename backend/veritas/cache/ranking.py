"""
Popularity Ranker

Builds the daily top-N list from usage counters. A query ranks only when its
canonical record was last written on the current UTC day; queries without a
canonical record or with an older one are skipped.

Cost is one counter read and one canonical read per query ever counted.
"""

import logging
from typing import List, Optional

from veritas.cache.store import RecordStore
from veritas.models import TopQuery
from veritas.utils.temporal import Clock, now_ms, utc_day

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 10


class PopularityRanker:
    """Daily ranking of normalized queries by usage count."""

    def __init__(self, records: RecordStore, clock: Clock = now_ms):
        self.records = records
        self.clock = clock

    async def top_queries(self, limit: Optional[int] = DEFAULT_LIMIT) -> List[TopQuery]:
        """
        Rank today's queries by count, highest first.

        Args:
            limit: Maximum entries to return

        Returns:
            TopQuery entries; ties keep store listing order
        """
        today = utc_day(self.clock())
        ranked: List[TopQuery] = []

        for query_key in await self.records.counted_queries():
            record = await self.records.get_canonical(query_key)
            if record is None or utc_day(record.timestamp) != today:
                continue
            count = await self.records.get_count(query_key)
            ranked.append(TopQuery(query=query_key, count=count))

        # sort() is stable, so equal counts keep listing order
        ranked.sort(key=lambda entry: entry.count, reverse=True)
        limit = DEFAULT_LIMIT if limit is None else limit
        logger.debug(f"Ranked {len(ranked)} queries for {today}, returning top {limit}")
        return ranked[:max(0, limit)]
