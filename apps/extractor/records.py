"""
World Record Source

Seed mode walks every page of the world-record listing; refresh mode reads
only the first page sorted newest first.
"""

import logging
from typing import Optional

from apps.extractor.dedup import PageDeduplicator
from apps.extractor.paginator import PaginationDriver
from utils.schemas import ParsedRecord, parse_record

logger = logging.getLogger(__name__)


class WorldRecordSource:
    def __init__(self, driver: PaginationDriver, api_base: str, recent_sort: Optional[int] = 1) -> None:
        self.driver = driver
        self.endpoint = f"{api_base.rstrip('/')}/time/worldrecord"
        self.recent_sort = recent_sort

    async def fetch_all(self) -> list[ParsedRecord]:
        records = await self.driver.collect(
            self.endpoint, parse=parse_record, key=lambda p: p.record.time_id
        )
        logger.info("Fetched world records: records=%d", len(records))
        return records

    async def fetch_recent(self) -> list[ParsedRecord]:
        """
        Fetch the current first page of world records.

        A failed page yields an empty batch; the next scheduled run picks the
        records up instead.
        """
        params = {"sort_by": self.recent_sort} if self.recent_sort is not None else None
        result = await self.driver.fetch_single(self.endpoint, parse=parse_record, params=params)
        if result is None:
            logger.warning("Recent world records unavailable, nothing to refresh")
            return []

        dedup: PageDeduplicator[ParsedRecord] = PageDeduplicator(lambda p: p.record.time_id)
        dedup.add_page(result.items)
        logger.info("Fetched recent world records: records=%d", len(dedup))
        return dedup.items
