"""
Thumbnail Resolver

Resolves small and large thumbnail URLs for map assets through the Roblox
batch thumbnail endpoint. The two sizes are independent lookups run
concurrently and joined before any map is built.

Transient HTTP errors are retried with exponential backoff. A size whose
lookup still fails degrades to missing URLs; it never aborts the catalog.
"""

import asyncio
import logging
from typing import Iterable

import httpx
import orjson
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from apps.extractor.dedup import PageDeduplicator
from utils.errors import MalformedPayloadError
from utils.schemas import ThumbnailEntry, ThumbnailPair, page_items, parse_thumbnail

logger = logging.getLogger(__name__)


class ThumbnailResolver:
    """Batch thumbnail lookup keyed by asset id."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        url: str = "https://thumbnails.roblox.com/v1/assets",
        small_size: str = "75x75",
        large_size: str = "420x420",
        batch_size: int = 100,
        timeout: float = 3.0,
        max_attempts: int = 3,
        backoff: float = 1.0,
    ) -> None:
        self.client = client
        self.url = url
        self.small_size = small_size
        self.large_size = large_size
        self.batch_size = batch_size
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.backoff = backoff

    async def resolve(self, asset_ids: Iterable[int]) -> dict[int, ThumbnailPair]:
        """
        Look up both thumbnail sizes for every asset id.

        Returns:
            Mapping asset_id -> ThumbnailPair; URLs are None where unresolved
        """
        ids = list(dict.fromkeys(asset_ids))
        if not ids:
            return {}

        small, large = await asyncio.gather(
            self.lookup(ids, self.small_size),
            self.lookup(ids, self.large_size),
        )

        pairs = {
            asset_id: ThumbnailPair(
                asset_id=asset_id,
                small_url=small.get(asset_id),
                large_url=large.get(asset_id),
            )
            for asset_id in ids
        }
        resolved = sum(1 for p in pairs.values() if p.small_url and p.large_url)
        logger.info("Resolved thumbnails: assets=%d complete=%d", len(ids), resolved)
        return pairs

    async def lookup(self, asset_ids: list[int], size: str) -> dict[int, str]:
        """Resolve one size for all assets. Failed batches are left out of the result."""
        dedup: PageDeduplicator[ThumbnailEntry] = PageDeduplicator(lambda e: e.targetId)

        for start in range(0, len(asset_ids), self.batch_size):
            batch = asset_ids[start : start + self.batch_size]
            try:
                entries = await self._fetch_batch(batch, size)
            except (httpx.HTTPError, orjson.JSONDecodeError, MalformedPayloadError) as e:
                logger.warning(
                    "Thumbnail lookup failed, continuing without: size=%s batch=%d-%d error=%s",
                    size,
                    start,
                    start + len(batch) - 1,
                    str(e),
                )
                continue
            dedup.add_page(entries)

        return {entry.targetId: entry.url for entry in dedup.items if entry.url}

    async def _fetch_batch(self, asset_ids: list[int], size: str) -> list[ThumbnailEntry]:
        params = {
            "assetIds": ",".join(str(i) for i in asset_ids),
            "size": size,
            "format": "Png",
            "isCircular": "false",
        }

        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(httpx.HTTPError),
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff, max=5),
            reraise=True,
        ):
            with attempt:
                response = await self.client.get(self.url, params=params, timeout=self.timeout)
                response.raise_for_status()

        return [parse_thumbnail(raw) for raw in page_items(orjson.loads(response.content))]
