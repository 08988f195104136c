"""
Concurrent Pagination Driver

Walks a paginated endpoint in fixed-size concurrent bursts until a page comes
back empty, feeding every page through a PageDeduplicator and pausing for a
cooldown window whenever the API reports low burst capacity.

Ordering:
- The cursor advances by a full burst before the burst's responses are
  awaited, so a page is requested at most once per run.
- Bursts run strictly one after another; the cooldown decision is made
  between them.
- An empty page is the only terminal signal. Short pages are collected and
  the loop carries on.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Hashable, Optional

from apps.extractor.dedup import PageDeduplicator
from apps.extractor.fetcher import PageFailure, PageOutcome, PageResult, RateLimitedFetcher
from utils.errors import SourceUnavailableError

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class PaginationDriver:
    """Drives a RateLimitedFetcher across all pages of an endpoint."""

    def __init__(
        self,
        fetcher: RateLimitedFetcher,
        page_size: int = 100,
        burst_size: int = 5,
        rate_limit_threshold: int = 70,
        cooldown_seconds: float = 60.0,
        max_failed_rounds: int = 3,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.fetcher = fetcher
        self.page_size = page_size
        self.burst_size = burst_size
        self.rate_limit_threshold = rate_limit_threshold
        self.cooldown_seconds = cooldown_seconds
        self.max_failed_rounds = max_failed_rounds
        self._sleep = sleep
        self.cooldowns = 0

    async def throttle(self) -> None:
        """Sleep out a full cooldown window if burst capacity dropped below the threshold."""
        capacity = self.fetcher.burst_capacity
        if capacity >= self.rate_limit_threshold:
            return

        logger.info(
            "Burst capacity low (%d < %d), cooling down for %.0fs",
            capacity,
            self.rate_limit_threshold,
            self.cooldown_seconds,
        )
        await self._sleep(self.cooldown_seconds)
        self.fetcher.reset_burst_capacity()
        self.cooldowns += 1

    async def collect(
        self,
        endpoint: str,
        parse: Callable[[Any], Any],
        key: Callable[[Any], Hashable],
        params: Optional[dict[str, Any]] = None,
        strict: bool = False,
    ) -> list[Any]:
        """
        Fetch every page of an endpoint and return the deduplicated items.

        Args:
            endpoint: Absolute URL of the paginated endpoint
            parse: Converts one raw item into a typed entity
            key: Stable identifier used for deduplication
            params: Extra query parameters sent with every page
            strict: Raise on the first failed page instead of skipping it

        Returns:
            Unique items in first-seen order

        Raises:
            SourceUnavailableError: A page failed in strict mode, or every page
                failed for max_failed_rounds consecutive rounds
        """
        dedup: PageDeduplicator[Any] = PageDeduplicator(key)
        cursor = 1
        exhausted = False
        failed_rounds = 0

        while not exhausted:
            pages = range(cursor, cursor + self.burst_size)
            cursor += self.burst_size

            outcomes: list[PageOutcome] = await asyncio.gather(
                *(
                    self.fetcher.fetch_page(endpoint, page, self.page_size, parse, params)
                    for page in pages
                )
            )

            failures = 0
            for outcome in outcomes:
                if isinstance(outcome, PageFailure):
                    if strict:
                        raise SourceUnavailableError(
                            endpoint, f"page {outcome.page}: {outcome.reason}"
                        )
                    failures += 1
                    continue
                if outcome.empty:
                    # Keep draining the burst; earlier pages are still valid
                    exhausted = True
                    continue
                dedup.add_page(outcome.items)

            if failures == len(outcomes):
                failed_rounds += 1
                if failed_rounds >= self.max_failed_rounds:
                    raise SourceUnavailableError(
                        endpoint, f"{failed_rounds} consecutive rounds without a successful page"
                    )
            else:
                failed_rounds = 0

            logger.info(
                "Fetched pages %d-%d: collected=%d failed=%d",
                pages.start,
                pages.stop - 1,
                len(dedup),
                failures,
                extra={"endpoint": endpoint},
            )

            await self.throttle()

        return dedup.items

    async def fetch_single(
        self,
        endpoint: str,
        parse: Callable[[Any], Any],
        page_number: int = 1,
        params: Optional[dict[str, Any]] = None,
    ) -> Optional[PageResult]:
        """
        Fetch one page outside of a burst.

        Returns:
            The PageResult, or None when the fetch failed softly
        """
        outcome = await self.fetcher.fetch_page(
            endpoint, page_number, self.page_size, parse, params
        )
        await self.throttle()
        if isinstance(outcome, PageFailure):
            return None
        return outcome
