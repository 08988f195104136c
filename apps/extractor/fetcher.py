"""
Rate-Limited Fetcher

Issues page requests against the StrafesNET API and tracks the remaining burst
capacity the API reports in its response headers.

Every page-level failure (network error, timeout, non-2xx status, undecodable
body or bad envelope) is logged and returned as a PageFailure. Nothing raises
past fetch_page; the pagination driver decides what a missing page means.
Items that fail validation are logged and skipped one by one, and counted in
PageResult.skipped.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Union

import httpx
import orjson

from utils.errors import MalformedPayloadError
from utils.schemas import page_items

logger = logging.getLogger(__name__)

# High sentinel for "no capacity signal seen since the last reset"
BURST_SENTINEL = 2**31 - 1


@dataclass
class PageResult:
    page: int
    items: list[Any] = field(default_factory=list)
    rate_limit_remaining: Optional[int] = None
    skipped: int = 0

    @property
    def empty(self) -> bool:
        """True when upstream returned no items at all, the end of a listing."""
        return not self.items and not self.skipped


@dataclass
class PageFailure:
    page: int
    reason: str


PageOutcome = Union[PageResult, PageFailure]


class RateLimitedFetcher:
    """Fetches single pages and keeps the lowest burst capacity seen."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        timeout: float = 3.0,
        rate_limit_header: str = "X-Rate-Limit-Burst",
    ) -> None:
        """
        Args:
            client: Shared async HTTP client
            api_key: Static API key sent as X-API-Key
            timeout: Per-request timeout in seconds
            rate_limit_header: Response header carrying remaining burst capacity
        """
        self.client = client
        self.timeout = timeout
        self.rate_limit_header = rate_limit_header
        self._headers = {"X-API-Key": api_key, "Accept": "application/json"}
        self.burst_capacity = BURST_SENTINEL

    def reset_burst_capacity(self) -> None:
        self.burst_capacity = BURST_SENTINEL

    def _observe_capacity(self, response: httpx.Response) -> Optional[int]:
        raw = response.headers.get(self.rate_limit_header)
        if raw is None:
            return None
        try:
            remaining = int(raw)
        except ValueError:
            logger.debug("Ignoring non-integer %s header: %r", self.rate_limit_header, raw)
            return None
        self.burst_capacity = min(self.burst_capacity, remaining)
        return remaining

    async def fetch_page(
        self,
        endpoint: str,
        page_number: int,
        page_size: int,
        parse: Callable[[Any], Any],
        params: Optional[dict[str, Any]] = None,
    ) -> PageOutcome:
        """
        Fetch and parse one page.

        Args:
            endpoint: Absolute URL of the paginated endpoint
            page_number: 1-based page number
            page_size: Items per page
            parse: Converts one raw item into a typed entity
            params: Extra query parameters

        Returns:
            PageResult on success, PageFailure on any failure
        """
        query = {"page_number": page_number, "page_size": page_size, **(params or {})}

        try:
            response = await self.client.get(
                endpoint, params=query, headers=self._headers, timeout=self.timeout
            )
            response.raise_for_status()
        except httpx.TimeoutException as e:
            return self._fail(endpoint, page_number, f"timeout: {e!r}")
        except httpx.HTTPStatusError as e:
            return self._fail(endpoint, page_number, f"HTTP {e.response.status_code}")
        except httpx.HTTPError as e:
            return self._fail(endpoint, page_number, f"request error: {e!r}")

        remaining = self._observe_capacity(response)

        try:
            raw_items = page_items(orjson.loads(response.content))
        except orjson.JSONDecodeError as e:
            return self._fail(endpoint, page_number, f"invalid JSON: {e}")
        except MalformedPayloadError as e:
            return self._fail(endpoint, page_number, e.message)

        # A bad item costs only itself, never the rest of its page
        items = []
        skipped = 0
        for index, raw in enumerate(raw_items):
            try:
                items.append(parse(raw))
            except MalformedPayloadError as e:
                skipped += 1
                logger.warning(
                    "Skipping malformed item: page=%d index=%d reason=%s",
                    page_number,
                    index,
                    e.message,
                    extra={"endpoint": endpoint, "errors": e.details.get("errors")},
                )

        logger.debug(
            "Fetched page",
            extra={
                "endpoint": endpoint,
                "page": page_number,
                "items": len(items),
                "skipped": skipped,
                "burst_remaining": remaining,
            },
        )
        return PageResult(
            page=page_number, items=items, rate_limit_remaining=remaining, skipped=skipped
        )

    def _fail(self, endpoint: str, page_number: int, reason: str) -> PageFailure:
        logger.warning(
            "Page fetch failed, skipping: page=%d reason=%s",
            page_number,
            reason,
            extra={"endpoint": endpoint},
        )
        return PageFailure(page=page_number, reason=reason)
