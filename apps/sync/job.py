"""
Sync Job - One Seed or Refresh Run

Wires the fetcher, pagination driver, sources, sink and reconciler together
for a single run and returns its SyncReport.

Usage:
    report = await run_sync(SyncMode.SEED, get_settings())
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Optional

import httpx
from sqlalchemy.engine import Connection

from apps.extractor.fetcher import RateLimitedFetcher
from apps.extractor.map_catalog import MapCatalogSource
from apps.extractor.paginator import PaginationDriver, Sleep
from apps.extractor.records import WorldRecordSource
from apps.extractor.thumbnails import ThumbnailResolver
from apps.reconciler.reconciler import EntityReconciler, SyncReport
from apps.saver.sink import UpsertSink
from utils.config import Settings
from utils.db import build_database_url, get_conn, get_engine, init_schema

logger = logging.getLogger(__name__)


class SyncMode(str, Enum):
    SEED = "seed"
    REFRESH = "refresh"

    @classmethod
    def parse(cls, value: Optional[str]) -> "SyncMode":
        """'seed' selects a full reseed; anything else, including nothing, is a refresh."""
        return cls.SEED if value == cls.SEED.value else cls.REFRESH


def build_reconciler(
    settings: Settings,
    client: httpx.AsyncClient,
    conn: Connection,
    sleep: Sleep = asyncio.sleep,
    thumbnail_backoff: float = 1.0,
) -> tuple[WorldRecordSource, EntityReconciler]:
    fetcher = RateLimitedFetcher(
        client,
        api_key=settings.API_KEY,
        timeout=settings.API_TIMEOUT,
        rate_limit_header=settings.RATE_LIMIT_HEADER,
    )
    driver = PaginationDriver(
        fetcher,
        page_size=settings.API_PAGE_SIZE,
        burst_size=settings.FETCH_BURST_SIZE,
        rate_limit_threshold=settings.RATE_LIMIT_THRESHOLD,
        cooldown_seconds=settings.RATE_LIMIT_COOLDOWN,
        max_failed_rounds=settings.MAX_FAILED_ROUNDS,
        sleep=sleep,
    )
    thumbnails = ThumbnailResolver(
        client,
        url=settings.THUMBNAIL_API_URL,
        small_size=settings.THUMBNAIL_SMALL_SIZE,
        large_size=settings.THUMBNAIL_LARGE_SIZE,
        batch_size=settings.THUMBNAIL_BATCH_SIZE,
        timeout=settings.API_TIMEOUT,
        max_attempts=settings.THUMBNAIL_MAX_ATTEMPTS,
        backoff=thumbnail_backoff,
    )
    source = WorldRecordSource(driver, settings.API_BASE, settings.API_RECENT_SORT)
    catalog = MapCatalogSource(driver, thumbnails, settings.API_BASE)
    return source, EntityReconciler(UpsertSink(conn), catalog)


async def run_sync(
    mode: SyncMode,
    settings: Settings,
    *,
    client: Optional[httpx.AsyncClient] = None,
    conn: Optional[Connection] = None,
    sleep: Sleep = asyncio.sleep,
    thumbnail_backoff: float = 1.0,
) -> SyncReport:
    """
    Execute one sync run.

    Args:
        mode: Seed or refresh
        settings: Loaded application settings
        client: HTTP client to use; one is created and closed when omitted
        conn: Database connection to use; the configured database is opened
            (and its schema created) when omitted
        sleep: Cooldown sleep, injectable for tests
        thumbnail_backoff: Multiplier for thumbnail retry backoff

    Raises:
        MapCatalogError: If the map catalog was needed and could not be fetched
        SourceUnavailableError: If the world-record listing could not be read
        sqlalchemy.exc.SQLAlchemyError: On database failure
    """
    start_time = time.time()
    owns_client = client is None
    engine = None

    if client is None:
        client = httpx.AsyncClient(timeout=settings.API_TIMEOUT)
    if conn is None:
        engine = get_engine(build_database_url(settings))
        init_schema(engine)
        conn = get_conn(engine)

    logger.info("Starting sync run: mode=%s", mode.value)

    try:
        source, reconciler = build_reconciler(settings, client, conn, sleep, thumbnail_backoff)

        if mode is SyncMode.SEED:
            batch = await source.fetch_all()
            report = await reconciler.reconcile_seed(batch)
        else:
            batch = await source.fetch_recent()
            report = await reconciler.reconcile_refresh(batch)

    finally:
        if owns_client:
            await client.aclose()
        if engine is not None:
            conn.close()
            engine.dispose()

    logger.info(
        "Sync run complete: mode=%s fetched=%d users=%d maps=%d records=%d elapsed=%.3fs",
        mode.value,
        report.records_fetched,
        report.users_written,
        report.maps_written,
        report.records_written,
        time.time() - start_time,
    )
    return report
