"""
Entity Reconciler - Dependency-Ordered Writes

Takes a deduplicated world-record batch and writes it in foreign-key order:
users first, then maps, then records. A record is only handed to the sink once
the user and map it references are known to exist.

Seed mode always refreshes the map catalog. Refresh mode only does so when the
batch references a map id that storage does not have yet.
"""

import logging
from dataclasses import dataclass
from typing import Sequence

from apps.extractor.map_catalog import MapCatalogSource
from apps.saver.sink import UpsertSink
from utils.errors import MapCatalogError
from utils.schemas import ParsedRecord, Record, User

logger = logging.getLogger(__name__)


@dataclass
class SyncReport:
    """Row counts of one run; reported, never used for control flow."""

    mode: str
    records_fetched: int = 0
    users_written: int = 0
    maps_written: int = 0
    records_written: int = 0
    records_dropped: int = 0
    map_refresh: bool = False


class EntityReconciler:
    def __init__(self, sink: UpsertSink, map_catalog: MapCatalogSource) -> None:
        self.sink = sink
        self.map_catalog = map_catalog

    @staticmethod
    def referenced_users(batch: Sequence[ParsedRecord]) -> list[User]:
        """Distinct users referenced by the batch; the last username seen wins."""
        by_id: dict[int, User] = {}
        for parsed in batch:
            by_id[parsed.user.user_id] = parsed.user
        return list(by_id.values())

    @staticmethod
    def latest_per_slot(records: Sequence[Record]) -> list[Record]:
        """Keep the newest record for each (map_id, game, style, course) slot."""
        by_slot: dict[tuple[int, int, int, int], Record] = {}
        for record in records:
            current = by_slot.get(record.slot)
            if current is None or (record.date, record.time_id) > (current.date, current.time_id):
                by_slot[record.slot] = record
        return list(by_slot.values())

    async def refresh_maps(self, report: SyncReport, clear_records: bool = False) -> None:
        """
        Replace the maps table with a freshly fetched catalog.

        Args:
            report: Run report to update
            clear_records: Delete every stored record once the catalog is in
                hand, so maps dropped from the catalog are no longer held in
                place by old records

        Raises:
            MapCatalogError: If the catalog could not be fetched; storage is
                left untouched
        """
        try:
            catalog = await self.map_catalog.fetch()
        except MapCatalogError as e:
            logger.error("Map catalog refresh failed, no records written: %s", e.message)
            raise

        if clear_records and catalog:
            removed = self.sink.clear_records()
            logger.info("Cleared WR rows before map replace: %d", removed)

        report.maps_written = self.sink.replace_maps(catalog)
        report.map_refresh = True
        logger.info("Inserted map rows: %d", report.maps_written)

    def _write_users(self, batch: Sequence[ParsedRecord], report: SyncReport) -> None:
        report.users_written = self.sink.merge_users(self.referenced_users(batch))
        logger.info("Merged user rows: %d", report.users_written)

    def _records_with_maps(self, batch: Sequence[ParsedRecord], report: SyncReport) -> list[Record]:
        records = self.latest_per_slot([p.record for p in batch])
        missing = self.sink.missing_map_ids(r.map_id for r in records)
        if not missing:
            return records

        kept = [r for r in records if r.map_id not in missing]
        report.records_dropped = len(records) - len(kept)
        logger.warning(
            "Dropping records whose map is not in the catalog: records=%d maps=%s",
            report.records_dropped,
            sorted(missing),
        )
        return kept

    async def reconcile_seed(self, batch: Sequence[ParsedRecord]) -> SyncReport:
        """
        Merge users, replace the map catalog, then replace every record.

        An empty batch means the listing came back empty or unreadable; it is
        not taken as "no records exist" and nothing is written.
        """
        report = SyncReport(mode="seed", records_fetched=len(batch))
        if not batch:
            logger.warning("Seed fetched no records, keeping stored data")
            return report

        self._write_users(batch, report)
        await self.refresh_maps(report, clear_records=True)

        records = self._records_with_maps(batch, report)
        report.records_written = self.sink.replace_records(records)
        logger.info("Inserted WR rows: %d", report.records_written)
        return report

    async def reconcile_refresh(self, batch: Sequence[ParsedRecord]) -> SyncReport:
        """Merge users, refresh maps only if some are missing, then merge records."""
        report = SyncReport(mode="refresh", records_fetched=len(batch))
        if not batch:
            logger.info("No records to refresh")
            return report

        self._write_users(batch, report)

        missing = self.sink.missing_map_ids(p.record.map_id for p in batch)
        if missing:
            logger.info("Records reference unknown maps, refreshing catalog: maps=%s", sorted(missing))
            await self.refresh_maps(report)

        records = self._records_with_maps(batch, report)
        report.records_written = self.sink.merge_records(records)
        logger.info("Merged WR rows: %d", report.records_written)
        return report
