"""
Upsert Sink - Relational Persistence for Users, Maps and Records

Applies entity batches to the globals database either destructively (replace)
or as a merge-on-conflict where the incoming row overwrites every non-identity
column. All writes go through one connection and every statement commits on
its own, so an interrupted run leaves each table consistent by itself.

Upserts use the dialect insert constructs:
- MySQL: INSERT ... ON DUPLICATE KEY UPDATE
- SQLite / PostgreSQL: INSERT ... ON CONFLICT (key) DO UPDATE
"""

import logging
from typing import Any, Iterable, Iterator, Sequence

from sqlalchemy import Table, delete, func, insert, select, tuple_
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.engine import Connection

from utils.db import globals_table, maps, users
from utils.schemas import Map, Record, User

logger = logging.getLogger(__name__)

CHUNK_SIZE = 500


def _chunks(rows: Sequence[Any], size: int = CHUNK_SIZE) -> Iterator[Sequence[Any]]:
    for start in range(0, len(rows), size):
        yield rows[start : start + size]


def user_row(user: User) -> dict[str, Any]:
    return {"user_id": user.user_id, "username": user.username}


def map_row(m: Map) -> dict[str, Any]:
    return {
        "map_id": m.map_id,
        "name": m.name,
        "creator": m.creator,
        "game": int(m.game),
        "date": m.date,
        "created_at": m.created_at,
        "updated_at": m.updated_at,
        "submitter": m.submitter,
        "small_thumb": m.small_thumbnail_url,
        "large_thumb": m.large_thumbnail_url,
        "asset_version": m.asset_version,
        "load_count": m.load_count,
        "modes": m.modes,
    }


def record_row(record: Record) -> dict[str, Any]:
    return {
        "time_id": record.time_id,
        "user_id": record.user_id,
        "map_id": record.map_id,
        "game": int(record.game),
        "style": record.style,
        "course": record.course,
        "date": record.date,
        "time": record.time,
    }


class UpsertSink:
    """Writes entity batches through a single connection and reports affected rows."""

    def __init__(self, conn: Connection) -> None:
        self.conn = conn

    def _execute(self, stmt: Any) -> int:
        result = self.conn.execute(stmt)
        self.conn.commit()
        return max(result.rowcount or 0, 0)

    def _upsert_statement(self, table: Table, rows: Sequence[dict[str, Any]], key: list[str]) -> Any:
        dialect = self.conn.dialect.name
        update_columns = [c.name for c in table.columns if c.name not in key]

        if dialect == "mysql":
            stmt = mysql.insert(table).values(list(rows))
            return stmt.on_duplicate_key_update({name: stmt.inserted[name] for name in update_columns})

        if dialect in ("sqlite", "postgresql"):
            dialect_insert = sqlite.insert if dialect == "sqlite" else postgresql.insert
            stmt = dialect_insert(table).values(list(rows))
            return stmt.on_conflict_do_update(
                index_elements=key,
                set_={name: stmt.excluded[name] for name in update_columns},
            )

        raise NotImplementedError(f"Upsert is not supported for dialect '{dialect}'")

    def _upsert(self, table: Table, rows: Sequence[dict[str, Any]], key: list[str]) -> int:
        affected = 0
        for chunk in _chunks(rows):
            affected += self._execute(self._upsert_statement(table, chunk, key))
        return affected

    def _insert(self, table: Table, rows: Sequence[dict[str, Any]]) -> int:
        affected = 0
        for chunk in _chunks(rows):
            affected += self._execute(insert(table).values(list(chunk)))
        return affected

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def merge_users(self, batch: Iterable[User]) -> int:
        """Insert users; existing user ids get their username overwritten."""
        rows = [user_row(u) for u in batch]
        if not rows:
            return 0
        return self._upsert(users, rows, ["user_id"])

    # ------------------------------------------------------------------
    # Maps
    # ------------------------------------------------------------------

    def replace_maps(self, catalog: Sequence[Map]) -> int:
        """
        Make the maps table match the catalog.

        Every catalog map is upserted, then stored maps missing from the catalog
        are deleted unless a record still references them. An empty catalog is
        treated as an upstream fault and leaves the table untouched.
        """
        if not catalog:
            logger.warning("Empty map catalog, keeping stored maps")
            return 0

        affected = self._upsert(maps, [map_row(m) for m in catalog], ["map_id"])

        catalog_ids = [m.map_id for m in catalog]
        stale = self._execute(
            delete(maps).where(
                maps.c.map_id.not_in(catalog_ids),
                maps.c.map_id.not_in(select(globals_table.c.map_id)),
            )
        )
        if stale:
            logger.info("Removed maps no longer in catalog: rows=%d", stale)
        return affected + stale

    def missing_map_ids(self, map_ids: Iterable[int]) -> set[int]:
        """Return the ids from map_ids that have no row in maps."""
        wanted = set(map_ids)
        found: set[int] = set()
        for chunk in _chunks(sorted(wanted)):
            found.update(
                self.conn.execute(select(maps.c.map_id).where(maps.c.map_id.in_(chunk))).scalars()
            )
        # Reads autobegin a transaction as well; end it so nothing stays open
        self.conn.commit()
        return wanted - found

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def clear_records(self) -> int:
        """Delete every stored record."""
        removed = self._execute(delete(globals_table))
        logger.debug("Cleared globals: rows=%d", removed)
        return removed

    def replace_records(self, batch: Sequence[Record]) -> int:
        """
        Delete every stored record, then insert the batch.

        Like an empty map catalog, an empty batch is treated as an upstream
        fault: nothing is deleted and 0 is returned.
        """
        if not batch:
            logger.warning("Empty record batch, keeping stored records")
            return 0

        self.clear_records()
        return self._insert(globals_table, [record_row(r) for r in batch])

    def merge_records(self, batch: Sequence[Record]) -> int:
        """
        Merge records by time_id, overwriting every column on conflict.

        A stored record holding one of the incoming slots under a different
        time_id has been beaten and is removed first, which keeps
        (map_id, game, style, course) unique. The batch itself must hold at
        most one record per slot.
        """
        if not batch:
            return 0

        displaced = 0
        for chunk in _chunks(batch):
            displaced += self._execute(
                delete(globals_table).where(
                    tuple_(
                        globals_table.c.map_id,
                        globals_table.c.game,
                        globals_table.c.style,
                        globals_table.c.course,
                    ).in_([r.slot for r in chunk]),
                    globals_table.c.time_id.not_in([r.time_id for r in chunk]),
                )
            )
        if displaced:
            logger.info("Replaced beaten records: rows=%d", displaced)

        return displaced + self._upsert(globals_table, [record_row(r) for r in batch], ["time_id"])

    def count(self, table: Table) -> int:
        total = self.conn.execute(select(func.count()).select_from(table)).scalar_one()
        self.conn.commit()
        return total
