"""
Database utilities for the globals store.

Provides engine/connection management and schema initialization for the sync job.
Tables are defined with SQLAlchemy Core so the same upsert code runs against
MySQL in production and SQLite in development and tests.
"""

import logging

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    UniqueConstraint,
    create_engine,
    event,
)
from sqlalchemy.engine import URL, Connection, Engine

from utils.config import Settings

logger = logging.getLogger(__name__)

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("user_id", BigInteger, primary_key=True, autoincrement=False),
    Column("username", String(64), nullable=False),
)

maps = Table(
    "maps",
    metadata,
    Column("map_id", BigInteger, primary_key=True, autoincrement=False),
    Column("name", String(255), nullable=False),
    Column("creator", String(255), nullable=False),
    Column("game", Integer, nullable=False),
    Column("date", DateTime, nullable=False),
    Column("created_at", DateTime, nullable=False),
    Column("updated_at", DateTime, nullable=False),
    Column("submitter", BigInteger, nullable=False),
    Column("small_thumb", String(255)),
    Column("large_thumb", String(255)),
    Column("asset_version", BigInteger, nullable=False),
    Column("load_count", Integer, nullable=False),
    Column("modes", Integer, nullable=False),
)

globals_table = Table(
    "globals",
    metadata,
    Column("time_id", BigInteger, primary_key=True, autoincrement=False),
    Column("user_id", BigInteger, ForeignKey("users.user_id"), nullable=False),
    Column("map_id", BigInteger, ForeignKey("maps.map_id"), nullable=False),
    Column("game", Integer, nullable=False),
    Column("style", Integer, nullable=False),
    Column("course", Integer, nullable=False),
    Column("date", DateTime, nullable=False),
    Column("time", Integer, nullable=False),
    UniqueConstraint("map_id", "game", "style", "course", name="map_index"),
    Index("user_index", "user_id", "game", "style", "course"),
)


def build_database_url(settings: Settings) -> URL | str:
    """DATABASE_URL when set, otherwise a URL assembled from the DB_* settings."""
    if settings.DATABASE_URL:
        return settings.DATABASE_URL
    return URL.create(
        settings.DB_DRIVER,
        username=settings.DB_USER,
        password=settings.DB_PASSWORD,
        host=settings.DB_HOST,
        port=settings.DB_PORT,
        database=settings.DB_NAME,
    )


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def get_engine(url: URL | str) -> Engine:
    """
    Create an engine for the globals database.

    SQLite connections get foreign key enforcement switched on, which SQLite
    leaves off by default.
    """
    engine = create_engine(url, pool_pre_ping=True)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def get_conn(engine: Engine) -> Connection:
    """
    Open the single connection the sync run writes through.

    Raises:
        sqlalchemy.exc.SQLAlchemyError: If connection fails
    """
    return engine.connect()


def init_schema(engine: Engine) -> None:
    """
    Create users, maps and globals if they don't exist.

    Raises:
        sqlalchemy.exc.SQLAlchemyError: If schema creation fails
    """
    metadata.create_all(engine, checkfirst=True)
    logger.info("DB schema ready")
