"""Tests for configuration loading and the sync entry point."""

from __future__ import annotations

import pytest

from apps.reconciler.reconciler import SyncReport
from apps.sync import scheduler as scheduler_module
from apps.sync.job import SyncMode
from apps.sync.scheduler import SyncScheduler, main, parse_args
from utils.config import Settings, get_settings
from utils.db import build_database_url
from utils.errors import ConfigurationError, MapCatalogError


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch):
    monkeypatch.chdir("/")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def no_logging_setup(monkeypatch):
    monkeypatch.setattr(scheduler_module, "setup_logging", lambda *args, **kwargs: None)


class TestSettings:
    def test_defaults(self):
        settings = get_settings()

        assert settings.API_BASE == "https://api.strafes.net/api/v1"
        assert settings.API_PAGE_SIZE == 100
        assert settings.FETCH_BURST_SIZE == 5
        assert settings.RATE_LIMIT_THRESHOLD == 70
        assert settings.RATE_LIMIT_COOLDOWN == 60.0
        assert settings.SYNC_SCHEDULE_CRON == "0 * * * *"
        assert settings.RUN_ONCE is True

    def test_cached(self):
        assert get_settings() is get_settings()

    @pytest.mark.parametrize("name", ["DB_USER", "DB_PASSWORD", "API_KEY"])
    def test_missing_secret_raises(self, monkeypatch, name):
        monkeypatch.delenv(name, raising=False)

        with pytest.raises(ConfigurationError) as exc_info:
            get_settings()

        assert name in exc_info.value.message
        assert exc_info.value.details["fields"] == [name]

    def test_empty_secret_raises(self, monkeypatch):
        monkeypatch.setenv("API_KEY", "")

        with pytest.raises(ConfigurationError):
            get_settings()

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("RATE_LIMIT_THRESHOLD", "50")
        monkeypatch.setenv("API_PAGE_SIZE", "25")

        settings = get_settings()

        assert settings.RATE_LIMIT_THRESHOLD == 50
        assert settings.API_PAGE_SIZE == 25


class TestDatabaseUrl:
    def test_explicit_url_wins(self, settings):
        assert build_database_url(settings) == "sqlite://"

    def test_built_from_parts(self):
        settings = Settings(
            DB_USER="sync",
            DB_PASSWORD="p@ss:word",
            API_KEY="k",
            DB_HOST="db.internal",
            DB_PORT=3307,
            DB_NAME="globals",
            _env_file=None,
        )

        url = build_database_url(settings)

        assert url.drivername == "mysql+pymysql"
        assert url.host == "db.internal"
        assert url.port == 3307
        assert url.database == "globals"
        assert url.password == "p@ss:word"


class TestParseArgs:
    def test_no_mode(self):
        assert parse_args([]).mode is None

    def test_seed(self):
        assert parse_args(["seed"]).mode == "seed"


class TestMain:
    async def test_config_error_exits_1(self, monkeypatch, no_logging_setup):
        monkeypatch.delenv("API_KEY", raising=False)

        assert await main([]) == 1

    async def test_success_exits_0(self, monkeypatch, no_logging_setup):
        seen = []

        async def fake_run_sync(mode, settings):
            seen.append(mode)
            return SyncReport(mode=mode.value)

        monkeypatch.setattr(scheduler_module, "run_sync", fake_run_sync)
        monkeypatch.setenv("RUN_ONCE", "true")

        assert await main(["seed"]) == 0
        assert seen == [SyncMode.SEED]

    async def test_default_mode_is_refresh(self, monkeypatch, no_logging_setup):
        seen = []

        async def fake_run_sync(mode, settings):
            seen.append(mode)
            return SyncReport(mode=mode.value)

        monkeypatch.setattr(scheduler_module, "run_sync", fake_run_sync)
        monkeypatch.delenv("RUN_ONCE", raising=False)

        assert await main([]) == 0
        assert seen == [SyncMode.REFRESH]

    async def test_failure_exits_1(self, monkeypatch, no_logging_setup):
        async def failing_run_sync(mode, settings):
            raise MapCatalogError("Map catalog fetch failed: HTTP 503")

        monkeypatch.setattr(scheduler_module, "run_sync", failing_run_sync)
        monkeypatch.setenv("RUN_ONCE", "true")

        assert await main([]) == 1


class TestSyncScheduler:
    async def test_run_once_executes_single_sync(self, monkeypatch, settings):
        calls = []

        async def fake_run_sync(mode, settings):
            calls.append(mode)

        monkeypatch.setattr(scheduler_module, "run_sync", fake_run_sync)

        await SyncScheduler(SyncMode.REFRESH, settings, run_once=True).start()

        assert calls == [SyncMode.REFRESH]

    async def test_execute_sync_reraises(self, monkeypatch, settings):
        async def failing_run_sync(mode, settings):
            raise RuntimeError("boom")

        monkeypatch.setattr(scheduler_module, "run_sync", failing_run_sync)

        with pytest.raises(RuntimeError):
            await SyncScheduler(SyncMode.SEED, settings).execute_sync()
