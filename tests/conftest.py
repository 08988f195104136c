"""Shared pytest fixtures and configuration."""

from __future__ import annotations

import os
from typing import Any

import httpx
import pytest

# Required secrets must exist before any settings are built
os.environ.setdefault("DB_USER", "test_user")
os.environ.setdefault("DB_PASSWORD", "test_password")
os.environ.setdefault("API_KEY", "test_key")

from apps.saver.sink import UpsertSink  # noqa: E402
from utils.config import Settings  # noqa: E402
from utils.db import get_engine, init_schema  # noqa: E402

API_BASE = "https://api.strafes.net/api/v1"
WR_ENDPOINT = f"{API_BASE}/time/worldrecord"
MAP_ENDPOINT = f"{API_BASE}/map"


def wr_item(
    time_id: int,
    map_id: int = 1,
    user_id: int = 1,
    username: str | None = None,
    game: int = 1,
    style: int = 1,
    course: int = 0,
    date: str = "2024-01-01T00:00:00Z",
    time: int = 12345,
) -> dict[str, Any]:
    """Raw /time/worldrecord item."""
    return {
        "id": time_id,
        "time": time,
        "date": date,
        "game_id": game,
        "style_id": style,
        "mode_id": course,
        "user": {"id": user_id, "username": username or f"user{user_id}"},
        "map": {"id": map_id},
    }


def map_item(map_id: int, name: str | None = None, game: int = 1, load_count: int = 10) -> dict[str, Any]:
    """Raw /map item."""
    return {
        "id": map_id,
        "display_name": name or f"map_{map_id}",
        "creator": "mapper",
        "game_id": game,
        "date": "2020-05-01T12:00:00Z",
        "created_at": "2020-05-01T12:00:00Z",
        "updated_at": "2023-02-01T08:30:00Z",
        "submitter": 1000 + map_id,
        "asset_version": 3,
        "load_count": load_count,
        "modes": 1,
    }


def wr_pages(count: int, page_size: int = 100, first_id: int = 1) -> dict[int, list[dict[str, Any]]]:
    """`count` records with distinct time ids and slots, split into full pages."""
    items = [
        wr_item(time_id=i, map_id=i % 10 + 1, user_id=i % 7 + 1, style=i // 10 + 1)
        for i in range(first_id, first_id + count)
    ]
    return {
        n + 1: items[start : start + page_size]
        for n, start in enumerate(range(0, len(items), page_size))
    }


class FakeStrafesApi:
    """In-process StrafesNET + thumbnail API served through httpx.MockTransport."""

    def __init__(self) -> None:
        self.wr_pages: dict[int, list[dict[str, Any]]] = {}
        self.map_pages: dict[int, list[dict[str, Any]]] = {}
        self.wr_fail_pages: set[int] = set()
        self.map_fail = False
        self.thumbnail_fail_sizes: set[str] = set()
        self.burst: dict[int, int] = {}
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if request.url.host == "thumbnails.roblox.com":
            return self._thumbnails(request)

        page = int(request.url.params.get("page_number", "1"))
        headers = {}
        if page in self.burst:
            headers["X-Rate-Limit-Burst"] = str(self.burst[page])

        if request.url.path.endswith("/time/worldrecord"):
            if page in self.wr_fail_pages:
                return httpx.Response(500, headers=headers)
            return httpx.Response(200, json={"data": self.wr_pages.get(page, [])}, headers=headers)

        if request.url.path.endswith("/map"):
            if self.map_fail:
                return httpx.Response(503)
            return httpx.Response(200, json={"data": self.map_pages.get(page, [])}, headers=headers)

        return httpx.Response(404)

    def _thumbnails(self, request: httpx.Request) -> httpx.Response:
        size = request.url.params["size"]
        if size in self.thumbnail_fail_sizes:
            return httpx.Response(500)
        ids = [int(i) for i in request.url.params["assetIds"].split(",")]
        return httpx.Response(
            200,
            json={
                "data": [
                    {
                        "targetId": asset_id,
                        "state": "Completed",
                        "imageUrl": f"https://tr.rbxcdn.com/{asset_id}/{size}/Image/Png",
                    }
                    for asset_id in ids
                ]
            },
        )

    def pages_requested(self, path_suffix: str) -> list[int]:
        return [
            int(r.url.params["page_number"])
            for r in self.requests
            if r.url.path.endswith(path_suffix)
        ]

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


class RecordingSleep:
    """Stands in for asyncio.sleep and records requested durations."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def settings():
    return Settings(
        DB_USER="test_user",
        DB_PASSWORD="test_password",
        API_KEY="test_key",
        DATABASE_URL="sqlite://",
        _env_file=None,
    )


@pytest.fixture
def fake_api():
    return FakeStrafesApi()


@pytest.fixture
async def client(fake_api):
    async with fake_api.client() as http_client:
        yield http_client


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def engine():
    db_engine = get_engine("sqlite://")
    init_schema(db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture
def conn(engine):
    connection = engine.connect()
    yield connection
    connection.close()


@pytest.fixture
def sink(conn):
    return UpsertSink(conn)
