"""
Pydantic Schemas - Data Validation Models

Defines the typed entities the sync engine works with and the upstream payload
shapes they are parsed from:
- StrafesNET world-record and map pages
- Roblox thumbnail batch entries
- Stored entities (User, Map, Record)

Usage:
    from utils.schemas import parse_record

    record = parse_record(raw_item)  # raises MalformedPayloadError on mismatch
"""

from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, Callable, Optional

from pydantic import BaseModel, Field, ValidationError, validator

from utils.errors import MalformedPayloadError

INT32_MAX = 2**31 - 1


class Game(IntEnum):
    BHOP = 1
    SURF = 2
    FLY_TRIALS = 5


def _to_utc_naive(value: datetime) -> datetime:
    """Stored datetimes are naive UTC."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


# ---------------------------------------------------------------------------
# Stored entities
# ---------------------------------------------------------------------------


class User(BaseModel):
    user_id: int = Field(..., description="StrafesNET user id")
    username: str = Field(..., description="Display username")


class ThumbnailPair(BaseModel):
    """Small and large image URL for one asset. Never persisted on its own."""

    asset_id: int
    small_url: Optional[str] = None
    large_url: Optional[str] = None


class Map(BaseModel):
    """Map metadata as stored in the maps table.

    map_id is the Roblox asset id, which is also the thumbnail lookup key.
    Thumbnail URLs stay None when resolution failed for the asset.
    """

    map_id: int
    name: str
    creator: str
    game: Game
    date: datetime
    created_at: datetime
    updated_at: datetime
    submitter: int
    small_thumbnail_url: Optional[str] = None
    large_thumbnail_url: Optional[str] = None
    asset_version: int
    load_count: int = Field(..., ge=0)
    modes: int = Field(..., ge=0, description="Bitmask of available courses")

    @validator("date", "created_at", "updated_at")
    def normalize_datetime(cls, v: datetime) -> datetime:
        return _to_utc_naive(v)

    def with_thumbnails(self, pair: Optional[ThumbnailPair]) -> "Map":
        if pair is None:
            return self
        return self.model_copy(
            update={
                "small_thumbnail_url": pair.small_url,
                "large_thumbnail_url": pair.large_url,
            }
        )


class Record(BaseModel):
    """A world-record time entry (one row in globals)."""

    time_id: int
    user_id: int
    map_id: int
    game: Game
    style: int = Field(..., ge=0)
    course: int = Field(..., ge=0, description="0 is the main course, N is bonus N")
    date: datetime
    time: int = Field(..., ge=0, le=INT32_MAX, description="Completion time in milliseconds")

    @validator("date")
    def normalize_datetime(cls, v: datetime) -> datetime:
        return _to_utc_naive(v)

    @property
    def slot(self) -> tuple[int, int, int, int]:
        """The (map_id, game, style, course) ranking slot this record holds."""
        return (self.map_id, int(self.game), self.style, self.course)


# ---------------------------------------------------------------------------
# Upstream payloads
# ---------------------------------------------------------------------------


class UserRef(BaseModel):
    id: int
    username: str


class MapRef(BaseModel):
    id: int


class RecordPayload(BaseModel):
    """One item of a /time/worldrecord page."""

    id: int
    time: int
    date: datetime
    game_id: Game
    style_id: int
    mode_id: int
    user: UserRef
    map: MapRef

    def to_record(self) -> Record:
        return Record(
            time_id=self.id,
            user_id=self.user.id,
            map_id=self.map.id,
            game=self.game_id,
            style=self.style_id,
            course=self.mode_id,
            date=self.date,
            time=self.time,
        )


class MapPayload(BaseModel):
    """One item of a /map page."""

    id: int
    display_name: str
    creator: str
    game_id: Game
    date: datetime
    created_at: datetime
    updated_at: datetime
    submitter: int
    asset_version: int
    load_count: int
    modes: int

    def to_map(self) -> Map:
        return Map(
            map_id=self.id,
            name=self.display_name,
            creator=self.creator,
            game=self.game_id,
            date=self.date,
            created_at=self.created_at,
            updated_at=self.updated_at,
            submitter=self.submitter,
            asset_version=self.asset_version,
            load_count=self.load_count,
            modes=self.modes,
        )


class ThumbnailEntry(BaseModel):
    """One item of a thumbnail batch response."""

    targetId: int
    state: str
    imageUrl: Optional[str] = None

    @property
    def url(self) -> Optional[str]:
        return self.imageUrl if self.state == "Completed" else None


class ParsedRecord(BaseModel):
    """A record together with the user it references."""

    record: Record
    user: User


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------


def page_items(body: Any) -> list[Any]:
    """Return the item list of a `{"data": [...]}` page envelope."""
    if not isinstance(body, dict) or not isinstance(body.get("data"), list):
        raise MalformedPayloadError(
            "Page envelope has no 'data' list",
            details={"type": type(body).__name__},
        )
    return body["data"]


def _parse(model: type[BaseModel], raw: Any, convert: Callable[[Any], Any]) -> Any:
    try:
        return convert(model.model_validate(raw))
    except ValidationError as e:
        raise MalformedPayloadError(
            f"Malformed upstream {model.__name__}: {e.error_count()} error(s)",
            details={"errors": e.errors(include_url=False)},
        ) from e


def parse_record(raw: Any) -> ParsedRecord:
    return _parse(
        RecordPayload,
        raw,
        lambda p: ParsedRecord(
            record=p.to_record(),
            user=User(user_id=p.user.id, username=p.user.username),
        ),
    )


def parse_map(raw: Any) -> Map:
    return _parse(MapPayload, raw, lambda p: p.to_map())


def parse_thumbnail(raw: Any) -> ThumbnailEntry:
    return _parse(ThumbnailEntry, raw, lambda p: p)
