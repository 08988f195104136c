"""
Map Catalog Source

Downloads the complete map listing and attaches thumbnail URLs. The listing
is fetched strictly: a catalog with a missing page would drop maps that
records still reference, so any failed page fails the whole catalog.
"""

import logging

from apps.extractor.paginator import PaginationDriver
from apps.extractor.thumbnails import ThumbnailResolver
from utils.errors import MapCatalogError, SourceUnavailableError
from utils.schemas import Map, parse_map

logger = logging.getLogger(__name__)


class MapCatalogSource:
    def __init__(self, driver: PaginationDriver, thumbnails: ThumbnailResolver, api_base: str) -> None:
        self.driver = driver
        self.thumbnails = thumbnails
        self.endpoint = f"{api_base.rstrip('/')}/map"

    async def fetch(self) -> list[Map]:
        """
        Fetch every map and merge in its thumbnails.

        Raises:
            MapCatalogError: If any page of the listing could not be fetched
        """
        try:
            maps: list[Map] = await self.driver.collect(
                self.endpoint, parse=parse_map, key=lambda m: m.map_id, strict=True
            )
        except SourceUnavailableError as e:
            raise MapCatalogError(
                f"Map catalog fetch failed: {e.reason}", details=e.details
            ) from e

        pairs = await self.thumbnails.resolve(m.map_id for m in maps)
        maps = [m.with_thumbnails(pairs.get(m.map_id)) for m in maps]

        logger.info("Fetched map catalog: maps=%d", len(maps))
        return maps
