"""In-memory city dataset and its startup loader."""

import json
from typing import Dict, Iterable, List, Optional

from pydantic import TypeAdapter, ValidationError

from app.geo.distance import haversine_distance_km
from app.logging_config import logger
from app.models.city import City

_city_list = TypeAdapter(List[City])


def load_dataset(path: str) -> "CityStore":
    """Load the dataset file into a CityStore.

    Args:
        path: Path to a JSON file holding an array of city records.

    Returns:
        A store over the parsed cities, or an empty store if the file
        cannot be used.
    """
    try:
        with open(path, encoding="utf-8") as fh:
            raw = json.load(fh)
        cities = _city_list.validate_python(raw)
    except (OSError, ValueError, ValidationError) as exc:
        logger.error("DATASET_LOAD_FAILED", path=path, error=str(exc))
        return CityStore([])
    logger.info("DATASET_LOADED", path=path, cities=len(cities))
    return CityStore(cities, records=raw)


class CityStore:
    """Read-only collection of cities, kept in load order."""

    def __init__(
        self, cities: Iterable[City], records: Optional[Iterable[dict]] = None
    ):
        self._cities = tuple(cities)
        # records exactly as loaded, so exports keep key order and number form
        if records is None:
            records = (city.to_record() for city in self._cities)
        self._records = tuple(records)
        self._by_guid: Dict[str, City] = {}
        for city in self._cities:
            if city.guid in self._by_guid:
                logger.warning("DATASET_DUPLICATE_GUID", guid=city.guid)
                continue
            self._by_guid[city.guid] = city

    def __len__(self) -> int:
        return len(self._cities)

    def all(self) -> List[City]:
        return list(self._cities)

    def records(self) -> List[dict]:
        """Return the source records backing the cities, in load order."""
        return list(self._records)

    def find_by_guid(self, guid: str) -> Optional[City]:
        return self._by_guid.get(guid)

    def filter_by_tag_and_active(self, tag: str, is_active: bool) -> List[City]:
        """Return cities carrying ``tag`` whose active flag equals ``is_active``."""
        return [
            city
            for city in self._cities
            if tag in city.tags and city.is_active == is_active
        ]

    def within_radius(self, origin: City, radius_km: float) -> List[City]:
        """Return every other city at most ``radius_km`` away from ``origin``.

        Distances are compared after rounding, so the boundary is inclusive
        at two-decimal precision.
        """
        return [
            city
            for city in self._cities
            if city.guid != origin.guid
            and haversine_distance_km(
                origin.latitude, origin.longitude, city.latitude, city.longitude
            )
            <= radius_km
        ]
