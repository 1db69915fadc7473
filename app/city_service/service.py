"""City queries: tag filter, distances, area jobs and export."""

import json
import uuid
from typing import List, Optional

from prometheus_client import Counter

from app.city_service.errors import CityNotFoundError, CityPairNotFoundError
from app.dataset.store import CityStore
from app.geo.distance import haversine_distance_km
from app.logging_config import logger
from app.models.city import City
from app.models.responses import DistanceResponse

AREA_JOBS_SUBMITTED = Counter("area_jobs_submitted_total", "Area queries submitted")
AREA_JOBS_COMPLETED = Counter("area_jobs_completed_total", "Area queries completed")


def new_job_id() -> str:
    """Return a fresh identifier for an area job."""
    return str(uuid.uuid4())


class GeoService:
    """Owns the dataset and the area result store for the running app."""

    def __init__(self, store: CityStore, results, base_url: str):
        self.store = store
        self.results = results
        self.base_url = base_url.rstrip("/")

    def cities_by_tag(self, tag: str, is_active: bool) -> List[City]:
        return self.store.filter_by_tag_and_active(tag, is_active)

    def distance_between(self, from_guid: str, to_guid: str) -> DistanceResponse:
        """Compute the distance between two dataset cities.

        Args:
            from_guid: Guid of the first city.
            to_guid: Guid of the second city.

        Returns:
            Both cities and the distance between them in km.

        Raises:
            CityPairNotFoundError: If either guid is unknown.
        """
        from_city = self.store.find_by_guid(from_guid)
        to_city = self.store.find_by_guid(to_guid)
        if from_city is None:
            raise CityPairNotFoundError(from_guid)
        if to_city is None:
            raise CityPairNotFoundError(to_guid)
        distance = haversine_distance_km(
            from_city.latitude, from_city.longitude, to_city.latitude, to_city.longitude
        )
        return DistanceResponse(
            from_city=from_city, to_city=to_city, unit="km", distance=distance
        )

    def submit_area_job(self, from_guid: str):
        """Resolve the origin city and allocate a job id for an area query.

        Returns:
            Tuple of (job id, origin city).

        Raises:
            CityNotFoundError: If the origin guid is unknown.
        """
        origin = self.store.find_by_guid(from_guid)
        if origin is None:
            raise CityNotFoundError(from_guid)
        job_id = new_job_id()
        AREA_JOBS_SUBMITTED.inc()
        logger.info("AREA_JOB_SUBMITTED", job_id=job_id, origin=from_guid)
        return job_id, origin

    def results_url(self, job_id: str) -> str:
        return f"{self.base_url}/area-result/{job_id}"

    def compute_area(self, job_id: str, origin: City, radius_km: float):
        """Find cities around ``origin`` and store them under ``job_id``."""
        try:
            cities = self.store.within_radius(origin, radius_km)
            self.results.save(job_id, cities)
        except Exception as exc:
            logger.error("AREA_JOB_FAILED", job_id=job_id, error=str(exc))
            raise
        AREA_JOBS_COMPLETED.inc()
        logger.info("AREA_JOB_COMPLETED", job_id=job_id, cities=len(cities))

    def area_result(self, job_id: str) -> Optional[List[City]]:
        return self.results.get(job_id)

    def export_json(self) -> str:
        """Serialize the whole dataset as indented JSON."""
        return json.dumps(self.store.records(), indent=2, ensure_ascii=False)
