"""Storage for area-query results, keyed by job id."""

import json
import threading
from typing import Dict, List, Optional

from redis import Redis
from redis.exceptions import RedisError

from app.city_service.errors import AreaResultConflictError
from app.config import REDIS_DB, REDIS_HOST, REDIS_PORT
from app.logging_config import logger
from app.models.city import City


class InMemoryAreaResultStore:
    """Process-local result store.

    Background tasks run on the threadpool, so writes go through a lock.
    Entries are never evicted.
    """

    def __init__(self):
        self._results: Dict[str, List[City]] = {}
        self._lock = threading.Lock()

    def save(self, job_id: str, cities: List[City]):
        """Store the result for ``job_id``.

        Raises:
            AreaResultConflictError: If the job already has a result.
        """
        with self._lock:
            if job_id in self._results:
                raise AreaResultConflictError(job_id)
            self._results[job_id] = list(cities)

    def get(self, job_id: str) -> Optional[List[City]]:
        """Return the stored cities, or None while pending or unknown."""
        with self._lock:
            result = self._results.get(job_id)
        return list(result) if result is not None else None

    def ping(self) -> bool:
        return True


class RedisAreaResultStore:
    """Result store shared between worker processes through Redis."""

    def __init__(self, client):
        self.redis_client: Redis = client

    @staticmethod
    def _key(job_id: str) -> str:
        return f"area-result:{job_id}"

    def save(self, job_id: str, cities: List[City]):
        """Store the result for ``job_id`` unless one already exists.

        Raises:
            AreaResultConflictError: If the job already has a result.
        """
        payload = json.dumps([city.to_record() for city in cities])
        # no expiry: a ready result must stay readable
        if not self.redis_client.set(self._key(job_id), payload, nx=True):
            raise AreaResultConflictError(job_id)

    def get(self, job_id: str) -> Optional[List[City]]:
        """Return the stored cities, or None while pending or unknown."""
        raw = self.redis_client.get(self._key(job_id))
        if raw is None:
            return None
        return [City(**record) for record in json.loads(raw)]

    def ping(self) -> bool:
        try:
            self.redis_client.ping()
            return True
        except RedisError as exc:
            logger.error("REDIS_UNAVAILABLE", error=str(exc))
            return False


def create_area_result_store(backend: str):
    """Build the result store named by ``backend``.

    Args:
        backend: ``memory`` or ``redis``.

    Returns:
        A store exposing ``save``, ``get`` and ``ping``.

    Raises:
        ValueError: For an unknown backend name.
    """
    if backend == "memory":
        return InMemoryAreaResultStore()
    if backend == "redis":
        client = Redis(
            host=REDIS_HOST,
            port=REDIS_PORT,
            db=REDIS_DB,
            decode_responses=True,
        )
        return RedisAreaResultStore(client)
    raise ValueError(f"Unknown area results backend: {backend}")
