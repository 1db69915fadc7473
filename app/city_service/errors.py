"""Errors raised by the city query service."""


class GeoServiceError(Exception):
    """Base exception for city service failures."""
    pass


class CityNotFoundError(GeoServiceError):
    """Raised when a city guid is not in the dataset."""

    def __init__(self, guid: str):
        super().__init__(f"City not found: {guid}")
        self.guid = guid


class CityPairNotFoundError(CityNotFoundError):
    """Raised when either end of a distance query is unknown."""
    pass


class AreaResultConflictError(GeoServiceError):
    """Raised when a ready area result would be written a second time."""

    def __init__(self, job_id: str):
        super().__init__(f"Area result already stored: {job_id}")
        self.job_id = job_id
