"""Health checks for the dataset and the area result store."""

from app.logging_config import logger
from app.models.health import ServiceStatus


def dataset_status(city_count: int) -> ServiceStatus:
    """Report the dataset as available once at least one city is loaded."""
    if city_count > 0:
        return ServiceStatus.available
    logger.warning("DATASET_EMPTY")
    return ServiceStatus.not_available


def area_results_status(results) -> ServiceStatus:
    """Check the area result store.

    Returns:
        ServiceStatus.available when the store responds, else not_available.
    """
    if results.ping():
        return ServiceStatus.available
    logger.error("AREA_RESULTS_UNAVAILABLE")
    return ServiceStatus.not_available
