"""Response payloads for the query endpoints."""

from typing import List

from pydantic import BaseModel, ConfigDict, Field

from app.models.city import City


class CitiesResponse(BaseModel):
    """A list of matching cities."""

    cities: List[City]


class DistanceResponse(BaseModel):
    """Distance between two cities."""

    model_config = ConfigDict(populate_by_name=True)

    from_city: City = Field(alias="from")
    to_city: City = Field(alias="to")
    unit: str = "km"
    distance: float


class AreaJobAccepted(BaseModel):
    """Returned when an area query has been queued."""

    model_config = ConfigDict(populate_by_name=True)

    results_url: str = Field(alias="resultsUrl")


class ProcessingStatus(BaseModel):
    status: str = "Processing"


class ErrorResponse(BaseModel):
    error: str
