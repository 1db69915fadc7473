"""City record model for the static dataset."""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class City(BaseModel):
    """One entry of the city dataset.

    Fields not declared here are kept as-is so exports reproduce the
    source records.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow", frozen=True)

    guid: str
    name: Optional[str] = None
    latitude: float
    longitude: float
    tags: List[str] = Field(default_factory=list)
    is_active: bool = Field(default=False, alias="isActive")

    def to_record(self) -> dict:
        """Return the wire representation, omitting fields absent from the source."""
        return self.model_dump(mode="json", by_alias=True, exclude_unset=True)
