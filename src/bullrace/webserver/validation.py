"""
Validation Models for API
"""

from pydantic import BaseModel, Field

from bullrace.race.ledger import MAX_OVERRIDE_FEET, MAX_OVERRIDE_INCHES


class LookupParams(BaseModel):
    """
    Model for parsing a record id from the path
    """

    id: int


class CategoryFilterParams(BaseModel):
    """
    Model for limiting results to a single category
    """

    category_id: int | None = None


class HistoryParams(CategoryFilterParams):
    """
    Model for selecting historical results
    """

    year: int = Field(ge=1900, le=9999)


class LockRaceRequest(BaseModel):
    """
    Request to fix the running order of a category
    """

    category_id: int
    pair_ids: list[int] | None = None
    """The running order, defaults to registration order"""
    shuffle: bool = False
    """Randomise the running order"""


class DistanceRequest(BaseModel):
    """
    An operator measured lap distance
    """

    meters: int = Field(ge=0)
    feet: int = Field(default=0, ge=0, le=MAX_OVERRIDE_FEET)
    inches: int = Field(default=0, ge=0, le=MAX_OVERRIDE_INCHES)


class FinishRequest(BaseModel):
    """
    Request to stop the racing entrant's clock
    """

    elapsed_ms: int | None = Field(default=None, ge=0)
    """The elapsed time shown to the operator"""
