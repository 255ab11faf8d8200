"""
ORM classes for race categories
"""

from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field, TypeAdapter
from tortoise import fields
from tortoise.functions import Max
from tortoise.validators import MaxValueValidator, MinValueValidator

from bullrace.database._base import BullRaceBase
from bullrace.race.entrant import RunRules

if TYPE_CHECKING:
    from bullrace.database.pair import Pair
    from bullrace.database.race import Race

# pylint: disable=R0903,E1136

MIN_DURATION_SEC = 60
MAX_DURATION_SEC = 3600
MIN_LAP_DISTANCE_M = 10
MAX_LAP_DISTANCE_M = 1000

CATEGORY_TYPES = ("Sub-Juniors", "Juniors", "Seniors", "Super Seniors")
"""Commonly used category labels"""


class Category(BullRaceBase):
    """
    Database content for race categories
    """

    type = fields.CharField(max_length=80)
    """The label of the category"""
    race_date = fields.DateField()
    """The day the category races on"""
    race_end_date = fields.DateField(null=True)
    """The last day of a multi-day category"""
    max_duration_sec = fields.IntField(
        validators=[
            MinValueValidator(MIN_DURATION_SEC),
            MaxValueValidator(MAX_DURATION_SEC),
        ]
    )
    """The time limit of each run"""
    lap_distance_meters = fields.IntField(
        validators=[
            MinValueValidator(MIN_LAP_DISTANCE_M),
            MaxValueValidator(MAX_LAP_DISTANCE_M),
        ]
    )
    """The distance credited for a full lap"""
    created_at = fields.DatetimeField(auto_now_add=True)
    modified_at = fields.DatetimeField(auto_now=True)
    pairs: fields.ReverseRelation[Pair]
    """The pairs registered to the category"""
    race: fields.BackwardOneToOneRelation[Race]
    """The race of the category, once its order is locked"""

    class Meta:
        """Tortoise ORM metadata"""

        app = "race"
        table = "category"
        ordering = ("race_date", "id")

    def __repr__(self) -> str:
        return f"<Category {self.id}>"

    @property
    def max_duration_ms(self) -> int:
        """The time limit of each run in milliseconds"""
        return self.max_duration_sec * 1000

    @property
    def rules(self) -> RunRules:
        """
        The limits runs of the category are held to
        """
        return RunRules(
            lap_distance_meters=self.lap_distance_meters,
            max_duration_ms=self.max_duration_ms,
        )

    @property
    async def max_registration_sequence(self) -> int | None:
        """
        Gets the maximum `registration_sequence` used by the pairs of
        the category
        """
        value = await self.pairs.all().annotate(max=Max("registration_sequence")).first()

        if value is not None:
            return getattr(value, "max")

        return None

    async def get_next_registration_sequence(self) -> int:
        """
        The next `registration_sequence` to use

        :return: The recommended integer
        """
        value = await self.max_registration_sequence

        if value is None:
            return 1

        return value + 1


class CategoryModel(BaseModel):
    """
    External category model
    """

    id: int
    type: str
    race_date: date
    race_end_date: date | None = None
    max_duration_sec: int
    lap_distance_meters: int
    created_at: datetime
    modified_at: datetime


class CategoryCreateModel(BaseModel):
    """
    Category creation request body
    """

    type: str = Field(min_length=1, max_length=80)
    race_date: date
    race_end_date: date | None = None
    max_duration_sec: int = Field(ge=MIN_DURATION_SEC, le=MAX_DURATION_SEC)
    lap_distance_meters: int = Field(ge=MIN_LAP_DISTANCE_M, le=MAX_LAP_DISTANCE_M)


class CategoryUpdateModel(BaseModel):
    """
    Category update request body. Only provided fields are changed.
    """

    type: str | None = Field(default=None, min_length=1, max_length=80)
    race_date: date | None = None
    race_end_date: date | None = None
    max_duration_sec: int | None = Field(
        default=None, ge=MIN_DURATION_SEC, le=MAX_DURATION_SEC
    )
    lap_distance_meters: int | None = Field(
        default=None, ge=MIN_LAP_DISTANCE_M, le=MAX_LAP_DISTANCE_M
    )


CATEGORY_ADAPTER = TypeAdapter(CategoryModel)
CATEGORY_LIST_ADAPTER = TypeAdapter(list[CategoryModel])
