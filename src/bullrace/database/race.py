"""
ORM classes for races
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from pydantic import BaseModel, TypeAdapter
from tortoise import fields

from bullrace.database._base import BullRaceBase
from bullrace.race.enums import RaceStatus

if TYPE_CHECKING:
    from bullrace.database.category import Category
    from bullrace.database.entrant import EntrantRun

# pylint: disable=R0903,E1136


class Race(BullRaceBase):
    """
    Database content for the race of a category
    """

    category: fields.OneToOneRelation[Category] = fields.OneToOneField(
        "race.Category", related_name="race"
    )
    """The category being raced. A category has at most one race"""
    status = fields.CharEnumField(
        RaceStatus, max_length=16, default=RaceStatus.UPCOMING
    )
    order_locked = fields.BooleanField(default=False)
    """Whether the running order is fixed"""
    started_at = fields.DatetimeField(null=True)
    completed_at = fields.DatetimeField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True)
    runs: fields.ReverseRelation[EntrantRun]
    """The runs of the race"""

    class Meta:
        """Tortoise ORM metadata"""

        app = "race"
        table = "race"
        ordering = ("-created_at", "-id")

    def __repr__(self) -> str:
        return f"<Race {self.id}>"


class RaceModel(BaseModel):
    """
    External race model
    """

    id: int
    category_id: int
    status: RaceStatus
    order_locked: bool
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime


RACE_ADAPTER = TypeAdapter(RaceModel)
RACE_LIST_ADAPTER = TypeAdapter(list[RaceModel])
