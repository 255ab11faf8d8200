"""
ORM classes for entrant runs
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from pydantic import BaseModel, TypeAdapter
from tortoise import fields

from bullrace.database._base import BullRaceBase
from bullrace.race.enums import RunStatus

if TYPE_CHECKING:
    from bullrace.database.lap import Lap
    from bullrace.database.pair import Pair
    from bullrace.database.race import Race

# pylint: disable=R0903,E1136


class EntrantRun(BullRaceBase):
    """
    Database content for one pair's run in a race
    """

    race: fields.ForeignKeyRelation[Race] = fields.ForeignKeyField(
        "race.Race", related_name="runs"
    )
    pair: fields.ForeignKeyNullableRelation[Pair] = fields.ForeignKeyField(
        "race.Pair", related_name="runs", null=True, on_delete=fields.SET_NULL
    )
    """The racing pair. Cleared when the registration is removed"""
    sequence_index = fields.IntField()
    """1-based position in the race order"""
    status = fields.CharEnumField(RunStatus, max_length=16, default=RunStatus.WAITING)
    started_at = fields.DatetimeField(null=True)
    """The instant the run's clock started"""
    ended_at = fields.DatetimeField(null=True)
    total_elapsed_ms = fields.IntField(null=True)
    """The final time of a completed run"""
    laps: fields.ReverseRelation[Lap]

    class Meta:
        """Tortoise ORM metadata"""

        app = "race"
        table = "entrant_run"
        unique_together = (("race", "sequence_index"),)
        ordering = ("sequence_index",)

    def __repr__(self) -> str:
        return f"<EntrantRun {self.id}>"


class EntrantRunModel(BaseModel):
    """
    External entrant run model
    """

    id: int
    race_id: int
    pair_id: int | None = None
    sequence_index: int
    status: RunStatus
    started_at: datetime | None = None
    ended_at: datetime | None = None
    total_elapsed_ms: int | None = None


ENTRANT_RUN_ADAPTER = TypeAdapter(EntrantRunModel)
ENTRANT_RUN_LIST_ADAPTER = TypeAdapter(list[EntrantRunModel])
