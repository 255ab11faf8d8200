"""
ORM classes for lap data
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, TypeAdapter
from tortoise import fields

from bullrace.database._base import BullRaceBase
from bullrace.race.ledger import DistanceOverride, LapRecord

if TYPE_CHECKING:
    from bullrace.database.entrant import EntrantRun

# pylint: disable=R0903,E1136


class Lap(BullRaceBase):
    """
    Database content for race laps. Laps are never modified once stored.
    """

    run: fields.ForeignKeyRelation[EntrantRun] = fields.ForeignKeyField(
        "race.EntrantRun", related_name="laps"
    )
    """The run the lap belongs to"""
    lap_index = fields.IntField()
    """1-based position of the lap in the run"""
    lap_elapsed_ms = fields.IntField()
    cumulative_elapsed_ms = fields.IntField()
    distance_meters = fields.IntField()
    """The credited distance"""
    override_meters = fields.IntField(null=True)
    override_feet = fields.IntField(null=True)
    override_inches = fields.IntField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        """Tortoise ORM metadata"""

        app = "race"
        table = "lap"
        unique_together = (("run", "lap_index"),)
        ordering = ("lap_index",)

    def __repr__(self) -> str:
        return f"<Lap {self.id}>"

    @staticmethod
    def fields_from_record(record: LapRecord) -> dict[str, Any]:
        """
        Generate the stored fields of a ledger lap. Feet and inches
        are only stored when provided.

        :param record: The ledger lap
        :return: The field values
        """
        override = record.override

        return {
            "lap_index": record.lap_index,
            "lap_elapsed_ms": record.lap_elapsed_ms,
            "cumulative_elapsed_ms": record.cumulative_elapsed_ms,
            "distance_meters": record.distance_meters,
            "override_meters": None if override is None else override.meters,
            "override_feet": override.feet if override and override.feet > 0 else None,
            "override_inches": (
                override.inches if override and override.inches > 0 else None
            ),
        }

    def to_record(self) -> LapRecord:
        """
        Convert the stored lap back into a ledger lap

        :return: The ledger lap
        """
        override = None
        if self.override_meters is not None:
            override = DistanceOverride(
                self.override_meters,
                self.override_feet or 0,
                self.override_inches or 0,
            )

        return LapRecord(
            lap_index=self.lap_index,
            lap_elapsed_ms=self.lap_elapsed_ms,
            cumulative_elapsed_ms=self.cumulative_elapsed_ms,
            distance_meters=self.distance_meters,
            override=override,
        )


class LapModel(BaseModel):
    """
    External lap model
    """

    id: int
    run_id: int
    lap_index: int
    lap_elapsed_ms: int
    cumulative_elapsed_ms: int
    distance_meters: int
    override_meters: int | None = None
    override_feet: int | None = None
    override_inches: int | None = None
    created_at: datetime


LAP_ADAPTER = TypeAdapter(LapModel)
LAP_LIST_ADAPTER = TypeAdapter(list[LapModel])
