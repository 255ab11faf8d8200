"""
ORM classes for registered bull pairs
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field, TypeAdapter
from tortoise import fields

from bullrace.database._base import BullRaceBase
from bullrace.race.enums import ApprovalStatus

if TYPE_CHECKING:
    from bullrace.database.category import Category
    from bullrace.database.entrant import EntrantRun

# pylint: disable=R0903,E1136


class Pair(BullRaceBase):
    """
    Database content for a registered pair of bulls
    """

    lock = asyncio.Lock()
    """Use when claiming a new `registration_sequence` during initial creation"""

    display_name = fields.CharField(max_length=120)
    """The name the pair races under"""
    owner1 = fields.CharField(max_length=120)
    """The primary owner"""
    owner2 = fields.CharField(max_length=120, null=True)
    """The co-owner, if any"""
    contact = fields.CharField(max_length=40)
    """Phone number of the owners"""
    email = fields.CharField(max_length=120, null=True)
    category: fields.ForeignKeyRelation[Category] = fields.ForeignKeyField(
        "race.Category", related_name="pairs"
    )
    """The category the pair is registered to"""
    approval_status = fields.CharEnumField(
        ApprovalStatus, max_length=16, default=ApprovalStatus.PENDING
    )
    """Review state of the registration"""
    registration_sequence = fields.IntField()
    """Registration order within the category"""
    race_sequence = fields.IntField(null=True)
    """Position in the locked race order"""
    created_at = fields.DatetimeField(auto_now_add=True)
    modified_at = fields.DatetimeField(auto_now=True)
    runs: fields.ReverseRelation[EntrantRun]

    class Meta:
        """Tortoise ORM metadata"""

        app = "race"
        table = "pair"
        unique_together = (("category", "registration_sequence"),)
        ordering = ("registration_sequence",)

    def __repr__(self) -> str:
        return f"<Pair {self.id}>"

    @property
    def owners(self) -> str:
        """
        The owners of the pair for display

        :return: The joined owner names
        """
        if self.owner2:
            return f"{self.owner1} & {self.owner2}"

        return self.owner1


class PairModel(BaseModel):
    """
    External pair model
    """

    id: int
    display_name: str
    owner1: str
    owner2: str | None = None
    contact: str
    email: str | None = None
    category_id: int
    approval_status: ApprovalStatus
    registration_sequence: int
    race_sequence: int | None = None
    created_at: datetime


class PairCreateModel(BaseModel):
    """
    Pair registration request body
    """

    display_name: str = Field(min_length=1, max_length=120)
    owner1: str = Field(min_length=1, max_length=120)
    owner2: str | None = Field(default=None, max_length=120)
    contact: str = Field(min_length=1, max_length=40)
    email: str | None = Field(default=None, max_length=120)
    category_id: int


class PairStatusModel(BaseModel):
    """
    Pair approval request body
    """

    approval_status: ApprovalStatus


PAIR_ADAPTER = TypeAdapter(PairModel)
PAIR_LIST_ADAPTER = TypeAdapter(list[PairModel])
