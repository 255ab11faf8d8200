"""
Test the pair database
"""

import pytest
from tortoise.exceptions import IntegrityError

from bullrace.database import Category, Pair
from bullrace.race.enums import ApprovalStatus


@pytest.mark.asyncio
async def test_pair_owners(basic_category: Category, register_pair):
    """
    Owners are joined for display
    """
    pair: Pair = await register_pair(basic_category, "Thunder")
    assert pair.owners == "Thunder owner"

    pair.owner2 = "Second owner"
    await pair.save()

    pair = await Pair.get(id=pair.id)
    assert pair.owners == "Thunder owner & Second owner"


@pytest.mark.asyncio
async def test_default_status(basic_category: Category):
    """
    New registrations wait for review
    """
    pair = await Pair.create(
        display_name="Thunder",
        owner1="Owner",
        contact="555-0100",
        category=basic_category,
        registration_sequence=1,
    )

    assert pair.approval_status == ApprovalStatus.PENDING
    assert pair.race_sequence is None


@pytest.mark.asyncio
async def test_unique_registration(basic_category: Category, register_pair):
    """
    A registration sequence is used once per category
    """
    await register_pair(basic_category, "Thunder")

    with pytest.raises(IntegrityError):
        await Pair.create(
            display_name="Copy",
            owner1="Owner",
            contact="555-0100",
            category=basic_category,
            registration_sequence=1,
        )


@pytest.mark.asyncio
async def test_category_pairs(basic_pairs: list[Pair], basic_category: Category):
    """
    Pairs are listed in registration order
    """
    pairs = await basic_category.pairs.all()

    assert [pair.display_name for pair in pairs] == ["Thunder", "Lightning", "Storm"]
    assert [pair.registration_sequence for pair in pairs] == [1, 2, 3]
