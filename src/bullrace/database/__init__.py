"""
Database objects and access
"""

from bullrace.database.category import CATEGORY_TYPES, Category
from bullrace.database.entrant import EntrantRun
from bullrace.database.lap import Lap
from bullrace.database.pair import Pair
from bullrace.database.race import Race

__all__ = [
    "CATEGORY_TYPES",
    "Category",
    "Pair",
    "Race",
    "EntrantRun",
    "Lap",
]
