"""
Enums for race management
"""

from enum import StrEnum, auto


class RaceStatus(StrEnum):
    """
    Lifecycle of a race for a category
    """

    UPCOMING = auto()
    """No order has been locked yet"""
    IN_PROGRESS = auto()
    """Order locked, entrants are racing one at a time"""
    COMPLETED = auto()
    """Every entrant has finished or the race was closed by an operator"""


class RunStatus(StrEnum):
    """
    Progress of a single pair through a race
    """

    WAITING = auto()
    """Queued, the clock has not been started"""
    RACING = auto()
    """The clock is running for the pair"""
    COMPLETED = auto()
    """The final lap has been recorded"""


class ApprovalStatus(StrEnum):
    """
    Review state of a registration
    """

    PENDING = auto()
    APPROVED = auto()
    REJECTED = auto()


class FinishMode(StrEnum):
    """
    What ended a run
    """

    OPERATOR = auto()
    """The operator stopped the clock; the final lap distance is measured"""
    TIME_LIMIT = auto()
    """The category duration ran out"""


RACE_TRANSITIONS: dict[RaceStatus, frozenset[RaceStatus]] = {
    RaceStatus.UPCOMING: frozenset({RaceStatus.IN_PROGRESS}),
    RaceStatus.IN_PROGRESS: frozenset({RaceStatus.COMPLETED}),
    RaceStatus.COMPLETED: frozenset(),
}
"""Legal race lifecycle transitions"""

RUN_TRANSITIONS: dict[RunStatus, frozenset[RunStatus]] = {
    RunStatus.WAITING: frozenset({RunStatus.RACING}),
    RunStatus.RACING: frozenset({RunStatus.COMPLETED}),
    RunStatus.COMPLETED: frozenset(),
}
"""Legal entrant run transitions"""
