"""
Enums for system events
"""

from dataclasses import dataclass
from enum import Enum, IntEnum, auto


class EvtPriority(IntEnum):
    """
    The priority of the event over other events that may
    be queued for a subscriber. Lower values are delivered first.
    """

    HIGHEST = auto()
    HIGHER = auto()
    HIGH = auto()
    MEDIUM = auto()
    LOW = auto()
    LOWER = auto()
    LOWEST = auto()


@dataclass
class _EvtData:
    """
    The dataclass used to define event enums
    """

    priority: EvtPriority
    """The priority associated with the event"""
    id: str
    """Identifier for the event"""


class _ApplicationEvt(_EvtData, Enum):
    """
    Parent enum for system events. Primarily
    used for typing.
    """

    @staticmethod
    def _generate_next_value_(name: str, *_):
        """
        Return the lower-cased version of the member name. Follows
        the method defined for StrEnum in the standard library
        """
        return name.lower()


class SpecialEvt(_ApplicationEvt):
    """
    Special Events
    """

    HEARTBEAT = EvtPriority.LOW, auto()
    STARTUP = EvtPriority.HIGHEST, auto()
    SHUTDOWN = EvtPriority.HIGHEST, auto()


class EventSetupEvt(_ApplicationEvt):
    """
    Events associated with modification to categories and registrations
    """

    CATEGORY_ADD = EvtPriority.MEDIUM, auto()
    CATEGORY_ALTER = EvtPriority.MEDIUM, auto()
    CATEGORY_DELETE = EvtPriority.MEDIUM, auto()
    PAIR_ADD = EvtPriority.MEDIUM, auto()
    PAIR_STATUS = EvtPriority.MEDIUM, auto()


class RaceSequenceEvt(_ApplicationEvt):
    """
    Events associated with a live race
    """

    RACE_LOCK = EvtPriority.HIGHEST, auto()
    RACE_COMPLETE = EvtPriority.HIGHEST, auto()
    ENTRANT_BEGIN = EvtPriority.HIGHEST, auto()
    ENTRANT_LAP = EvtPriority.HIGHER, auto()
    ENTRANT_FINAL_LAP_PENDING = EvtPriority.HIGHER, auto()
    ENTRANT_FINISH = EvtPriority.HIGHEST, auto()
    ENTRANT_TIME_LIMIT = EvtPriority.HIGHEST, auto()
    ENTRANT_ADVANCE = EvtPriority.HIGH, auto()
    CLOCK_TICK = EvtPriority.LOWEST, auto()
