"""
System events
"""

from bullrace.events.broker import EventBroker
from bullrace.events.enums import (
    EventSetupEvt,
    EvtPriority,
    RaceSequenceEvt,
    SpecialEvt,
)

__all__ = [
    "EventBroker",
    "EvtPriority",
    "EventSetupEvt",
    "RaceSequenceEvt",
    "SpecialEvt",
]
