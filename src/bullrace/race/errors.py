"""
Race control exceptions
"""


class RaceError(RuntimeError):
    """
    Base class for rejected race control actions
    """


class InvalidTransition(RaceError):
    """
    The requested action is not valid in the current state. Raised
    before any mutation so the stored state is never touched.
    """


class EmptyRace(RaceError):
    """
    An order was locked without any approved pairs
    """


class AlreadyLocked(RaceError):
    """
    The race order has already been locked
    """


class MissingReference(RaceError):
    """
    A record references another record that no longer exists
    """


class StorageError(RaceError):
    """
    A write to the document store failed
    """
