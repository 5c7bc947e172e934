"""
Errors raised by the fasting engine.

Each error carries a human-readable `message` the JSON views return as-is.
"""


class FastingError(Exception):
    """Base class for fasting domain errors."""

    default_message = 'Fasting operation failed'

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class AlreadyActive(FastingError):
    default_message = 'A fast is already in progress'


class NoActiveSession(FastingError):
    default_message = 'No fast is in progress'


class NotFound(FastingError):
    default_message = 'Fast not found'


class InvalidInterval(FastingError):
    default_message = 'End time must be after start time'


class DuplicateOpenSession(FastingError):
    default_message = 'Only one fast can be in progress at a time'


class StorageUnavailable(FastingError):
    default_message = 'Fasting data could not be saved'
