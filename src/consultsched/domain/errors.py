"""Exceptions raised by the scheduling engine.

None of these are caught and retried inside the engine: they abort the
operation that raised them and propagate to the caller.
"""

from datetime import datetime
from typing import Any, Optional


class SchedulingError(Exception):
    """Base class for scheduling failures."""


class CapacityError(SchedulingError):
    """The requested hours do not fit in the available slots."""


class NoFreeSlotsAvailableError(CapacityError):
    """No free slot was found within a search window."""

    def __init__(
        self,
        message: str = "no more slots available",
        after: Optional[datetime] = None,
        before: Optional[datetime] = None,
    ):
        self.after = after
        self.before = before
        if after is not None or before is not None:
            message = f"{message} in [{after}, {before})"
        super().__init__(message)


class CapacityExhaustedError(CapacityError):
    """Contracted hours exceed the capacity of the schedule."""


class WatchdogExhaustedError(SchedulingError):
    """The allocation loop did not converge within its pass ceiling."""


class ScheduleInvariantError(SchedulingError):
    """An internal invariant of the schedule was violated."""


class SlotAlreadyAllocatedError(ScheduleInvariantError):
    """A task was bound to a slot already holding another task."""


class TaskOutsideScheduleError(ScheduleInvariantError):
    """A task spans an hour that has no slot in the schedule."""


class CommandStateError(SchedulingError):
    """A command was executed or undone from the wrong state."""


class InvalidEntityError(SchedulingError):
    """A task or schedule failed validation.

    Attributes:
        entity: The entity that failed validation.
        result: The ValidationResult holding the violations.
    """

    def __init__(self, entity: Any, result: Any):
        self.entity = entity
        self.result = result
        details = "; ".join(str(error) for error in result.errors)
        super().__init__(f"{entity} is not valid: {details}")


class DuplicateContractedServiceError(ValueError):
    """A (contract, service, consultant) triple was registered twice."""
