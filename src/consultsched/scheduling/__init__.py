"""Scheduling engine: slot index management and schedule generation."""

from consultsched.domain.errors import (
    CapacityError,
    CapacityExhaustedError,
    CommandStateError,
    InvalidEntityError,
    NoFreeSlotsAvailableError,
    ScheduleInvariantError,
    SchedulingError,
    SlotAlreadyAllocatedError,
    TaskOutsideScheduleError,
    WatchdogExhaustedError,
)
from consultsched.scheduling.feasibility import (
    CapacityChecker,
    FeasibilityConfig,
    FeasibilityResult,
)
from consultsched.scheduling.generator import (
    ConsultantScheduleGenerator,
    GeneratorConfig,
)
from consultsched.scheduling.manager import ScheduleManager, ScheduleManagerFactory
from consultsched.scheduling.planner import PlanResult, SchedulePlanner

__all__ = [
    # Engine
    "ConsultantScheduleGenerator",
    "GeneratorConfig",
    "ScheduleManager",
    "ScheduleManagerFactory",
    "SchedulePlanner",
    "PlanResult",
    # Capacity check
    "CapacityChecker",
    "FeasibilityConfig",
    "FeasibilityResult",
    # Errors
    "CapacityError",
    "CapacityExhaustedError",
    "CommandStateError",
    "InvalidEntityError",
    "NoFreeSlotsAvailableError",
    "ScheduleInvariantError",
    "SchedulingError",
    "SlotAlreadyAllocatedError",
    "TaskOutsideScheduleError",
    "WatchdogExhaustedError",
]
