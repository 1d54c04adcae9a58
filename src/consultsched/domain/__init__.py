"""Domain models, calendar rules and schedule mutations."""

from consultsched.domain.calendar import (
    BusinessCalendar,
    ItalianBusinessCalendar,
    ceil_to_slot,
    floor_to_slot,
)
from consultsched.domain.commands import (
    AddTask,
    CommandState,
    MoveTask,
    RemoveTask,
    ScheduleChangeset,
    ScheduleCommand,
    execute,
    undo,
)
from consultsched.domain.models import (
    Consultant,
    Contract,
    ContractedService,
    Recipient,
    Service,
    Task,
)
from consultsched.domain.repository import (
    ContractedServiceRepository,
    InMemoryContractedServiceRepository,
    InMemoryPersistence,
    Persistence,
)
from consultsched.domain.schedule import (
    ConsultantScheduleView,
    Schedule,
    SearchDirection,
    Slot,
)

__all__ = [
    # Models
    "Consultant",
    "Contract",
    "ContractedService",
    "Recipient",
    "Service",
    "Task",
    # Schedule
    "ConsultantScheduleView",
    "Schedule",
    "SearchDirection",
    "Slot",
    # Calendar
    "BusinessCalendar",
    "ItalianBusinessCalendar",
    "ceil_to_slot",
    "floor_to_slot",
    # Commands
    "AddTask",
    "CommandState",
    "MoveTask",
    "RemoveTask",
    "ScheduleChangeset",
    "ScheduleCommand",
    "execute",
    "undo",
    # Collaborators
    "ContractedServiceRepository",
    "InMemoryContractedServiceRepository",
    "InMemoryPersistence",
    "Persistence",
]
