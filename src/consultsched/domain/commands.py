"""Recorded, undoable schedule mutations.

Commands form a closed set of variants: AddTask, RemoveTask and MoveTask.
``execute`` and ``undo`` dispatch on the variant. Commands operate on the
schedule's task collection only; keeping a ScheduleManager's slot index in
sync is the manager's job.

A ScheduleChangeset groups commands applied to one schedule in order.
Replaying a changeset in order reproduces its effect; undoing it in
reverse order reverts it.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union

from consultsched.domain.errors import CommandStateError
from consultsched.domain.models import Task, new_id

logger = logging.getLogger(__name__)


class CommandState(Enum):
    """Lifecycle of a command."""

    UNEXECUTED = "unexecuted"
    EXECUTED = "executed"
    UNDONE = "undone"


@dataclass(eq=False)
class TaskCommand:
    """Fields shared by every task command.

    Attributes:
        schedule: The schedule (or consultant view) the command mutates.
        task: The task being added, removed or moved.
        id: Stable identity key.
        created_at: Creation timestamp.
        state: Current lifecycle state.
        order: Position within the owning changeset, assigned on add.
        changeset: Owning changeset, if any.
    """

    schedule: Any
    task: Task
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=datetime.now)
    state: CommandState = CommandState.UNEXECUTED
    order: Optional[int] = None
    changeset: Optional["ScheduleChangeset"] = field(default=None, repr=False)


@dataclass(eq=False)
class AddTask(TaskCommand):
    """Insert a task into the schedule."""


@dataclass(eq=False)
class RemoveTask(TaskCommand):
    """Remove a task from the schedule."""


@dataclass(eq=False)
class MoveTask(TaskCommand):
    """Change a task's start and end.

    The task's current start and end are captured when the command is
    built, so the command can be undone after the task has moved.
    """

    start: Optional[datetime] = None
    end: Optional[datetime] = None
    previous_start: Optional[datetime] = None
    previous_end: Optional[datetime] = None

    def __post_init__(self):
        if self.previous_start is None:
            self.previous_start = self.task.start
        if self.previous_end is None:
            self.previous_end = self.task.end
        if self.start is None:
            self.start = self.task.start
        if self.end is None:
            self.end = self.task.end
        if self.start >= self.end:
            raise ValueError(f"Move target start {self.start} is not before end {self.end}")


ScheduleCommand = Union[AddTask, RemoveTask, MoveTask]


def execute(command: ScheduleCommand) -> None:
    """Apply a command to its schedule.

    Raises:
        CommandStateError: If the command is already executed.
    """
    if command.state is CommandState.EXECUTED:
        raise CommandStateError(f"Command {command.id} already executed")

    match command:
        case AddTask(schedule=schedule, task=task):
            schedule.add_task(task)
        case RemoveTask(schedule=schedule, task=task):
            schedule.remove_task(task)
        case MoveTask(task=task, start=start, end=end):
            task.start = start
            task.end = end
        case _:
            raise TypeError(f"Unsupported command {command!r}")

    command.state = CommandState.EXECUTED
    logger.debug("Executed %s", describe(command))


def undo(command: ScheduleCommand) -> None:
    """Revert an executed command.

    Raises:
        CommandStateError: If the command is not in the executed state.
    """
    if command.state is not CommandState.EXECUTED:
        raise CommandStateError(
            f"Command {command.id} cannot be undone from state {command.state.value}"
        )

    match command:
        case AddTask(schedule=schedule, task=task):
            schedule.remove_task(task)
        case RemoveTask(schedule=schedule, task=task):
            schedule.add_task(task)
        case MoveTask(task=task, previous_start=start, previous_end=end):
            task.start = start
            task.end = end
        case _:
            raise TypeError(f"Unsupported command {command!r}")

    command.state = CommandState.UNDONE
    logger.debug("Undone %s", describe(command))


def describe(command: ScheduleCommand) -> str:
    """Get a one-line human readable description of a command."""
    match command:
        case AddTask(task=task):
            text = f"add {task}"
        case RemoveTask(task=task):
            text = f"remove {task}"
        case MoveTask(task=task):
            text = (
                f"move {task.contracted_service} "
                f"{command.previous_start:%Y-%m-%d %H:%M}-{command.previous_end:%H:%M} -> "
                f"{command.start:%Y-%m-%d %H:%M}-{command.end:%H:%M}"
            )
        case _:
            raise TypeError(f"Unsupported command {command!r}")
    if command.order is not None:
        return f"#{command.order} {text}"
    return text


@dataclass(eq=False)
class ScheduleChangeset:
    """An ordered group of commands applied to one schedule.

    Attributes:
        schedule: The schedule the commands mutate.
        id: Stable identity key.
        created_at: Creation timestamp.
        commands: Commands in the order they were added.
    """

    schedule: Any
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=datetime.now)
    commands: list[ScheduleCommand] = field(default_factory=list)
    _last_order: int = field(default=0, init=False, repr=False)

    def add_command(self, command: ScheduleCommand) -> None:
        """Append a command, assigning it the next order number."""
        if any(existing is command for existing in self.commands):
            return
        self._last_order += 1
        command.order = self._last_order
        command.changeset = self
        self.commands.append(command)

    def remove_command(self, command: ScheduleCommand) -> None:
        self.commands = [existing for existing in self.commands if existing is not command]
        if command.changeset is self:
            command.changeset = None

    def execute_all(self) -> None:
        """Execute every pending command in order."""
        for command in self.commands:
            if command.state is not CommandState.EXECUTED:
                execute(command)

    def undo_all(self) -> None:
        """Undo every executed command in reverse order."""
        for command in reversed(self.commands):
            if command.state is CommandState.EXECUTED:
                undo(command)

    def on_premises_changes(self) -> list[ScheduleCommand]:
        """Get the commands touching on-premises tasks.

        These are the changes the recipients' supervising body must be
        told about.
        """
        return [command for command in self.commands if command.task.on_premises]

    def describe(self) -> list[str]:
        return [describe(command) for command in self.commands]

    def __len__(self) -> int:
        return len(self.commands)
