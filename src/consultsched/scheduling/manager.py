"""Live slot index over a schedule's tasks.

The ScheduleManager binds a schedule's tasks to its slots and keeps
per-consultant lookups in sync while tasks are added, removed and moved
through recorded commands. Slot generation is the expensive, invariant
part; task loading is cheap, so managers are cached per schedule by the
ScheduleManagerFactory and refreshed with ``reload_tasks`` on reuse.
"""

import logging
from collections import defaultdict
from datetime import date, datetime
from typing import Any, Optional

from consultsched.domain.calendar import SLOT_INTERVAL, ceil_to_slot, floor_to_slot
from consultsched.domain.commands import (
    AddTask,
    MoveTask,
    RemoveTask,
    ScheduleChangeset,
    execute,
)
from consultsched.domain.errors import (
    NoFreeSlotsAvailableError,
    ScheduleInvariantError,
    SlotAlreadyAllocatedError,
    TaskOutsideScheduleError,
)
from consultsched.domain.models import Consultant, Task
from consultsched.domain.schedule import Slot

logger = logging.getLogger(__name__)


class ScheduleManager:
    """Maintains the slot bindings and task lookups of one schedule.

    The manager shares the schedule's slot array, so bindings made here are
    visible to the schedule's own slot-search operations.

    Example:
        >>> manager = ScheduleManagerFactory().create_schedule_manager(schedule)
        >>> manager.move_task(task, start, end)
        >>> manager.changeset.describe()
    """

    def __init__(self, schedule: Any):
        self.schedule = schedule
        self.slots: tuple[Slot, ...] = schedule.slots
        self._slots_by_day_hour: dict[tuple[date, int], Slot] = {
            (slot.day, slot.start.hour): slot for slot in self.slots
        }
        self._slots_by_day: dict[date, list[Slot]] = defaultdict(list)
        for slot in self.slots:
            self._slots_by_day[slot.day].append(slot)
        self._tasks_by_consultant: dict[str, dict[str, Task]] = defaultdict(dict)
        self.changeset = ScheduleChangeset(schedule)
        self.reload_tasks()

    # Index maintenance

    def reload_tasks(self) -> None:
        """Rebuild every binding from the schedule's current task collection.

        Slots are cleared and tasks re-attached in start order. The
        changeset is reset.

        Raises:
            TaskOutsideScheduleError: If a task spans an hour with no slot.
            SlotAlreadyAllocatedError: If two tasks claim the same slot.
        """
        for slot in self.slots:
            slot.clear()
        self._tasks_by_consultant = defaultdict(dict)
        self.changeset = ScheduleChangeset(self.schedule)

        for task in sorted(self.schedule.tasks, key=lambda t: t.start):
            self._index_task(task)
        logger.debug("Reloaded %d tasks into %s", len(self.schedule.tasks), self.schedule)

    def _slots_for(self, start: datetime, end: datetime) -> list[Slot]:
        slots = []
        moment = start
        while moment < end:
            slot = self._slots_by_day_hour.get((moment.date(), moment.hour))
            if slot is None or slot.start != moment:
                raise TaskOutsideScheduleError(
                    f"No slot at {moment:%Y-%m-%d %H:%M} in {self.schedule}"
                )
            slots.append(slot)
            moment += SLOT_INTERVAL
        return slots

    def _index_task(self, task: Task) -> None:
        for slot in self._slots_for(task.start, task.end):
            slot.assign_task(task)
        self._tasks_by_consultant[task.consultant_name][task.id] = task

    def _unindex_task(self, task: Task) -> None:
        for slot in self.slots:
            slot.release_task(task)
        self._tasks_by_consultant[task.consultant_name].pop(task.id, None)

    def _check_free(self, task: Task, start: datetime, end: datetime) -> list[Slot]:
        slots = self._slots_for(start, end)
        for slot in slots:
            if slot.is_allocated() and not slot.contains_task(task):
                raise SlotAlreadyAllocatedError(
                    f"Refusing to place task {task.id} at "
                    f"{start:%Y-%m-%d %H:%M}-{end:%H:%M}: slot {slot} is not free"
                )
        return slots

    # Commands API

    def add_task(self, task: Task) -> AddTask:
        """Add a task to the schedule and bind its slots.

        Raises:
            ValueError: If the task is already in the schedule.
            TaskOutsideScheduleError: If the task spans an hour with no slot.
            SlotAlreadyAllocatedError: If a target slot holds another task.
        """
        if self.schedule.contains_task(task):
            raise ValueError(f"Task {task.id} already belongs to {self.schedule}")
        self._check_free(task, task.start, task.end)

        command = AddTask(self.schedule, task)
        execute(command)
        self.changeset.add_command(command)
        self._index_task(task)
        return command

    def remove_task(self, task: Task) -> RemoveTask:
        """Remove a task from the schedule and release its slots."""
        if not self.schedule.contains_task(task):
            raise ValueError(f"Task {task.id} does not belong to {self.schedule}")

        self._unindex_task(task)
        command = RemoveTask(self.schedule, task)
        execute(command)
        self.changeset.add_command(command)
        return command

    def move_task(self, task: Task, start: datetime, end: datetime) -> MoveTask:
        """Move a task to [start, end).

        The target must be hour aligned, within a single day and inside the
        schedule; its slots must be free or already held by the task.

        Raises:
            ValueError: On an invalid target.
            SlotAlreadyAllocatedError: If a target slot holds another task.
        """
        if not self.schedule.contains_task(task):
            raise ValueError(f"Task {task.id} does not belong to {self.schedule}")
        if floor_to_slot(start) != start or floor_to_slot(end) != end:
            raise ValueError(f"Target {start}-{end} is not aligned to whole hours")
        if start >= end:
            raise ValueError(f"Target start {start} is not before end {end}")
        if (end - SLOT_INTERVAL).date() != start.date():
            raise ValueError(f"Target {start}-{end} spans multiple days")
        try:
            self._check_free(task, start, end)
        except TaskOutsideScheduleError as exc:
            raise ValueError(
                f"Target {start}-{end} is outside {self.schedule} or on a holiday"
            ) from exc

        self._unindex_task(task)
        command = MoveTask(self.schedule, task, start=start, end=end)
        execute(command)
        self.changeset.add_command(command)
        self._index_task(task)
        return command

    # Allocation API

    def get_random_free_slot(
        self, after: Optional[datetime] = None, before: Optional[datetime] = None
    ) -> Optional[Slot]:
        return self.schedule.get_random_free_slot(after, before)

    def allocate_adjacent_same_day_free_slots(
        self,
        task: Task,
        min_count: int = 1,
        preferred: int = 1,
        after: Optional[datetime] = None,
        before: Optional[datetime] = None,
    ) -> int:
        """Place a new task on a random run of adjacent free slots.

        The task's start and end are overwritten to cover between
        ``min_count`` and ``preferred`` slots, then the task is added.

        Returns:
            Number of hours allocated.

        Raises:
            NoFreeSlotsAvailableError: If no run of ``min_count`` slots exists.
        """
        if min_count < 1 or preferred < 1 or preferred < min_count:
            raise ValueError(f"Invalid counts min={min_count} preferred={preferred}")
        if self.schedule.contains_task(task):
            raise ValueError(f"Task {task.id} already allocated")

        slots = self.schedule.get_random_same_day_adjacent_free_slots(
            after, before, min_count=min_count, preferred=preferred
        )
        if len(slots) < min_count:
            raise NoFreeSlotsAvailableError(after=after, before=before)

        allocated = slots[: min(preferred, len(slots))]
        task.start = allocated[0].start
        task.end = allocated[-1].end
        self.add_task(task)
        return len(allocated)

    def reallocate_task_to_same_day_adjacent_slots(
        self,
        task: Task,
        after: Optional[datetime] = None,
        before: Optional[datetime] = None,
    ) -> MoveTask:
        """Move a task onto a random run of free slots as long as the task."""
        if not self.schedule.contains_task(task):
            raise ValueError(f"Task {task.id} does not belong to {self.schedule}")

        hours = task.hours
        slots = self.schedule.get_random_same_day_adjacent_free_slots(
            after, before, min_count=hours, preferred=hours, max_count=hours
        )
        if len(slots) != hours or any(slot.is_allocated() for slot in slots):
            raise ScheduleInvariantError(f"Invalid reallocation target for task {task.id}")
        return self.move_task(task, slots[0].start, slots[-1].end)

    # Consolidation

    def consolidate_same_day_adjacent_tasks(self) -> None:
        """Merge back-to-back tasks of the same activity on the same day.

        The earlier task grows to cover the later one, which is removed.
        Total hours are unchanged.
        """
        previous: Optional[Slot] = None
        for slot in self.slots:
            if (
                previous is not None
                and previous.day == slot.day
                and previous.task is not None
                and slot.task is not None
                and previous.task is not slot.task
                and previous.task.same_activity_of(slot.task)
            ):
                earlier = previous.task
                later = slot.task
                later.start = slot.end
                slot.clear()
                slot.assign_task(earlier)
                earlier.end = slot.end
                if later.start >= later.end:
                    logger.debug("Merged task %s into %s", later.id, earlier.id)
                    self.remove_task(later)
            previous = slot

    def consolidate_non_overlapping_tasks_daily(self) -> None:
        """Merge same-activity tasks of each day and lay the day out again.

        Within a day, every task absorbs the hours of later tasks of the
        same activity. The surviving tasks are then placed back to back,
        in start order, from the first slot of the day.

        Raises:
            ScheduleInvariantError: If the day's hours change while merging.
        """
        for day, day_slots in self._slots_by_day.items():
            tasks: list[Task] = []
            for slot in day_slots:
                if slot.task is not None and not any(t is slot.task for t in tasks):
                    tasks.append(slot.task)
            if len(tasks) < 2:
                continue

            tasks.sort(key=lambda t: t.start)
            hours_before = sum(t.hours for t in tasks)
            on_premises_before = sum(t.hours for t in tasks if t.on_premises)
            allocated_before = sum(1 for slot in day_slots if slot.is_allocated())
            if hours_before != allocated_before:
                raise ScheduleInvariantError(
                    f"{day}: tasks cover {hours_before}h but {allocated_before} slots are allocated"
                )

            merged: list[Task] = []
            for task in tasks:
                if any(task is m for m in merged):
                    continue
                matches = [
                    other for other in tasks
                    if other is not task
                    and not any(other is m for m in merged)
                    and other.same_activity_of(task)
                ]
                if not matches:
                    continue
                task.end = task.end + SLOT_INTERVAL * sum(m.hours for m in matches)
                merged.extend(matches)

            if not merged:
                continue

            for task in merged:
                self.remove_task(task)
            survivors = [t for t in tasks if not any(t is m for m in merged)]

            for slot in day_slots:
                slot.clear()
            cursor = 0
            for task in survivors:
                assigned = day_slots[cursor:cursor + task.hours]
                if len(assigned) != task.hours:
                    raise ScheduleInvariantError(f"{day}: not enough slots to lay out task {task.id}")
                task.start = assigned[0].start
                task.end = assigned[-1].end
                for slot in assigned:
                    slot.assign_task(task)
                cursor += len(assigned)

            if (
                sum(t.hours for t in survivors) != hours_before
                or sum(t.hours for t in survivors if t.on_premises) != on_premises_before
                or sum(1 for slot in day_slots if slot.is_allocated()) != allocated_before
            ):
                raise ScheduleInvariantError(f"{day}: consolidation changed the day's hours")
            logger.debug("Consolidated %d tasks on %s", len(merged), day)

    # Lookups

    @property
    def from_(self) -> Optional[datetime]:
        """Start of the first slot."""
        return self.slots[0].start if self.slots else None

    @property
    def to(self) -> Optional[datetime]:
        """End of the last slot."""
        return self.slots[-1].end if self.slots else None

    def get_slot_at(self, moment: datetime) -> Optional[Slot]:
        return self._slots_by_day_hour.get((moment.date(), moment.hour))

    def get_day_slots(self, day: date) -> list[Slot]:
        return list(self._slots_by_day.get(day, []))

    def get_consultant_tasks(self, consultant: Consultant) -> list[Task]:
        return sorted(
            self._tasks_by_consultant.get(consultant.name, {}).values(),
            key=lambda t: t.start,
        )

    def consultant_hours(self, consultant: Consultant) -> int:
        return sum(task.hours for task in self.get_consultant_tasks(consultant))

    def consultant_hours_on_premises(self, consultant: Consultant) -> int:
        return sum(
            task.hours for task in self.get_consultant_tasks(consultant)
            if task.on_premises
        )

    def compute_total_hours(self) -> int:
        return sum(task.hours for task in self.schedule.tasks)

    def create_fitted_window(self, after: datetime, before: datetime) -> tuple[datetime, datetime]:
        """Shrink [after, before) to the schedule's slots.

        ``after`` is ceiled to the next whole hour and ``before`` floored to
        the current one; both are then moved inwards until they hit a slot.

        Returns:
            Tuple of (start of first slot, end of last slot).

        Raises:
            ValueError: If the bounds are reversed or do not overlap the
                schedule, or the fitted window holds no whole slot.
        """
        if after > before:
            raise ValueError(f"after={after} > before={before}")
        if not self.slots:
            raise ValueError(f"{self.schedule} has no slots")

        first_slot = self.slots[0]
        last_slot = self.slots[-1]
        start = ceil_to_slot(after)
        last_start = floor_to_slot(before) - SLOT_INTERVAL

        after_slot = self.get_slot_at(start)
        while after_slot is None and start < last_slot.end:
            start += SLOT_INTERVAL
            after_slot = self.get_slot_at(start)
        before_slot = self.get_slot_at(last_start)
        while before_slot is None and last_start > first_slot.start:
            last_start -= SLOT_INTERVAL
            before_slot = self.get_slot_at(last_start)

        if after_slot is None or before_slot is None:
            raise ValueError(
                f"Window [{after}, {before}) does not overlap [{self.from_}, {self.to})"
            )
        if before_slot.index < after_slot.index:
            raise ValueError(f"Window [{after}, {before}) is less than 1 hour")
        return after_slot.start, before_slot.end

    def stats(self) -> dict:
        allocated = sum(1 for slot in self.slots if slot.is_allocated())
        return {
            "slots": len(self.slots),
            "allocated_slots": allocated,
            "free_slots": len(self.slots) - allocated,
            "tasks": len(self.schedule.tasks),
            "total_hours": self.compute_total_hours(),
            "consultants": sorted(
                name for name, tasks in self._tasks_by_consultant.items() if tasks
            ),
            "pending_commands": len(self.changeset),
        }


class ScheduleManagerFactory:
    """Creates one ScheduleManager per schedule and reuses it.

    A cached manager is refreshed with ``reload_tasks`` before being
    returned, so callers always see the current task collection.
    """

    def __init__(self):
        self._managers: dict[str, ScheduleManager] = {}

    def create_schedule_manager(self, schedule: Any) -> ScheduleManager:
        manager = self._managers.get(schedule.id)
        if manager is not None and manager.schedule is schedule:
            manager.reload_tasks()
            return manager

        manager = ScheduleManager(schedule)
        self._managers[schedule.id] = manager
        logger.debug("Created manager for %s", schedule)
        return manager

    def forget(self, schedule: Any) -> None:
        self._managers.pop(schedule.id, None)
