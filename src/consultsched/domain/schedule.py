"""Slots, schedules and slot-search operations.

A Schedule is a bounded time window plus the fixed array of one-hour
business slots generated for it, and the collection of tasks placed in
it. Slot generation happens once, at construction; the window is
immutable afterwards.

Slot search is a linear scan over the slot array. Typical schedules hold
ten slots per working day, so no index structure is needed.
"""

import logging
import random
import uuid
from bisect import bisect_left, bisect_right
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Iterable, Optional, Sequence

from consultsched.domain.calendar import (
    SLOT_INTERVAL,
    BusinessCalendar,
    DateLike,
    ItalianBusinessCalendar,
    as_end,
    as_start,
)
from consultsched.domain.errors import (
    NoFreeSlotsAvailableError,
    ScheduleInvariantError,
    SlotAlreadyAllocatedError,
)
from consultsched.domain.models import Consultant, ContractedService, Task

logger = logging.getLogger(__name__)


class SearchDirection(Enum):
    """Direction of a closest-free-slot scan."""

    BOTH = "both"
    BEFORE = "before"
    AFTER = "after"


@dataclass(eq=False)
class Slot:
    """One hour of one business day, holding at most one task.

    Attributes:
        index: Position in the owning schedule's slot array.
        start: Start of the hour; the end is always start + 1 hour.
        task: The task occupying this slot, if any.
    """

    index: int
    start: datetime
    task: Optional[Task] = None

    def __post_init__(self):
        if self.start != self.start.replace(minute=0, second=0, microsecond=0):
            raise ScheduleInvariantError(f"Slot {self.index} is not hour aligned")

    @property
    def end(self) -> datetime:
        return self.start + SLOT_INTERVAL

    @property
    def day(self) -> date:
        return self.start.date()

    def is_allocated(self) -> bool:
        return self.task is not None

    def is_free(self) -> bool:
        return self.task is None

    def assign_task(self, task: Task) -> None:
        """Bind a task to this slot.

        Raises:
            SlotAlreadyAllocatedError: If another task already holds the slot.
        """
        if self.task is not None and self.task is not task:
            raise SlotAlreadyAllocatedError(
                f"Slot {self} already holds task {self.task.id}, refusing {task.id}"
            )
        self.task = task

    def release_task(self, task: Task) -> None:
        if self.task is task:
            self.task = None

    def clear(self) -> None:
        self.task = None

    def contains_task(self, task: Task) -> bool:
        return self.task is task

    def is_allocated_to_contracted_service(self, contracted_service: ContractedService) -> bool:
        return (
            self.task is not None
            and self.task.contracted_service.id == contracted_service.id
        )

    def is_allocated_on_premises_to_contracted_service(
        self, contracted_service: ContractedService
    ) -> bool:
        return (
            self.is_allocated_to_contracted_service(contracted_service)
            and self.task.on_premises
        )

    def is_allocated_to_consultant(self, consultant: Consultant) -> bool:
        return self.task is not None and self.task.consultant.name == consultant.name

    def __str__(self) -> str:
        return f"{self.index}:{self.start:%Y-%m-%d %H:%M}-{self.end:%H:%M}"


def generate_slots(
    calendar: BusinessCalendar, from_: datetime, to: datetime
) -> tuple[Slot, ...]:
    """Build the slot array for a window using the calendar's rules."""
    return tuple(
        Slot(index=index, start=start)
        for index, start in enumerate(calendar.iter_slot_starts(from_, to))
    )


class SlotSearch:
    """Slot-search operations over a fixed slot array.

    Subclasses provide ``slots`` (ordered by start, indexes contiguous from
    zero) and ``rng`` (a ``random.Random``).
    """

    slots: Sequence[Slot]
    rng: random.Random

    def _index_range(
        self, after: Optional[datetime] = None, before: Optional[datetime] = None
    ) -> Optional[tuple[int, int]]:
        """Get the inclusive index bounds of slots lying within [after, before).

        Returns:
            Tuple of (first, last) indexes, or None if no slot fits.
        """
        if not self.slots:
            return None
        first = 0
        last = len(self.slots) - 1
        if after is not None:
            first = bisect_left([slot.start for slot in self.slots], after)
        if before is not None:
            last = bisect_right([slot.end for slot in self.slots], before) - 1
        if first > last:
            return None
        return first, last

    def get_random_free_slot(
        self, after: Optional[datetime] = None, before: Optional[datetime] = None
    ) -> Optional[Slot]:
        """Get a random free slot within [after, before).

        A uniformly random index is picked first so that allocations do not
        cluster at the beginning of the window. If that slot is taken, the
        closest free slot in a random direction is returned instead, falling
        back to both directions.

        Returns:
            A free slot, or None if the window holds no free slot.
        """
        bounds = self._index_range(after, before)
        if bounds is None:
            return None
        first, last = bounds

        index = self.rng.randint(first, last)
        slot = self.slots[index]
        if slot.is_free():
            return slot

        direction = self.rng.choice([SearchDirection.BEFORE, SearchDirection.AFTER])
        found = self.get_closest_free_slot(index, direction, after, before)
        if found is None:
            found = self.get_closest_free_slot(index, SearchDirection.BOTH, after, before)
        return found

    def get_closest_free_slot(
        self,
        index: int,
        direction: SearchDirection = SearchDirection.BOTH,
        after: Optional[datetime] = None,
        before: Optional[datetime] = None,
    ) -> Optional[Slot]:
        """Find the free slot nearest to ``index`` within [after, before).

        The scan moves outward one step at a time. When a free slot is found
        at the same distance on both sides, one of the two is picked at
        random.

        Args:
            index: Slot index to start from (included in the search).
            direction: Which side(s) of ``index`` to scan.
            after: Optional inclusive lower bound of the search window.
            before: Optional exclusive upper bound of the search window.

        Returns:
            The closest free slot, or None if the window is exhausted.

        Raises:
            IndexError: If ``index`` is outside the slot array.
        """
        if not 0 <= index < len(self.slots):
            raise IndexError(f"Slot index {index} out of range 0..{len(self.slots) - 1}")

        bounds = self._index_range(after, before)
        if bounds is None:
            return None
        first, last = bounds

        if first <= index <= last and self.slots[index].is_free():
            return self.slots[index]

        scan_before = direction in (SearchDirection.BOTH, SearchDirection.BEFORE)
        scan_after = direction in (SearchDirection.BOTH, SearchDirection.AFTER)
        distance = 0
        while True:
            distance += 1
            left = index - distance
            right = index + distance
            left_open = scan_before and left >= first
            right_open = scan_after and right <= last
            if not left_open and not right_open:
                return None

            candidates = []
            if left_open and left <= last and self.slots[left].is_free():
                candidates.append(self.slots[left])
            if right_open and right >= first and self.slots[right].is_free():
                candidates.append(self.slots[right])

            if len(candidates) == 1:
                return candidates[0]
            if candidates:
                return self.rng.choice(candidates)

    def _first_day_with_runs(
        self, indexes: Iterable[int], min_count: int
    ) -> list[list[Slot]]:
        """Collect runs of adjacent free slots, stopping at the first day having any.

        Returns:
            Runs (each ordered by start) of at least ``min_count`` slots, all
            on the same day; empty if no day has one.
        """
        runs: list[list[Slot]] = []
        current: list[Slot] = []
        day = None
        for index in indexes:
            slot = self.slots[index]
            if slot.day != day:
                if len(current) >= min_count:
                    runs.append(current)
                if runs:
                    break
                current = []
                day = slot.day
            if slot.is_free():
                current.append(slot)
            else:
                if len(current) >= min_count:
                    runs.append(current)
                current = []
        else:
            if len(current) >= min_count:
                runs.append(current)
        return [sorted(run, key=lambda s: s.index) for run in runs]

    @staticmethod
    def _pick_run(
        runs: list[list[Slot]], preferred: int, max_count: Optional[int]
    ) -> list[Slot]:
        largest: list[Slot] = []
        for run in runs:
            if len(run) > len(largest):
                largest = run
            if len(largest) >= preferred:
                break
        if max_count is not None:
            largest = largest[:max_count]
        return largest

    def get_random_same_day_adjacent_free_slots(
        self,
        after: Optional[datetime] = None,
        before: Optional[datetime] = None,
        min_count: int = 1,
        preferred: int = 1,
        max_count: Optional[int] = None,
    ) -> list[Slot]:
        """Find a run of adjacent free slots on a single day.

        A random free slot selects the starting day. Days are then scanned
        forwards (from the start of that day) and backwards (from the day
        before) for runs of at least ``min_count`` free slots. Within the
        first day having runs, the first run reaching ``preferred`` slots
        wins, otherwise the largest. The closer of the forward and backward
        candidates is returned.

        Raises:
            ValueError: On inconsistent counts.
            NoFreeSlotsAvailableError: If no run matches.
        """
        if max_count is not None and (min_count > max_count or preferred > max_count):
            raise ValueError(f"{min_count} > {max_count} or {preferred} > {max_count}")
        if min_count < 1 or preferred < 1:
            raise ValueError(f"{min_count} < 1 or {preferred} < 1")

        bounds = self._index_range(after, before)
        initial = self.get_random_free_slot(after, before)
        if bounds is None or initial is None:
            raise NoFreeSlotsAvailableError(after=after, before=before)
        first, last = bounds

        day_start = initial.index
        while day_start > first and self.slots[day_start - 1].day == initial.day:
            day_start -= 1

        forward = self._first_day_with_runs(range(day_start, last + 1), min_count)
        backward = self._first_day_with_runs(range(day_start - 1, first - 1, -1), min_count)

        candidates = []
        if forward:
            run = self._pick_run(forward, preferred, max_count)
            candidates.append((run[0].index - day_start, run))
        if backward:
            run = self._pick_run(backward, preferred, max_count)
            candidates.append((day_start - run[-1].index, run))

        if not candidates:
            raise NoFreeSlotsAvailableError(after=after, before=before)
        if len(candidates) == 2 and candidates[0][0] == candidates[1][0]:
            return self.rng.choice(candidates)[1]
        return min(candidates, key=lambda c: c[0])[1]

    def allocate_contracted_service_pass(
        self,
        starting_slot: Slot,
        count: int,
        after: Optional[datetime] = None,
        before: Optional[datetime] = None,
    ) -> list[Slot]:
        """Get up to ``count`` free slots contiguous with a starting slot.

        The block the starting slot belongs to (slots of the same contracted
        service on the same day) is extended on one random side first, then
        on the other. When neither side has a free adjacent slot, a random
        same-day run elsewhere in the window is used.

        Returns:
            Free slots ordered by start; never empty.

        Raises:
            NoFreeSlotsAvailableError: If the window has no free slot.
        """
        if count < 1:
            raise ValueError(f"count must be positive, got {count}")

        bounds = self._index_range(after, before)
        if bounds is None:
            raise NoFreeSlotsAvailableError(after=after, before=before)
        first, last = bounds

        contracted_service = (
            starting_slot.task.contracted_service if starting_slot.task else None
        )
        steps = [1, -1]
        self.rng.shuffle(steps)
        for step in steps:
            index = starting_slot.index + step
            while (
                contracted_service is not None
                and first <= index <= last
                and self.slots[index].day == starting_slot.day
                and self.slots[index].is_allocated_to_contracted_service(contracted_service)
            ):
                index += step

            found: list[Slot] = []
            while (
                len(found) < count
                and first <= index <= last
                and self.slots[index].day == starting_slot.day
                and self.slots[index].is_free()
            ):
                found.append(self.slots[index])
                index += step
            if found:
                return sorted(found, key=lambda s: s.index)

        return self.get_random_same_day_adjacent_free_slots(
            after, before, min_count=1, preferred=count, max_count=count
        )

    def count_slots_allocated_to_contracted_service(
        self, contracted_service: ContractedService
    ) -> int:
        return sum(
            1 for slot in self.slots
            if slot.is_allocated_to_contracted_service(contracted_service)
        )

    def count_on_premises_slots_allocated_to_contracted_service(
        self, contracted_service: ContractedService
    ) -> int:
        return sum(
            1 for slot in self.slots
            if slot.is_allocated_on_premises_to_contracted_service(contracted_service)
        )

    def count_free_slots(self) -> int:
        return sum(1 for slot in self.slots if slot.is_free())

    def assert_zero_or_one_task_per_slot(self) -> None:
        """Check that slot bindings agree with task spans.

        Every allocated slot must lie within its task's span, and no two
        tasks may claim the same hour.

        Raises:
            ScheduleInvariantError: If the invariant does not hold.
        """
        claimed: dict[int, str] = {}
        for slot in self.slots:
            if slot.task is None:
                continue
            if not (slot.task.start <= slot.start and slot.end <= slot.task.end):
                raise ScheduleInvariantError(
                    f"Slot {slot} is bound to task {slot.task.id} not spanning it"
                )
            if slot.index in claimed and claimed[slot.index] != slot.task.id:
                raise ScheduleInvariantError(f"Slot {slot} holds more than one task")
            claimed[slot.index] = slot.task.id


class Schedule(SlotSearch):
    """Work calendar of one consultant, or of many once merged.

    Dates given as ``from_`` start at midnight; a date given as ``to`` is an
    inclusive last day. Datetimes are used as-is, with ``to`` exclusive.

    The task collection and the slot bindings are separate: allocation
    routines and the ScheduleManager bind slots, while ``add_task`` and
    ``remove_task`` only maintain the collection.

    Example:
        >>> schedule = Schedule(date(2021, 6, 18), date(2021, 6, 25))
        >>> slot = schedule.get_random_free_slot()
    """

    def __init__(
        self,
        from_: DateLike,
        to: DateLike,
        calendar: Optional[BusinessCalendar] = None,
        rng: Optional[random.Random] = None,
        id: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ):
        self._from = as_start(from_)
        self._to = as_end(to)
        if self._from >= self._to:
            raise ValueError(f"Schedule from {self._from} is not before to {self._to}")
        self.calendar = calendar or ItalianBusinessCalendar()
        self.rng = rng or random.Random()
        self.id = id or str(uuid.uuid4())
        self.created_at = created_at or datetime.now()
        self._tasks: dict[str, Task] = {}
        self._slots = generate_slots(self.calendar, self._from, self._to)
        logger.debug("Schedule %s: generated %d slots", self.id, len(self._slots))

    @property
    def from_(self) -> datetime:
        return self._from

    @property
    def to(self) -> datetime:
        return self._to

    @property
    def slots(self) -> tuple[Slot, ...]:
        return self._slots

    @property
    def tasks(self) -> list[Task]:
        return list(self._tasks.values())

    def add_task(self, task: Task) -> None:
        """Add a task; a task already present is left untouched."""
        if task.id not in self._tasks:
            self._tasks[task.id] = task
        task.schedule = self
        task.deleted_at = None

    def remove_task(self, task: Task) -> None:
        """Remove a task, marking it deleted; absent tasks are ignored."""
        if self._tasks.pop(task.id, None) is not None:
            task.deleted_at = datetime.now()

    def contains_task(self, task: Task) -> bool:
        return task.id in self._tasks

    def merge(self, *sources: "Schedule") -> None:
        """Copy every task of the given schedules into this one.

        Sources keep their own task collections and slot bindings; each
        copied task points at this schedule afterwards.
        """
        for source in sources:
            for task in source.tasks:
                self.add_task(task)

    def for_consultant(self, consultant: Consultant) -> "ConsultantScheduleView":
        return ConsultantScheduleView(self, consultant)

    def consultants(self) -> list[Consultant]:
        seen: dict[str, Consultant] = {}
        for task in self._tasks.values():
            seen.setdefault(task.consultant.name, task.consultant)
        return list(seen.values())

    def stats(self) -> str:
        allocated = len(self._slots) - self.count_free_slots()
        return (
            f"Schedule {self.id} [{self._from:%Y-%m-%d %H:%M}, {self._to:%Y-%m-%d %H:%M}): "
            f"{len(self._tasks)} tasks, {allocated}/{len(self._slots)} slots allocated"
        )

    def __str__(self) -> str:
        return f"Schedule {self.id}"


class ConsultantScheduleView(SlotSearch):
    """One consultant's projection of a schedule.

    ``tasks`` reads through to the parent's collection, filtered by
    consultant; mutations go to the parent. The view owns a separate slot
    array (same generation rule) so that slot bindings reflect only the
    consultant's tasks.
    """

    def __init__(self, parent: Schedule, consultant: Consultant):
        self.parent = parent
        self.consultant = consultant
        self._slots: Optional[tuple[Slot, ...]] = None

    @property
    def id(self) -> str:
        return f"{self.parent.id}:{self.consultant.name}"

    @property
    def from_(self) -> datetime:
        return self.parent.from_

    @property
    def to(self) -> datetime:
        return self.parent.to

    @property
    def calendar(self) -> BusinessCalendar:
        return self.parent.calendar

    @property
    def rng(self) -> random.Random:
        return self.parent.rng

    @property
    def slots(self) -> tuple[Slot, ...]:
        if self._slots is None:
            self._slots = generate_slots(self.calendar, self.from_, self.to)
        return self._slots

    @property
    def tasks(self) -> list[Task]:
        return [
            task for task in self.parent.tasks
            if task.consultant.name == self.consultant.name
        ]

    def _check_consultant(self, task: Task) -> None:
        if task.consultant.name != self.consultant.name:
            raise ValueError(
                f"Task {task.id} belongs to {task.consultant}, not {self.consultant}"
            )

    def add_task(self, task: Task) -> None:
        self._check_consultant(task)
        self.parent.add_task(task)

    def remove_task(self, task: Task) -> None:
        self._check_consultant(task)
        self.parent.remove_task(task)

    def contains_task(self, task: Task) -> bool:
        return (
            task.consultant.name == self.consultant.name
            and self.parent.contains_task(task)
        )

    def __str__(self) -> str:
        return f"{self.parent} ({self.consultant})"
