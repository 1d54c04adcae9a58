"""Consultant schedule generation.

This module fills a consultant's schedule with tasks so that every
contracted service gets exactly its total, on-premises and remote hours.

Allocation is greedy and randomised, in two phases:

1. Seeding: each contracted service gets one task on a random free slot
   within its eligible window.
2. Expansion: passes over the per-service frontier grow each service by
   a block of up to ``max_block_hours`` contiguous slots, alternating
   on-premises and remote work at random, until every target is met.
   On-premises blocks are capped at the service's preferred visit length.

A watchdog bounds the number of passes. Capacity problems and
non-convergence are raised as distinct errors; neither produces a partial
schedule. An inconclusive capacity check (solver time limit) is logged and
allocation goes ahead.
"""

import logging
import random
from dataclasses import dataclass
from typing import Optional

from consultsched.domain.calendar import DateLike, as_end, as_start
from consultsched.domain.errors import (
    CapacityExhaustedError,
    InvalidEntityError,
    NoFreeSlotsAvailableError,
    ScheduleInvariantError,
    WatchdogExhaustedError,
)
from consultsched.domain.models import Consultant, ContractedService, Task
from consultsched.domain.repository import ContractedServiceRepository, Persistence
from consultsched.domain.schedule import Schedule, Slot
from consultsched.scheduling.feasibility import CapacityChecker, FeasibilityConfig
from consultsched.scheduling.manager import ScheduleManagerFactory
from consultsched.validation.validator import ScheduleValidator, ValidationGroup

logger = logging.getLogger(__name__)

DEFAULT_ON_PREMISES_TASK_HOURS = 2


@dataclass
class GeneratorConfig:
    """Configuration for schedule generation.

    Attributes:
        max_passes: Watchdog ceiling on expansion passes.
        max_block_hours: Largest block added to a service in one pass.
        precheck_capacity: Run the CP-SAT capacity check before allocating.
        consolidate_adjacent: Merge back-to-back tasks of the same activity.
        consolidate_daily: Merge each day's same-activity tasks and lay the
            day out contiguously.
        solver_time_limit_seconds: Time limit of the capacity check.
    """

    max_passes: int = 10_000
    max_block_hours: int = 5
    precheck_capacity: bool = True
    consolidate_adjacent: bool = True
    consolidate_daily: bool = False
    solver_time_limit_seconds: float = 10.0


@dataclass
class RemainingHours:
    """Hours of a contracted service still to be allocated."""

    total: int
    on_premises: int
    remote: int


class ConsultantScheduleGenerator:
    """Generates a consultant's schedule from their contracted services.

    Example:
        >>> generator = ConsultantScheduleGenerator(repository, rng=random.Random(42))
        >>> schedule = generator.generate_schedule(consultant, date(2021, 6, 1), date(2021, 6, 30))
    """

    def __init__(
        self,
        repository: ContractedServiceRepository,
        validator: Optional[ScheduleValidator] = None,
        manager_factory: Optional[ScheduleManagerFactory] = None,
        config: Optional[GeneratorConfig] = None,
        rng: Optional[random.Random] = None,
        persistence: Optional[Persistence] = None,
        capacity_checker: Optional[CapacityChecker] = None,
    ):
        self.repository = repository
        self.validator = validator or ScheduleValidator()
        self.manager_factory = manager_factory or ScheduleManagerFactory()
        self.config = config or GeneratorConfig()
        self.rng = rng or random.Random()
        self.persistence = persistence
        self.capacity_checker = capacity_checker or CapacityChecker(
            FeasibilityConfig(time_limit_seconds=self.config.solver_time_limit_seconds)
        )

    def generate_schedule(
        self, consultant: Consultant, from_: DateLike, to: DateLike
    ) -> Schedule:
        """Generate a validated schedule for one consultant.

        Args:
            consultant: The consultant to schedule.
            from_: First day (or exact start) of the schedule.
            to: Last day, inclusive (or exact exclusive end).

        Returns:
            A Schedule whose tasks match every contracted service's hours.

        Raises:
            CapacityExhaustedError: If the capacity check proves the hours cannot fit.
            NoFreeSlotsAvailableError: If allocation runs out of free slots.
            WatchdogExhaustedError: If allocation does not converge.
            ScheduleInvariantError: On an internal inconsistency.
            InvalidEntityError: If a task or the schedule fails validation.
        """
        contracted_services = self.repository.find_by_consultant(consultant)
        schedule = Schedule(
            as_start(from_),
            as_end(to),
            calendar=self.validator.calendar,
            rng=self.rng,
        )
        logger.info(
            "Generating schedule for %s: %d contracted services, %d slots",
            consultant, len(contracted_services), len(schedule.slots),
        )

        if self.config.precheck_capacity and contracted_services:
            feasibility = self.capacity_checker.check(schedule, contracted_services)
            if feasibility.is_infeasible:
                raise CapacityExhaustedError(
                    f"Contracted hours of {consultant} do not fit in "
                    f"[{schedule.from_:%Y-%m-%d}, {schedule.to:%Y-%m-%d}): "
                    f"solver status {feasibility.status}"
                )
            if not feasibility.is_feasible:
                logger.warning(
                    "Capacity check for %s was inconclusive (%s), allocating anyway",
                    consultant, feasibility.status,
                )

        frontier = self._seed(schedule, consultant, contracted_services)
        passes = self._expand(schedule, contracted_services, frontier)

        schedule.assert_zero_or_one_task_per_slot()
        self._consolidate(schedule)
        self._validate_schedule(schedule, contracted_services)

        if self.persistence is not None:
            for task in schedule.tasks:
                self.persistence.persist(task)
            self.persistence.persist(schedule)
            self.persistence.flush()

        logger.info(
            "Generated schedule for %s: %d tasks in %d passes",
            consultant, len(schedule.tasks), passes,
        )
        return schedule

    def generate_schedule_with_stats(
        self, consultant: Consultant, from_: DateLike, to: DateLike
    ) -> tuple[Schedule, dict]:
        """Generate a schedule and return it with per-service statistics."""
        schedule = self.generate_schedule(consultant, from_, to)
        manager = self.manager_factory.create_schedule_manager(schedule)
        stats = manager.stats()
        stats["contracted_services"] = {
            cs.id: {
                "name": str(cs),
                "hours": schedule.count_slots_allocated_to_contracted_service(cs),
                "hours_on_premises": schedule.count_on_premises_slots_allocated_to_contracted_service(cs),
            }
            for cs in self.repository.find_by_consultant(consultant)
        }
        return schedule, stats

    # Phase 1

    def _seed(
        self,
        schedule: Schedule,
        consultant: Consultant,
        contracted_services: list[ContractedService],
    ) -> dict[str, Slot]:
        frontier: dict[str, Slot] = {}
        for cs in contracted_services:
            if cs.consultant.name != consultant.name:
                raise ScheduleInvariantError(f"{cs} does not belong to {consultant}")
            if cs.recipient is None or cs.service is None:
                raise ScheduleInvariantError(f"{cs} has no recipient or service")
            if cs.hours <= 0:
                raise ScheduleInvariantError(f"{cs} has no hours to schedule")

            after, before = cs.eligible_window(schedule.from_, schedule.to)
            slot = schedule.get_random_free_slot(after, before)
            if slot is None:
                raise NoFreeSlotsAvailableError(after=after, before=before)

            on_premises = self._choose_on_premises(self._remaining(schedule, cs))
            self._create_task(schedule, cs, [slot], on_premises)
            frontier[cs.id] = slot
            logger.debug("Seeded %s at %s", cs, slot)
        return frontier

    # Phase 2

    def _expand(
        self,
        schedule: Schedule,
        contracted_services: list[ContractedService],
        frontier: dict[str, Slot],
    ) -> int:
        passes = 0
        while any(self._remaining(schedule, cs).total > 0 for cs in contracted_services):
            passes += 1
            if passes > self.config.max_passes:
                raise WatchdogExhaustedError(
                    f"Allocation did not converge within {self.config.max_passes} passes"
                )

            for cs in contracted_services:
                remaining = self._remaining(schedule, cs)
                if remaining.total == 0:
                    continue

                on_premises = self._choose_on_premises(remaining)
                count = self._block_size(cs, remaining, on_premises)

                after, before = cs.eligible_window(schedule.from_, schedule.to)
                slots = schedule.allocate_contracted_service_pass(
                    frontier[cs.id], count, after, before
                )
                slots.sort(key=lambda s: s.start)
                self._create_task(schedule, cs, slots, on_premises)
                frontier[cs.id] = slots[-1]
                logger.debug(
                    "Pass %d: %s +%dh %s", passes, cs, len(slots),
                    "on-premises" if on_premises else "remote",
                )
        return passes

    def _remaining(self, schedule: Schedule, cs: ContractedService) -> RemainingHours:
        allocated = schedule.count_slots_allocated_to_contracted_service(cs)
        allocated_on_premises = schedule.count_on_premises_slots_allocated_to_contracted_service(cs)
        remaining = RemainingHours(
            total=cs.hours - allocated,
            on_premises=cs.hours_on_premises - allocated_on_premises,
            remote=cs.hours_remote - (allocated - allocated_on_premises),
        )
        if remaining.total < 0 or remaining.on_premises < 0 or remaining.remote < 0:
            raise ScheduleInvariantError(f"Negative remaining hours for {cs}: {remaining}")
        return remaining

    def _block_size(
        self, cs: ContractedService, remaining: RemainingHours, on_premises: bool
    ) -> int:
        """Hours to add in one pass; on-premises visits keep the preferred length."""
        if not on_premises:
            return min(remaining.remote, self.config.max_block_hours)
        preferred = (
            cs.service.task_preferred_on_premises_hours
            or DEFAULT_ON_PREMISES_TASK_HOURS
        )
        return min(remaining.on_premises, preferred, self.config.max_block_hours)

    def _choose_on_premises(self, remaining: RemainingHours) -> bool:
        if remaining.remote == 0:
            return True
        if remaining.on_premises == 0:
            return False
        return self.rng.random() < 0.5

    def _create_task(
        self,
        schedule: Schedule,
        cs: ContractedService,
        slots: list[Slot],
        on_premises: bool,
    ) -> Task:
        task = Task(
            contracted_service=cs,
            start=slots[0].start,
            end=slots[-1].end,
            on_premises=on_premises,
        )
        if task.hours != len(slots):
            raise ScheduleInvariantError(f"Slots for {cs} are not contiguous")

        result = self.validator.validate_task(task)
        if not result.is_valid:
            raise InvalidEntityError(task, result)

        schedule.add_task(task)
        for slot in slots:
            slot.assign_task(task)
        return task

    # Post-processing

    def _consolidate(self, schedule: Schedule) -> None:
        if not (self.config.consolidate_adjacent or self.config.consolidate_daily):
            return
        manager = self.manager_factory.create_schedule_manager(schedule)
        if self.config.consolidate_adjacent:
            manager.consolidate_same_day_adjacent_tasks()
        if self.config.consolidate_daily:
            manager.consolidate_non_overlapping_tasks_daily()
        schedule.assert_zero_or_one_task_per_slot()

    def _validate_schedule(
        self, schedule: Schedule, contracted_services: list[ContractedService]
    ) -> None:
        groups = [ValidationGroup.DEFAULT, ValidationGroup.HOURS, ValidationGroup.CONSULTANT]
        if self.config.consolidate_daily:
            groups.append(ValidationGroup.GENERATION)
        result = self.validator.validate_schedule(
            schedule, groups=groups, contracted_services=contracted_services
        )
        if not result.is_valid:
            raise InvalidEntityError(schedule, result)
