"""Batch scheduling of many consultants into one schedule."""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from consultsched.domain.calendar import DateLike
from consultsched.domain.errors import InvalidEntityError
from consultsched.domain.models import Consultant
from consultsched.domain.repository import Persistence
from consultsched.domain.schedule import Schedule
from consultsched.scheduling.generator import ConsultantScheduleGenerator
from consultsched.validation.validator import ValidationGroup

logger = logging.getLogger(__name__)


@dataclass
class PlanResult:
    """Outcome of a planning run.

    Attributes:
        schedule: The merged schedule holding every consultant's tasks.
        consultant_schedules: Generated schedule per consultant name.
    """

    schedule: Schedule
    consultant_schedules: dict[str, Schedule] = field(default_factory=dict)

    @property
    def total_hours(self) -> int:
        return sum(task.hours for task in self.schedule.tasks)


class SchedulePlanner:
    """Generates each consultant's schedule and merges them.

    The merged schedule is validated and, when a persistence collaborator
    is given, persisted and flushed once at the end.
    """

    def __init__(
        self,
        generator: ConsultantScheduleGenerator,
        persistence: Optional[Persistence] = None,
    ):
        self.generator = generator
        self.persistence = persistence

    def plan(
        self, consultants: Iterable[Consultant], from_: DateLike, to: DateLike
    ) -> PlanResult:
        """Schedule every consultant over [from_, to].

        Raises:
            SchedulingError: If any consultant cannot be scheduled; nothing
                is persisted in that case.
        """
        schedule = Schedule(
            from_, to, calendar=self.generator.validator.calendar, rng=self.generator.rng
        )
        result = PlanResult(schedule=schedule)
        contracted_services = []

        for consultant in consultants:
            consultant_schedule = self.generator.generate_schedule(
                consultant, schedule.from_, schedule.to
            )
            schedule.merge(consultant_schedule)
            result.consultant_schedules[consultant.name] = consultant_schedule
            contracted_services.extend(self.generator.repository.find_by_consultant(consultant))
            logger.info("Merged %d tasks of %s", len(consultant_schedule.tasks), consultant)

        validation = self.generator.validator.validate_schedule(
            schedule,
            groups=[ValidationGroup.DEFAULT, ValidationGroup.HOURS],
            contracted_services=contracted_services,
        )
        if not validation.is_valid:
            raise InvalidEntityError(schedule, validation)

        if self.persistence is not None:
            for task in schedule.tasks:
                self.persistence.persist(task)
            self.persistence.persist(schedule)
            self.persistence.flush()

        logger.info("Planned %d tasks, %dh in %s", len(schedule.tasks), result.total_hours, schedule)
        return result
