"""Validation module for verifying task and schedule correctness.

This module is the single source of truth for the rules a task or a
schedule must satisfy. Every generated schedule passes through it before
being returned or persisted.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from enum import Enum
from typing import Any, Iterable, Optional

from consultsched.domain.calendar import BusinessCalendar, ItalianBusinessCalendar
from consultsched.domain.models import ContractedService, Task


class ValidationErrorType(Enum):
    """Types of validation errors."""

    TASK_END_NOT_AFTER_START = "task_end_not_after_start"
    TASK_SPANS_DAYS = "task_spans_days"
    TASK_NOT_SLOT_ALIGNED = "task_not_slot_aligned"
    TASK_OUTSIDE_BUSINESS_HOURS = "task_outside_business_hours"
    TASK_ON_WEEKEND = "task_on_weekend"
    TASK_ON_HOLIDAY = "task_on_holiday"
    TASK_WITHOUT_CONTRACTED_SERVICE = "task_without_contracted_service"
    TASK_OUTSIDE_BOUNDS = "task_outside_bounds"
    TASKS_OVERLAP = "tasks_overlap"
    HOURS_MISMATCH = "hours_mismatch"
    ON_PREMISES_HOURS_MISMATCH = "on_premises_hours_mismatch"
    MULTIPLE_CONSULTANTS = "multiple_consultants"
    DISCONTINUOUS_TASK = "discontinuous_task"


class ValidationGroup(Enum):
    """Named sets of schedule rules, selected per call."""

    DEFAULT = "default"  # Bounds and holidays
    HOURS = "hours"  # Contracted hours matched exactly
    CONSULTANT = "consultant"  # Single consultant, no overlaps
    GENERATION = "generation"  # No same-activity task split within a day


DEFAULT_GROUPS = (ValidationGroup.DEFAULT,)


@dataclass
class ValidationError:
    """A single validation error."""

    error_type: ValidationErrorType
    message: str
    task_id: Optional[str] = None
    consultant: Optional[str] = None
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        parts = [f"[{self.error_type.value}]"]
        if self.consultant:
            parts.append(f"Consultant {self.consultant}:")
        parts.append(self.message)
        if self.task_id is not None:
            parts.append(f"(task {self.task_id})")
        return " ".join(parts)


@dataclass
class ValidationResult:
    """Result of validating a task or a schedule."""

    is_valid: bool
    errors: list[ValidationError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def add_error(self, error: ValidationError) -> None:
        """Add an error and mark as invalid."""
        self.errors.append(error)
        self.is_valid = False

    def add_warning(self, warning: str) -> None:
        """Add a warning (doesn't affect validity)."""
        self.warnings.append(warning)

    def extend(self, other: "ValidationResult") -> None:
        for error in other.errors:
            self.add_error(error)
        self.warnings.extend(other.warnings)

    def error_types(self) -> set[ValidationErrorType]:
        return {error.error_type for error in self.errors}


class ScheduleValidator:
    """Validates tasks and schedules against the business rules.

    Example:
        >>> validator = ScheduleValidator()
        >>> result = validator.validate_schedule(
        ...     schedule,
        ...     groups=[ValidationGroup.DEFAULT, ValidationGroup.HOURS],
        ...     contracted_services=contracted_services,
        ... )
        >>> if not result.is_valid:
        ...     for error in result.errors:
        ...         print(error)
    """

    def __init__(self, calendar: Optional[BusinessCalendar] = None):
        self.calendar = calendar or ItalianBusinessCalendar()

    def validate(
        self, entity: Any, groups: Optional[Iterable[ValidationGroup]] = None
    ) -> ValidationResult:
        """Validate a task or a schedule.

        Args:
            entity: A Task, or anything schedule-like (``tasks``, ``from_``, ``to``).
            groups: Schedule rule groups; ignored for tasks.

        Returns:
            ValidationResult with is_valid flag and any errors.
        """
        if isinstance(entity, Task):
            return self.validate_task(entity)
        return self.validate_schedule(entity, groups=groups)

    def validate_task(self, task: Task) -> ValidationResult:
        """Validate a single task.

        Checks that the task has a contracted service, ends after it starts,
        stays within one day, is aligned to whole hours, falls within
        business hours and is not on a weekend or holiday.
        """
        result = ValidationResult(is_valid=True)
        consultant = None

        if task.contracted_service is None:
            result.add_error(
                ValidationError(
                    error_type=ValidationErrorType.TASK_WITHOUT_CONTRACTED_SERVICE,
                    message="Task has no contracted service",
                    task_id=task.id,
                )
            )
        else:
            consultant = task.consultant_name

        if task.end <= task.start:
            result.add_error(
                ValidationError(
                    error_type=ValidationErrorType.TASK_END_NOT_AFTER_START,
                    message=f"End {task.end} is not after start {task.start}",
                    task_id=task.id,
                    consultant=consultant,
                )
            )
            return result

        if not self._same_day(task.start, task.end):
            result.add_error(
                ValidationError(
                    error_type=ValidationErrorType.TASK_SPANS_DAYS,
                    message=f"Task spans {task.start:%Y-%m-%d} to {task.end:%Y-%m-%d}",
                    task_id=task.id,
                    consultant=consultant,
                )
            )

        if not (self._is_aligned(task.start) and self._is_aligned(task.end)):
            result.add_error(
                ValidationError(
                    error_type=ValidationErrorType.TASK_NOT_SLOT_ALIGNED,
                    message=f"Task {task.start:%H:%M}-{task.end:%H:%M} is not aligned to whole hours",
                    task_id=task.id,
                    consultant=consultant,
                )
            )

        hours = self.calendar.business_hours(task.day)
        midnight = datetime.combine(task.day, time.min)
        if (
            not hours
            or task.start < midnight + timedelta(hours=hours.start)
            or task.end > midnight + timedelta(hours=hours.stop)
        ):
            result.add_error(
                ValidationError(
                    error_type=ValidationErrorType.TASK_OUTSIDE_BUSINESS_HOURS,
                    message=f"Task {task.start:%H:%M}-{task.end:%H:%M} is outside business hours",
                    task_id=task.id,
                    consultant=consultant,
                )
            )

        result.extend(self._check_business_day(task, consultant))
        return result

    def validate_schedule(
        self,
        schedule: Any,
        groups: Optional[Iterable[ValidationGroup]] = None,
        contracted_services: Optional[Iterable[ContractedService]] = None,
    ) -> ValidationResult:
        """Validate a schedule against the selected rule groups.

        Args:
            schedule: Schedule or consultant view to validate.
            groups: Rule groups to run; defaults to ``ValidationGroup.DEFAULT``.
            contracted_services: Services whose hours must be matched. Services
                without any task are reported by the HOURS group only if
                listed here.

        Returns:
            ValidationResult with is_valid flag and any errors.
        """
        groups = set(groups or DEFAULT_GROUPS)
        result = ValidationResult(is_valid=True)
        tasks = schedule.tasks

        if ValidationGroup.DEFAULT in groups:
            self._validate_within_bounds(schedule, tasks, result)
            for task in tasks:
                result.extend(self._check_business_day(task, task.consultant_name))

        if ValidationGroup.HOURS in groups:
            self._validate_hours(tasks, contracted_services or [], result)

        if ValidationGroup.CONSULTANT in groups:
            self._validate_single_consultant(tasks, result)
            self._validate_no_overlaps(tasks, result)

        if ValidationGroup.GENERATION in groups:
            self._validate_continuity(tasks, result)

        return result

    def _check_business_day(self, task: Task, consultant: Optional[str]) -> ValidationResult:
        result = ValidationResult(is_valid=True)
        if self.calendar.is_weekend(task.day):
            result.add_error(
                ValidationError(
                    error_type=ValidationErrorType.TASK_ON_WEEKEND,
                    message=f"Task falls on a weekend ({task.day:%A %Y-%m-%d})",
                    task_id=task.id,
                    consultant=consultant,
                )
            )
        elif self.calendar.is_holiday(task.day):
            result.add_error(
                ValidationError(
                    error_type=ValidationErrorType.TASK_ON_HOLIDAY,
                    message=f"Task falls on a holiday ({task.day:%Y-%m-%d})",
                    task_id=task.id,
                    consultant=consultant,
                )
            )
        return result

    def _validate_within_bounds(self, schedule: Any, tasks: list[Task], result: ValidationResult) -> None:
        for task in tasks:
            if task.start < schedule.from_ or task.end > schedule.to:
                result.add_error(
                    ValidationError(
                        error_type=ValidationErrorType.TASK_OUTSIDE_BOUNDS,
                        message=(
                            f"Task {task.start:%Y-%m-%d %H:%M}-{task.end:%Y-%m-%d %H:%M} is outside "
                            f"schedule [{schedule.from_:%Y-%m-%d %H:%M}, {schedule.to:%Y-%m-%d %H:%M})"
                        ),
                        task_id=task.id,
                        consultant=task.consultant_name,
                    )
                )

    def _validate_hours(
        self,
        tasks: list[Task],
        contracted_services: Iterable[ContractedService],
        result: ValidationResult,
    ) -> None:
        services: dict[str, ContractedService] = {cs.id: cs for cs in contracted_services}
        total: dict[str, int] = defaultdict(int)
        on_premises: dict[str, int] = defaultdict(int)

        for task in tasks:
            cs = task.contracted_service
            services.setdefault(cs.id, cs)
            total[cs.id] += task.hours
            if task.on_premises:
                on_premises[cs.id] += task.hours

        for cs_id, cs in services.items():
            if total[cs_id] != cs.hours:
                result.add_error(
                    ValidationError(
                        error_type=ValidationErrorType.HOURS_MISMATCH,
                        message=f"{cs}: scheduled {total[cs_id]}h, contracted {cs.hours}h",
                        consultant=cs.consultant.name,
                        details={"contracted_service_id": cs_id, "scheduled": total[cs_id], "expected": cs.hours},
                    )
                )
            if on_premises[cs_id] != cs.hours_on_premises:
                result.add_error(
                    ValidationError(
                        error_type=ValidationErrorType.ON_PREMISES_HOURS_MISMATCH,
                        message=(
                            f"{cs}: scheduled {on_premises[cs_id]}h on premises, "
                            f"contracted {cs.hours_on_premises}h"
                        ),
                        consultant=cs.consultant.name,
                        details={
                            "contracted_service_id": cs_id,
                            "scheduled": on_premises[cs_id],
                            "expected": cs.hours_on_premises,
                        },
                    )
                )

    def _validate_single_consultant(self, tasks: list[Task], result: ValidationResult) -> None:
        names = sorted({task.consultant_name for task in tasks})
        if len(names) > 1:
            result.add_error(
                ValidationError(
                    error_type=ValidationErrorType.MULTIPLE_CONSULTANTS,
                    message=f"Schedule holds tasks of {len(names)} consultants: {', '.join(names)}",
                    details={"consultants": names},
                )
            )

    def _validate_no_overlaps(self, tasks: list[Task], result: ValidationResult) -> None:
        by_consultant: dict[str, list[Task]] = defaultdict(list)
        for task in tasks:
            by_consultant[task.consultant_name].append(task)

        for consultant, consultant_tasks in by_consultant.items():
            ordered = sorted(consultant_tasks, key=lambda t: (t.start, t.end))
            for previous, current in zip(ordered, ordered[1:]):
                if current.start < previous.end:
                    result.add_error(
                        ValidationError(
                            error_type=ValidationErrorType.TASKS_OVERLAP,
                            message=f"Task {current} overlaps {previous}",
                            task_id=current.id,
                            consultant=consultant,
                            details={"other_task_id": previous.id},
                        )
                    )

    def _validate_continuity(self, tasks: list[Task], result: ValidationResult) -> None:
        seen: dict[tuple, Task] = {}
        for task in sorted(tasks, key=lambda t: t.start):
            key = (task.day, task.contracted_service.id, task.on_premises)
            if key in seen:
                result.add_error(
                    ValidationError(
                        error_type=ValidationErrorType.DISCONTINUOUS_TASK,
                        message=f"{task.contracted_service} is split within {task.day:%Y-%m-%d}",
                        task_id=task.id,
                        consultant=task.consultant_name,
                        details={"other_task_id": seen[key].id},
                    )
                )
            else:
                seen[key] = task

    @staticmethod
    def _same_day(start: datetime, end: datetime) -> bool:
        # An end at midnight closes the start's day.
        if end.date() == start.date():
            return True
        return end.time() == time.min and end.date() - start.date() == timedelta(days=1)

    @staticmethod
    def _is_aligned(moment: datetime) -> bool:
        return moment.minute == 0 and moment.second == 0 and moment.microsecond == 0
