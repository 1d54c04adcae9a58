"""Tests for task and schedule validation."""

from datetime import date, datetime

import pytest

from consultsched.domain.errors import InvalidEntityError
from consultsched.domain.models import (
    Consultant,
    Contract,
    ContractedService,
    Recipient,
    Service,
    Task,
)
from consultsched.domain.schedule import Schedule
from consultsched.validation.validator import (
    ScheduleValidator,
    ValidationError,
    ValidationErrorType,
    ValidationGroup,
    ValidationResult,
)


def make_contracted_service(consultant_name="Ferrari Giulia", hours=4, hours_on_premises=2):
    return ContractedService(
        contract=Contract(recipient=Recipient(name="Caseificio Valle Verde")),
        service=Service(name="Zootecnica", hours=hours, hours_on_premises=hours_on_premises),
        consultant=Consultant(name=consultant_name),
    )


class TestTaskValidation:
    """Tests for single-task rules."""

    @pytest.fixture
    def validator(self):
        return ScheduleValidator()

    @pytest.fixture
    def cs(self):
        return make_contracted_service()

    def _task(self, cs, start, end):
        return Task(contracted_service=cs, start=start, end=end)

    def test_valid_task(self, validator, cs):
        result = validator.validate_task(self._task(cs, datetime(2021, 6, 21, 8), datetime(2021, 6, 21, 18)))

        assert result.is_valid
        assert result.errors == []

    def test_end_not_after_start(self, validator, cs):
        result = validator.validate_task(self._task(cs, datetime(2021, 6, 21, 10), datetime(2021, 6, 21, 10)))

        assert result.error_types() == {ValidationErrorType.TASK_END_NOT_AFTER_START}

    def test_spans_days(self, validator, cs):
        """Test a task running past midnight."""
        result = validator.validate_task(self._task(cs, datetime(2021, 6, 21, 17), datetime(2021, 6, 22, 9)))

        assert ValidationErrorType.TASK_SPANS_DAYS in result.error_types()
        assert ValidationErrorType.TASK_OUTSIDE_BUSINESS_HOURS in result.error_types()

    def test_not_aligned(self, validator, cs):
        result = validator.validate_task(
            self._task(cs, datetime(2021, 6, 21, 10, 30), datetime(2021, 6, 21, 11, 30))
        )

        assert result.error_types() == {ValidationErrorType.TASK_NOT_SLOT_ALIGNED}

    @pytest.mark.parametrize("start_hour,end_hour", [(7, 9), (17, 19), (6, 8)])
    def test_outside_business_hours(self, validator, cs, start_hour, end_hour):
        result = validator.validate_task(
            self._task(cs, datetime(2021, 6, 21, start_hour), datetime(2021, 6, 21, end_hour))
        )

        assert result.error_types() == {ValidationErrorType.TASK_OUTSIDE_BUSINESS_HOURS}

    def test_weekend(self, validator, cs):
        result = validator.validate_task(self._task(cs, datetime(2021, 6, 19, 10), datetime(2021, 6, 19, 12)))

        assert result.error_types() == {ValidationErrorType.TASK_ON_WEEKEND}

    def test_holiday(self, validator, cs):
        result = validator.validate_task(self._task(cs, datetime(2021, 6, 2, 10), datetime(2021, 6, 2, 12)))

        assert result.error_types() == {ValidationErrorType.TASK_ON_HOLIDAY}

    def test_missing_contracted_service(self, validator):
        task = Task(contracted_service=None, start=datetime(2021, 6, 21, 10), end=datetime(2021, 6, 21, 11))

        result = validator.validate_task(task)

        assert result.error_types() == {ValidationErrorType.TASK_WITHOUT_CONTRACTED_SERVICE}

    def test_validate_dispatches_on_task(self, validator, cs):
        result = validator.validate(self._task(cs, datetime(2021, 6, 19, 10), datetime(2021, 6, 19, 12)))

        assert not result.is_valid


class TestScheduleValidation:
    """Tests for schedule rule groups."""

    @pytest.fixture
    def validator(self):
        return ScheduleValidator()

    @pytest.fixture
    def schedule(self):
        return Schedule(date(2021, 6, 21), date(2021, 6, 25))

    @pytest.fixture
    def cs(self):
        return make_contracted_service()

    def _add(self, schedule, cs, day, start_hour, end_hour, on_premises=False):
        task = Task(
            contracted_service=cs,
            start=datetime(day.year, day.month, day.day, start_hour),
            end=datetime(day.year, day.month, day.day, end_hour),
            on_premises=on_premises,
        )
        schedule.add_task(task)
        return task

    def test_out_of_bounds(self, validator, schedule, cs):
        """Test that a task after the last day is rejected by the default group."""
        self._add(schedule, cs, date(2021, 6, 28), 10, 12)

        result = validator.validate_schedule(schedule)

        assert result.error_types() == {ValidationErrorType.TASK_OUTSIDE_BOUNDS}

    def test_holiday_in_schedule(self, validator, cs):
        schedule = Schedule(date(2021, 5, 31), date(2021, 6, 4))
        self._add(schedule, cs, date(2021, 6, 2), 10, 12)

        result = validator.validate(schedule)

        assert result.error_types() == {ValidationErrorType.TASK_ON_HOLIDAY}

    def test_hours_match(self, validator, schedule, cs):
        self._add(schedule, cs, date(2021, 6, 21), 10, 12, on_premises=True)
        self._add(schedule, cs, date(2021, 6, 22), 10, 12)

        result = validator.validate_schedule(
            schedule, groups=[ValidationGroup.DEFAULT, ValidationGroup.HOURS], contracted_services=[cs]
        )

        assert result.is_valid

    def test_hours_mismatch(self, validator, schedule, cs):
        """Test both total and on-premises hour mismatches."""
        self._add(schedule, cs, date(2021, 6, 21), 10, 13)

        result = validator.validate_schedule(schedule, groups=[ValidationGroup.HOURS])

        assert result.error_types() == {
            ValidationErrorType.HOURS_MISMATCH,
            ValidationErrorType.ON_PREMISES_HOURS_MISMATCH,
        }
        mismatch = [e for e in result.errors if e.error_type is ValidationErrorType.HOURS_MISMATCH][0]
        assert mismatch.details["scheduled"] == 3
        assert mismatch.details["expected"] == 4

    def test_listed_service_without_tasks(self, validator, schedule, cs):
        result = validator.validate_schedule(
            schedule, groups=[ValidationGroup.HOURS], contracted_services=[cs]
        )

        assert ValidationErrorType.HOURS_MISMATCH in result.error_types()

    def test_overlapping_tasks(self, validator, schedule, cs):
        self._add(schedule, cs, date(2021, 6, 21), 10, 12)
        self._add(schedule, cs, date(2021, 6, 21), 11, 13)

        result = validator.validate_schedule(schedule, groups=[ValidationGroup.CONSULTANT])

        assert result.error_types() == {ValidationErrorType.TASKS_OVERLAP}

    def test_multiple_consultants(self, validator, schedule, cs):
        """Test that tasks of two consultants at the same time do not overlap each other."""
        self._add(schedule, cs, date(2021, 6, 21), 10, 12)
        self._add(schedule, make_contracted_service("Esposito Marco"), date(2021, 6, 21), 10, 12)

        result = validator.validate_schedule(schedule, groups=[ValidationGroup.CONSULTANT])

        assert result.error_types() == {ValidationErrorType.MULTIPLE_CONSULTANTS}

    def test_discontinuous_task(self, validator, schedule, cs):
        self._add(schedule, cs, date(2021, 6, 21), 8, 10)
        self._add(schedule, cs, date(2021, 6, 21), 14, 15)
        self._add(schedule, cs, date(2021, 6, 21), 15, 16, on_premises=True)

        result = validator.validate_schedule(schedule, groups=[ValidationGroup.GENERATION])

        assert result.error_types() == {ValidationErrorType.DISCONTINUOUS_TASK}
        assert len(result.errors) == 1

    def test_default_group_only(self, validator, schedule, cs):
        self._add(schedule, cs, date(2021, 6, 21), 10, 11)

        assert validator.validate_schedule(schedule).is_valid


class TestValidationResult:
    """Tests for ValidationResult and ValidationError."""

    def test_add_error_invalidates(self):
        result = ValidationResult(is_valid=True)
        result.add_warning("just a warning")
        assert result.is_valid

        result.add_error(ValidationError(ValidationErrorType.TASKS_OVERLAP, "overlap"))
        assert not result.is_valid

    def test_extend(self):
        first = ValidationResult(is_valid=True)
        second = ValidationResult(is_valid=True)
        second.add_error(ValidationError(ValidationErrorType.TASK_ON_HOLIDAY, "holiday"))

        first.extend(second)

        assert not first.is_valid
        assert first.error_types() == {ValidationErrorType.TASK_ON_HOLIDAY}

    def test_error_str(self):
        error = ValidationError(
            ValidationErrorType.TASK_ON_WEEKEND, "Task falls on a weekend", task_id="t1", consultant="Rossi Anna"
        )

        assert str(error) == "[task_on_weekend] Consultant Rossi Anna: Task falls on a weekend (task t1)"

    def test_invalid_entity_error_message(self):
        result = ValidationResult(is_valid=True)
        result.add_error(ValidationError(ValidationErrorType.HOURS_MISMATCH, "3h instead of 4h"))

        error = InvalidEntityError("schedule", result)

        assert "3h instead of 4h" in str(error)
        assert error.result is result
