"""Tests for the CP-SAT capacity check."""

from datetime import date

import pytest

from consultsched.domain.models import (
    Consultant,
    Contract,
    ContractedService,
    Recipient,
    Service,
    Task,
)
from consultsched.domain.schedule import Schedule
from consultsched.scheduling.feasibility import (
    CapacityChecker,
    FeasibilityConfig,
    FeasibilityResult,
)


def make_contracted_service(hours, from_date=None, to_date=None):
    return ContractedService(
        contract=Contract(recipient=Recipient(name="Allevamento La Quercia")),
        service=Service(name="Innovazione", hours=hours),
        consultant=Consultant(name="Romano Sara"),
        from_date=from_date,
        to_date=to_date,
    )


class TestCapacityChecker:
    """Tests for CapacityChecker."""

    @pytest.fixture
    def checker(self):
        """Create a checker with a short time limit."""
        return CapacityChecker(FeasibilityConfig(time_limit_seconds=5.0))

    @pytest.fixture
    def schedule(self):
        """Create a two-day schedule (20 slots)."""
        return Schedule(date(2021, 6, 21), date(2021, 6, 22))

    def test_feasible_plan(self, checker, schedule):
        """Test that a fitting service gets a day plan summing to its hours."""
        cs = make_contracted_service(14)

        result = checker.check(schedule, [cs])

        assert result.is_feasible
        assert sum(result.day_plan[cs.id].values()) == 14
        assert all(hours <= 10 for hours in result.day_plan[cs.id].values())

    def test_combined_hours_infeasible(self, checker, schedule):
        """Test services that fit alone but not together."""
        result = checker.check(schedule, [make_contracted_service(12), make_contracted_service(12)])

        assert not result.is_feasible
        assert result.status == "INFEASIBLE"

    def test_window_too_small(self, checker, schedule):
        """Test a service whose own window cannot hold its hours."""
        cs = make_contracted_service(12, from_date=date(2021, 6, 22), to_date=date(2021, 6, 22))

        result = checker.check(schedule, [cs])

        assert result.status == "INFEASIBLE"
        assert result.day_plan == {}

    def test_window_restricts_days(self, checker, schedule):
        cs = make_contracted_service(6, from_date=date(2021, 6, 22))

        result = checker.check(schedule, [cs])

        assert result.is_feasible
        assert set(result.day_plan[cs.id]) == {date(2021, 6, 22)}

    def test_allocated_hours_count(self, checker, schedule):
        """Test that hours already placed reduce both demand and capacity."""
        cs = make_contracted_service(20)
        task = Task(contracted_service=cs, start=schedule.slots[0].start, end=schedule.slots[9].end)
        schedule.add_task(task)
        for slot in schedule.slots[:10]:
            slot.assign_task(task)

        result = checker.check(schedule, [cs])

        assert result.is_feasible
        assert result.day_plan[cs.id] == {date(2021, 6, 22): 10}

    def test_no_services(self, checker, schedule):
        assert checker.check(schedule, []).is_feasible


class TestFeasibilityResult:
    """Tests for reading a solver status."""

    @pytest.mark.parametrize(
        "status, feasible, infeasible",
        [
            ("OPTIMAL", True, False),
            ("FEASIBLE", True, False),
            ("INFEASIBLE", False, True),
            ("UNKNOWN", False, False),
        ],
    )
    def test_status(self, status, feasible, infeasible):
        result = FeasibilityResult(status=status)

        assert result.is_feasible is feasible
        assert result.is_infeasible is infeasible
