"""OR-Tools CP-SAT capacity check for contracted hours.

Before allocating, the generator can ask whether the contracted hours fit
in the schedule's free slots at all, given each service's eligible window.
The check is a small integer model: hours of each service per business
day, bounded by the free slots of that day inside the service's window,
summing to the service's remaining hours, and never exceeding a day's
free slots in total.

Greedy allocation can still fail on a feasible instance (slots are taken
in random order), but an infeasible answer means no allocation exists.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Iterable, Optional

from ortools.sat.python import cp_model

from consultsched.domain.models import ContractedService

logger = logging.getLogger(__name__)


@dataclass
class FeasibilityConfig:
    """Configuration for the CP-SAT capacity check.

    Attributes:
        time_limit_seconds: Maximum solver runtime.
        num_workers: Number of parallel workers (0 = auto).
    """

    time_limit_seconds: float = 10.0
    num_workers: int = 1


@dataclass
class FeasibilityResult:
    """Result of a capacity check.

    Attributes:
        status: Solver status (OPTIMAL, FEASIBLE, INFEASIBLE, etc.).
        day_plan: Hours per business day for each contracted service id,
            when a plan was found.
        solve_time_seconds: Time taken to solve.
    """

    status: str
    day_plan: dict[str, dict[date, int]] = field(default_factory=dict)
    solve_time_seconds: float = 0.0

    @property
    def is_feasible(self) -> bool:
        return self.status in ("OPTIMAL", "FEASIBLE")

    @property
    def is_infeasible(self) -> bool:
        """Only a proven infeasibility rules out every allocation."""
        return self.status == "INFEASIBLE"


class CapacityChecker:
    """Checks that contracted hours fit in a schedule's free slots."""

    def __init__(self, config: Optional[FeasibilityConfig] = None):
        self.config = config or FeasibilityConfig()

    def check(
        self, schedule: Any, contracted_services: Iterable[ContractedService]
    ) -> FeasibilityResult:
        """Solve the capacity model for a schedule.

        Hours already allocated to a service count towards its target.

        Args:
            schedule: Schedule whose free slots are the capacity.
            contracted_services: Services whose hours must fit.

        Returns:
            FeasibilityResult with the solver status and a day plan.
        """
        contracted_services = list(contracted_services)

        # Free slots per day, overall and inside each service's window
        day_capacity: dict[date, int] = defaultdict(int)
        window_capacity: dict[str, dict[date, int]] = {}
        remaining: dict[str, int] = {}
        for cs in contracted_services:
            after, before = cs.eligible_window(schedule.from_, schedule.to)
            per_day: dict[date, int] = defaultdict(int)
            for slot in schedule.slots:
                if slot.is_free() and after <= slot.start and slot.end <= before:
                    per_day[slot.day] += 1
            window_capacity[cs.id] = per_day
            remaining[cs.id] = cs.hours - schedule.count_slots_allocated_to_contracted_service(cs)
        for slot in schedule.slots:
            if slot.is_free():
                day_capacity[slot.day] += 1

        for cs in contracted_services:
            if remaining[cs.id] > sum(window_capacity[cs.id].values()):
                logger.debug("%s needs %dh, window holds fewer free slots", cs, remaining[cs.id])
                return FeasibilityResult(status="INFEASIBLE")

        model = cp_model.CpModel()
        x: dict[str, dict[date, cp_model.IntVar]] = {}
        for cs in contracted_services:
            x[cs.id] = {
                day: model.NewIntVar(0, free, f"x_{cs.id}_{day:%Y%m%d}")
                for day, free in window_capacity[cs.id].items()
            }
            if x[cs.id]:
                model.Add(sum(x[cs.id].values()) == remaining[cs.id])

        by_day: dict[date, list[cp_model.IntVar]] = defaultdict(list)
        for variables in x.values():
            for day, var in variables.items():
                by_day[day].append(var)
        for day, variables in by_day.items():
            model.Add(sum(variables) <= day_capacity[day])

        solver = cp_model.CpSolver()
        solver.parameters.max_time_in_seconds = self.config.time_limit_seconds
        if self.config.num_workers > 0:
            solver.parameters.num_workers = self.config.num_workers

        status = solver.Solve(model)

        status_map = {
            cp_model.OPTIMAL: "OPTIMAL",
            cp_model.FEASIBLE: "FEASIBLE",
            cp_model.INFEASIBLE: "INFEASIBLE",
            cp_model.MODEL_INVALID: "MODEL_INVALID",
            cp_model.UNKNOWN: "UNKNOWN",
        }
        status_str = status_map.get(status, "UNKNOWN")
        logger.debug("Capacity check: %s in %.3fs", status_str, solver.WallTime())

        if status not in (cp_model.OPTIMAL, cp_model.FEASIBLE):
            return FeasibilityResult(status=status_str, solve_time_seconds=solver.WallTime())

        day_plan = {
            cs_id: {
                day: solver.Value(var)
                for day, var in variables.items()
                if solver.Value(var) > 0
            }
            for cs_id, variables in x.items()
        }
        return FeasibilityResult(
            status=status_str,
            day_plan=day_plan,
            solve_time_seconds=solver.WallTime(),
        )
