"""Text reports for schedule review.

This module creates plain-text output to review a schedule:
- Hours per consultant, on premises and remote
- Allocated versus contracted hours per contracted service
- Daily slot utilisation
- The changeset log of recorded edits
"""

from collections import defaultdict
from datetime import date
from pathlib import Path
from typing import Any, Iterable, Optional, Union

from consultsched.domain.commands import ScheduleChangeset
from consultsched.domain.models import ContractedService, Task


class ReportGenerator:
    """Generates text reports for a schedule.

    Example:
        >>> report = ReportGenerator().generate_to_string(schedule, contracted_services)
        >>> print(report)
    """

    def generate(
        self,
        schedule: Any,
        output_path: Union[str, Path],
        contracted_services: Optional[Iterable[ContractedService]] = None,
        changeset: Optional[ScheduleChangeset] = None,
    ) -> str:
        """Generate the report and save it to a file.

        Args:
            schedule: Schedule (or consultant view) to report on.
            output_path: Path to save the text file.
            contracted_services: Services to compare allocated hours against.
            changeset: Optional changeset whose commands are listed.

        Returns:
            The generated text content.
        """
        content = self._generate_content(schedule, contracted_services, changeset)
        Path(output_path).write_text(content)
        return content

    def generate_to_string(
        self,
        schedule: Any,
        contracted_services: Optional[Iterable[ContractedService]] = None,
        changeset: Optional[ScheduleChangeset] = None,
    ) -> str:
        """Generate the report and return it as a string."""
        return self._generate_content(schedule, contracted_services, changeset)

    def _generate_content(
        self,
        schedule: Any,
        contracted_services: Optional[Iterable[ContractedService]],
        changeset: Optional[ScheduleChangeset],
    ) -> str:
        """Generate the full report content."""
        lines = []
        tasks = sorted(schedule.tasks, key=lambda t: (t.consultant_name, t.start))

        # Header
        lines.append("=" * 80)
        lines.append(
            f"SCHEDULE REPORT - {schedule.from_:%Y-%m-%d %H:%M} to {schedule.to:%Y-%m-%d %H:%M}"
        )
        lines.append("=" * 80)
        lines.append("")

        seats = self._seats(tasks)
        lines.append(f"Total Tasks: {len(tasks)}")
        lines.append(f"Total Hours: {sum(t.hours for t in tasks)}")
        lines.append(f"Slots: {sum(t.hours for t in tasks)}/{len(schedule.slots) * seats} allocated")
        lines.append(f"Consultants: {seats}")
        lines.append("")

        lines.extend(self._consultant_section(tasks))
        lines.extend(self._contracted_service_section(tasks, contracted_services))
        lines.extend(self._daily_section(schedule, tasks))
        lines.extend(self._task_section(tasks))
        if changeset is not None:
            lines.extend(self._changeset_section(changeset))

        return "\n".join(lines) + "\n"

    def _consultant_section(self, tasks: list[Task]) -> list[str]:
        lines = []
        lines.append("-" * 80)
        lines.append("HOURS PER CONSULTANT")
        lines.append("-" * 80)
        lines.append(f"{'Consultant':<30} {'Total':>8} {'On prem.':>10} {'Remote':>8} {'Tasks':>7}")

        totals: dict[str, list[int]] = defaultdict(lambda: [0, 0, 0])
        for task in tasks:
            row = totals[task.consultant_name]
            row[0] += task.hours
            if task.on_premises:
                row[1] += task.hours
            row[2] += 1
        for name, (total, on_premises, count) in sorted(totals.items()):
            lines.append(
                f"{name[:30]:<30} {total:>8} {on_premises:>10} {total - on_premises:>8} {count:>7}"
            )
        lines.append("")
        return lines

    def _contracted_service_section(
        self,
        tasks: list[Task],
        contracted_services: Optional[Iterable[ContractedService]],
    ) -> list[str]:
        lines = []
        lines.append("-" * 80)
        lines.append("CONTRACTED SERVICES (allocated / contracted)")
        lines.append("-" * 80)

        services: dict[str, ContractedService] = {
            cs.id: cs for cs in contracted_services or []
        }
        total: dict[str, int] = defaultdict(int)
        on_premises: dict[str, int] = defaultdict(int)
        for task in tasks:
            services.setdefault(task.contracted_service.id, task.contracted_service)
            total[task.contracted_service.id] += task.hours
            if task.on_premises:
                on_premises[task.contracted_service.id] += task.hours

        for cs_id, cs in sorted(services.items(), key=lambda item: str(item[1])):
            flag = "" if total[cs_id] == cs.hours and on_premises[cs_id] == cs.hours_on_premises else "  <-- MISMATCH"
            lines.append(
                f"{str(cs)[:50]:<50} {total[cs_id]:>3}/{cs.hours:<3} "
                f"on prem. {on_premises[cs_id]:>3}/{cs.hours_on_premises:<3}{flag}"
            )
        lines.append("")
        return lines

    @staticmethod
    def _seats(tasks: list[Task]) -> int:
        """Number of consultants sharing the slot grid, at least one."""
        return max(1, len({task.consultant_name for task in tasks}))

    def _daily_section(self, schedule: Any, tasks: list[Task]) -> list[str]:
        """Hours worked per business day, read from task spans.

        A merged schedule holds several consultants but no slot bindings,
        so each day's capacity is its slot count times the consultants.
        """
        lines = []
        lines.append("-" * 80)
        lines.append("DAILY UTILISATION")
        lines.append("-" * 80)

        seats = self._seats(tasks)
        days: dict[date, list[int]] = defaultdict(lambda: [0, 0])
        for slot in schedule.slots:
            days[slot.day][1] += seats
        for task in tasks:
            if task.day in days:
                days[task.day][0] += task.hours
        for day, (allocated, available) in sorted(days.items()):
            bar = "#" * allocated + "." * (available - allocated)
            lines.append(f"{day:%a %Y-%m-%d}  {bar}  {allocated}/{available}")
        lines.append("")
        return lines

    def _task_section(self, tasks: list[Task]) -> list[str]:
        lines = []
        lines.append("-" * 80)
        lines.append("TASKS")
        lines.append("-" * 80)
        for task in tasks:
            where = "P" if task.on_premises else "R"
            lines.append(
                f"{task.start:%Y-%m-%d %H:%M}-{task.end:%H:%M} [{where}] "
                f"{task.consultant_name[:20]:<20} {task.recipient_name[:25]:<25} {task.service_name}"
            )
        lines.append("")
        return lines

    def _changeset_section(self, changeset: ScheduleChangeset) -> list[str]:
        lines = []
        lines.append("-" * 80)
        lines.append(f"CHANGESET {changeset.id} ({changeset.created_at:%Y-%m-%d %H:%M})")
        lines.append("-" * 80)
        if not changeset.commands:
            lines.append("No changes recorded")
        lines.extend(changeset.describe())
        on_premises = changeset.on_premises_changes()
        if on_premises:
            lines.append("")
            lines.append(f"On-premises changes to notify: {len(on_premises)}")
        lines.append("")
        return lines
