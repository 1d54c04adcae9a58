"""PDF generation for schedule output.

This module creates printable weekly calendars:
- One page per consultant per week, Monday to Friday columns
- Business hours as rows
- Task blocks colored by on-premises or remote work
"""

from collections import defaultdict
from datetime import date, timedelta
from io import BytesIO
from pathlib import Path
from typing import Any, Optional, Union

from consultsched.domain.calendar import BusinessCalendar, ItalianBusinessCalendar
from consultsched.domain.models import Task

# Color definitions (RGB tuples, 0-1 scale)
COLORS = {
    "on_premises": (0.9, 0.6, 0.3),  # Orange
    "remote": (0.4, 0.6, 0.85),  # Blue
    "holiday": (0.9, 0.9, 0.9),  # Light gray
    "grid": (0.75, 0.75, 0.75),
}


class PDFGenerator:
    """Generates printable weekly schedule calendars.

    Example:
        >>> generator = PDFGenerator()
        >>> generator.generate(schedule, "schedule.pdf")
    """

    def __init__(
        self,
        page_width: float = 842,  # A4 landscape width
        page_height: float = 595,  # A4 landscape height
        margin: float = 36,  # 0.5 inch margins
        calendar: Optional[BusinessCalendar] = None,
    ):
        self.page_width = page_width
        self.page_height = page_height
        self.margin = margin
        self.calendar = calendar or ItalianBusinessCalendar()

    def generate(self, schedule: Any, output_path: Union[str, Path]) -> None:
        """Generate the PDF calendar and save it to a file.

        Args:
            schedule: Schedule (or consultant view) to render.
            output_path: Path to save the PDF.
        """
        try:
            from reportlab.pdfgen import canvas
        except ImportError:
            raise ImportError(
                "reportlab is required for PDF generation. "
                "Install with: pip install reportlab"
            )

        c = canvas.Canvas(str(output_path), pagesize=(self.page_width, self.page_height))
        self._draw_pages(c, schedule)
        c.save()

    def generate_to_buffer(self, schedule: Any) -> BytesIO:
        """Generate the PDF calendar and return it as a bytes buffer.

        Args:
            schedule: Schedule (or consultant view) to render.

        Returns:
            BytesIO buffer containing PDF data.
        """
        try:
            from reportlab.pdfgen import canvas
        except ImportError:
            raise ImportError(
                "reportlab is required for PDF generation. "
                "Install with: pip install reportlab"
            )

        buffer = BytesIO()
        c = canvas.Canvas(buffer, pagesize=(self.page_width, self.page_height))
        self._draw_pages(c, schedule)
        c.save()
        buffer.seek(0)
        return buffer

    @staticmethod
    def _last_day(schedule: Any) -> date:
        return (schedule.to - timedelta(microseconds=1)).date()

    def _weeks(self, schedule: Any) -> list[date]:
        """Get the Monday of every week touched by the schedule."""
        first = schedule.from_.date()
        last = self._last_day(schedule)
        monday = first - timedelta(days=first.weekday())
        weeks = []
        while monday <= last:
            weeks.append(monday)
            monday += timedelta(days=7)
        return weeks

    def _draw_pages(self, c, schedule: Any) -> None:
        """Draw one page per consultant and week."""
        by_consultant: dict[str, list[Task]] = defaultdict(list)
        for task in schedule.tasks:
            by_consultant[task.consultant_name].append(task)
        if not by_consultant:
            by_consultant[""] = []

        pages = [
            (name, monday)
            for name in sorted(by_consultant)
            for monday in self._weeks(schedule)
        ]
        for page_num, (name, monday) in enumerate(pages, start=1):
            week_tasks = [
                task for task in by_consultant[name]
                if monday <= task.day < monday + timedelta(days=5)
            ]
            self._draw_header(c, name, monday, week_tasks)
            self._draw_week(c, schedule, monday, week_tasks)
            self._draw_legend(c, self.margin, self.margin + 10)

            c.setFont("Helvetica", 9)
            c.drawCentredString(
                self.page_width / 2,
                self.margin - 10,
                f"Page {page_num} of {len(pages)}",
            )
            c.showPage()

    def _draw_header(self, c, consultant: str, monday: date, tasks: list[Task]) -> None:
        """Draw page header with consultant and week."""
        friday = monday + timedelta(days=4)
        c.setFont("Helvetica-Bold", 16)
        c.drawString(
            self.margin,
            self.page_height - self.margin - 20,
            f"{consultant or 'Schedule'} - {monday:%d/%m/%Y} to {friday:%d/%m/%Y}",
        )

        on_premises = sum(task.hours for task in tasks if task.on_premises)
        total = sum(task.hours for task in tasks)
        c.setFont("Helvetica", 10)
        c.drawString(
            self.margin,
            self.page_height - self.margin - 35,
            f"Hours this week: {total} ({on_premises} on premises, {total - on_premises} remote)",
        )

    def _draw_week(self, c, schedule: Any, monday: date, tasks: list[Task]) -> None:
        """Draw the Monday to Friday grid and the task blocks."""
        hours = self.calendar.business_hours(monday)
        top = self.page_height - self.margin - 70
        bottom = self.margin + 40
        left = self.margin + 40
        right = self.page_width - self.margin
        column_width = (right - left) / 5
        row_height = (top - bottom) / max(len(hours), 1)

        c.setStrokeColorRGB(*COLORS["grid"])
        c.setLineWidth(0.5)
        for offset in range(5):
            day = monday + timedelta(days=offset)
            x = left + offset * column_width
            if not self.calendar.is_business_day(day) or not (
                schedule.from_.date() <= day <= self._last_day(schedule)
            ):
                c.setFillColorRGB(*COLORS["holiday"])
                c.rect(x, bottom, column_width, top - bottom, fill=1, stroke=0)
            c.setFillColorRGB(0, 0, 0)
            c.setFont("Helvetica-Bold", 9)
            c.drawCentredString(x + column_width / 2, top + 6, f"{day:%a %d/%m}")

        c.setFont("Helvetica", 8)
        for row, hour in enumerate(hours):
            y = top - row * row_height
            c.line(left, y, right, y)
            c.drawRightString(left - 4, y - 10, f"{hour:02d}:00")
        c.line(left, bottom, right, bottom)
        for offset in range(6):
            x = left + offset * column_width
            c.line(x, bottom, x, top)

        for task in tasks:
            offset = (task.day - monday).days
            start_row = task.start.hour - hours.start
            x = left + offset * column_width + 2
            y = top - (start_row + task.hours) * row_height + 1
            height = task.hours * row_height - 2
            color = COLORS["on_premises"] if task.on_premises else COLORS["remote"]
            c.setFillColorRGB(*color)
            c.rect(x, y, column_width - 4, height, fill=1, stroke=0)

            c.setFillColorRGB(0, 0, 0)
            c.setFont("Helvetica-Bold", 7)
            c.drawString(x + 3, y + height - 9, task.recipient_name[:28])
            c.setFont("Helvetica", 7)
            c.drawString(x + 3, y + height - 18, task.service_name[:30])

    def _draw_legend(self, c, x: float, y: float) -> None:
        """Draw legend for colors."""
        c.setFillColorRGB(0, 0, 0)
        c.setFont("Helvetica-Bold", 8)
        c.drawString(x, y, "Legend:")

        items = [
            ("on_premises", "On premises"),
            ("remote", "Remote"),
            ("holiday", "Holiday / outside schedule"),
        ]
        offset = x + 45
        for key, label in items:
            c.setFillColorRGB(*COLORS[key])
            c.rect(offset, y - 2, 10, 10, fill=1, stroke=0)
            c.setFillColorRGB(0, 0, 0)
            c.setFont("Helvetica", 8)
            c.drawString(offset + 14, y, label)
            offset += 30 + len(label) * 5
