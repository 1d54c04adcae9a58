"""Tests for PDF and text report output."""

import random
from datetime import date, datetime

import pytest

from consultsched.domain.commands import AddTask, ScheduleChangeset, execute
from consultsched.domain.models import (
    Consultant,
    Contract,
    ContractedService,
    Recipient,
    Service,
    Task,
)
from consultsched.domain.schedule import Schedule
from consultsched.output import PDFGenerator, ReportGenerator


@pytest.fixture
def contracted_service():
    return ContractedService(
        contract=Contract(recipient=Recipient(name="Azienda Agricola Monte")),
        service=Service(name="Condizionalita", hours=5, hours_on_premises=3),
        consultant=Consultant(name="Belelli Fiorenzo"),
    )


@pytest.fixture
def schedule(contracted_service):
    """Create a schedule holding 5 hours, 3 of them on premises."""
    schedule = Schedule(date(2021, 6, 14), date(2021, 6, 25), rng=random.Random(0))
    schedule.add_task(
        Task(
            contracted_service=contracted_service,
            start=datetime(2021, 6, 14, 9),
            end=datetime(2021, 6, 14, 12),
            on_premises=True,
        )
    )
    schedule.add_task(
        Task(
            contracted_service=contracted_service,
            start=datetime(2021, 6, 22, 14),
            end=datetime(2021, 6, 22, 16),
        )
    )
    return schedule


class TestPDFGenerator:
    """Tests for PDFGenerator."""

    def test_generate_to_buffer(self, schedule):
        buffer = PDFGenerator().generate_to_buffer(schedule)

        assert buffer.getvalue().startswith(b"%PDF")

    def test_generate_to_file(self, schedule, tmp_path):
        path = tmp_path / "schedule.pdf"

        PDFGenerator().generate(schedule, path)

        assert path.exists()
        assert path.read_bytes().startswith(b"%PDF")

    def test_empty_schedule(self):
        """Test that a schedule without tasks still renders its weeks."""
        buffer = PDFGenerator().generate_to_buffer(Schedule(date(2021, 6, 14), date(2021, 6, 18)))

        assert buffer.getvalue().startswith(b"%PDF")

    def test_weeks(self, schedule):
        assert PDFGenerator()._weeks(schedule) == [date(2021, 6, 14), date(2021, 6, 21)]


class TestReportGenerator:
    """Tests for ReportGenerator."""

    def test_report_sections(self, schedule, contracted_service):
        report = ReportGenerator().generate_to_string(schedule, [contracted_service])

        assert "SCHEDULE REPORT - 2021-06-14 00:00 to 2021-06-26 00:00" in report
        assert "Total Hours: 5" in report
        assert "HOURS PER CONSULTANT" in report
        assert "Belelli Fiorenzo" in report
        assert "DAILY UTILISATION" in report
        assert "2021-06-14 09:00-12:00 [P]" in report
        assert "2021-06-22 14:00-16:00 [R]" in report
        assert "MISMATCH" not in report

    def test_report_flags_mismatch(self, schedule):
        short = ContractedService(
            contract=Contract(recipient=Recipient(name="Frantoio Antico")),
            service=Service(name="Innovazione", hours=10),
            consultant=Consultant(name="Belelli Fiorenzo"),
        )

        report = ReportGenerator().generate_to_string(schedule, [short])

        assert "<-- MISMATCH" in report

    def test_report_changeset(self, schedule, contracted_service):
        """Test that recorded commands are listed with their order."""
        changeset = ScheduleChangeset(schedule)
        command = AddTask(
            schedule,
            Task(
                contracted_service=contracted_service,
                start=datetime(2021, 6, 23, 8),
                end=datetime(2021, 6, 23, 9),
                on_premises=True,
            ),
        )
        execute(command)
        changeset.add_command(command)

        report = ReportGenerator().generate_to_string(schedule, changeset=changeset)

        assert f"CHANGESET {changeset.id}" in report
        assert "#1 add 2021-06-23 08:00-09:00" in report
        assert "On-premises changes to notify: 1" in report

    def test_generate_writes_file(self, schedule, tmp_path):
        path = tmp_path / "report.txt"

        content = ReportGenerator().generate(schedule, path)

        assert path.read_text() == content

    def test_report_utilisation_from_tasks(self, schedule):
        """Test that utilisation counts task hours even without slot bindings."""
        report = ReportGenerator().generate_to_string(schedule)

        assert "Slots: 5/100 allocated" in report
        assert "Mon 2021-06-14  ###.......  3/10" in report
        assert "Tue 2021-06-22  ##........  2/10" in report
        assert "Wed 2021-06-16  ..........  0/10" in report
