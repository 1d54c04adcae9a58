"""Smoke tests for the command-line interface."""

import random
from datetime import date

import pytest

from consultsched.cli import create_sample_repository, default_window, main
from consultsched.domain.errors import NoFreeSlotsAvailableError
from consultsched.scheduling.generator import ConsultantScheduleGenerator


class TestSampleData:
    """Tests for the sample data helpers."""

    def test_create_sample_repository(self):
        repository = create_sample_repository(consultant_count=4, services_per_consultant=2, rng=random.Random(1))

        assert len(repository.consultants()) == 4
        assert len(repository.all()) == 8

    def test_more_consultants_than_names(self):
        repository = create_sample_repository(consultant_count=10, services_per_consultant=1)

        names = [c.name for c in repository.consultants()]
        assert len(names) == len(set(names)) == 10

    def test_default_window_starts_next_monday(self):
        from_, to = default_window(date(2021, 6, 16))

        assert from_ == date(2021, 6, 21)
        assert to == date(2021, 7, 16)


class TestMain:
    """Tests for the CLI entry point."""

    def test_no_command(self, capsys):
        assert main([]) == 1

    def test_holidays(self, capsys):
        assert main(["holidays", "--year", "2021"]) == 0

        output = capsys.readouterr().out
        assert "2021-04-05" in output
        assert "2021-12-24" in output

    def test_holidays_without_prefestivi(self, capsys):
        assert main(["holidays", "--year", "2021", "--no-prefestivi"]) == 0

        assert "2021-12-24" not in capsys.readouterr().out

    def test_demo_failure_returns_error(self, capsys, monkeypatch):
        """Test that a generation failure in the demo is reported, not raised."""

        def fail(self, consultant, from_, to):
            raise NoFreeSlotsAvailableError()

        monkeypatch.setattr(ConsultantScheduleGenerator, "generate_schedule_with_stats", fail)

        assert main(["demo", "--count", "1", "--seed", "1"]) == 1
        assert "Demo FAILED" in capsys.readouterr().out

    def test_plan(self, capsys, tmp_path):
        """Test planning the sample consultants and writing both outputs."""
        report = tmp_path / "plan.txt"
        pdf = tmp_path / "plan.pdf"

        code = main([
            "plan",
            "--from", "2021-06-01",
            "--to", "2021-06-30",
            "--seed", "1",
            "--report", str(report),
            "--pdf", str(pdf),
        ])

        assert code == 0
        assert "Validation: PASSED" in capsys.readouterr().out
        assert "HOURS PER CONSULTANT" in report.read_text()
        assert pdf.read_bytes().startswith(b"%PDF")

    def test_plan_failure_returns_error(self, capsys):
        """Test that a window too short for the sample hours fails cleanly."""
        code = main(["plan", "--from", "2021-06-18", "--to", "2021-06-18", "--count", "2", "--seed", "3"])

        assert code == 1
        assert "Planning FAILED" in capsys.readouterr().out

    def test_plan_reversed_dates(self):
        with pytest.raises(SystemExit):
            main(["plan", "--from", "2021-06-30", "--to", "2021-06-01"])
