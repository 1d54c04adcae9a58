"""Command-line interface for the consultsched scheduling tool."""

import argparse
import logging
import random
import sys
from datetime import date, timedelta
from typing import Optional

from consultsched.domain.calendar import ItalianBusinessCalendar
from consultsched.domain.models import (
    Consultant,
    Contract,
    ContractedService,
    Recipient,
    Service,
)
from consultsched.domain.repository import (
    InMemoryContractedServiceRepository,
    InMemoryPersistence,
)
from consultsched.domain.errors import SchedulingError
from consultsched.output.pdf_generator import PDFGenerator
from consultsched.output.report_generator import ReportGenerator
from consultsched.scheduling.generator import ConsultantScheduleGenerator, GeneratorConfig
from consultsched.scheduling.planner import SchedulePlanner
from consultsched.validation.validator import ScheduleValidator, ValidationGroup

logger = logging.getLogger(__name__)

SAMPLE_CONSULTANTS = [
    "Cugusi Mario", "Belelli Fiorenzo", "Rossi Anna", "Bianchi Luca",
    "Ferrari Giulia", "Esposito Marco", "Romano Sara", "Colombo Paolo",
]

SAMPLE_RECIPIENTS = [
    "Azienda Agricola Monte", "Caseificio Valle Verde", "Cantina del Sole",
    "Oleificio San Marco", "Allevamento La Quercia", "Frantoio Antico",
]

SAMPLE_SERVICES = [
    Service(name="1. Condizionalita", hours=12, hours_on_premises=4),
    Service(name="2. Sicurezza sul lavoro", hours=8, hours_on_premises=8),
    Service(name="3. Zootecnica", hours=20, hours_on_premises=12),
    Service(name="3. Direttiva acque", hours=16, hours_on_premises=6),
    Service(name="4. Innovazione", hours=10, hours_on_premises=0),
]


def create_sample_repository(
    consultant_count: int = 3,
    services_per_consultant: int = 3,
    rng: Optional[random.Random] = None,
) -> InMemoryContractedServiceRepository:
    """Create sample contracted services for testing.

    Args:
        consultant_count: Number of consultants to create.
        services_per_consultant: Contracted services per consultant.
        rng: Random source used to pick recipients and services.
    """
    rng = rng or random.Random(0)
    repository = InMemoryContractedServiceRepository()
    contracts = [Contract(recipient=Recipient(name=name)) for name in SAMPLE_RECIPIENTS]

    for i in range(consultant_count):
        name = SAMPLE_CONSULTANTS[i % len(SAMPLE_CONSULTANTS)]
        if i >= len(SAMPLE_CONSULTANTS):
            name = f"{name} {i // len(SAMPLE_CONSULTANTS) + 1}"
        consultant = Consultant(name=name)

        pairs = [(contract, service) for contract in contracts for service in SAMPLE_SERVICES]
        for contract, service in rng.sample(pairs, services_per_consultant):
            repository.add(
                ContractedService(contract=contract, service=service, consultant=consultant)
            )
    return repository


def default_window(today: Optional[date] = None) -> tuple[date, date]:
    """Four working weeks starting next Monday."""
    today = today or date.today()
    monday = today + timedelta(days=7 - today.weekday())
    return monday, monday + timedelta(days=25)


def _print_validation(result) -> None:
    if result.is_valid:
        print("\n  Validation: PASSED")
    else:
        print(f"\n  Validation: FAILED ({len(result.errors)} errors)")
        for error in result.errors[:5]:
            print(f"    - {error}")
        if len(result.errors) > 5:
            print(f"    ... and {len(result.errors) - 5} more errors")


def run_demo(
    consultant_count: int = 3,
    seed: Optional[int] = None,
    output_path: Optional[str] = None,
) -> int:
    """Generate one schedule per sample consultant and print statistics."""
    rng = random.Random(seed)
    repository = create_sample_repository(consultant_count, rng=rng)
    generator = ConsultantScheduleGenerator(repository, rng=rng)
    from_, to = default_window()

    print(f"Generating demo schedules for {consultant_count} consultants, {from_} to {to}...")

    for consultant in repository.consultants():
        try:
            schedule, stats = generator.generate_schedule_with_stats(consultant, from_, to)
        except SchedulingError as exc:
            logger.error("Demo failed for %s: %s", consultant, exc)
            print(f"\nDemo FAILED for {consultant}: {exc}")
            return 1

        print(f"\n{consultant}")
        print(f"  Tasks: {stats['tasks']}, hours: {stats['total_hours']}")
        print(f"  Slots: {stats['allocated_slots']}/{stats['slots']} allocated")
        for cs_stats in stats["contracted_services"].values():
            print(
                f"    {cs_stats['name']}: {cs_stats['hours']}h "
                f"({cs_stats['hours_on_premises']}h on premises)"
            )

        result = generator.validator.validate_schedule(
            schedule,
            groups=[ValidationGroup.DEFAULT, ValidationGroup.HOURS, ValidationGroup.CONSULTANT],
            contracted_services=repository.find_by_consultant(consultant),
        )
        _print_validation(result)

        if output_path:
            path = output_path.replace(".pdf", f"-{consultant.name.replace(' ', '_')}.pdf")
            PDFGenerator().generate(schedule, path)
            print(f"  PDF created: {path}")
    return 0


def run_plan(
    from_: date,
    to: date,
    consultant_count: int = 3,
    seed: Optional[int] = None,
    consolidate_daily: bool = False,
    pdf_path: Optional[str] = None,
    report_path: Optional[str] = None,
) -> int:
    """Plan every sample consultant into one schedule."""
    rng = random.Random(seed)
    repository = create_sample_repository(consultant_count, rng=rng)
    persistence = InMemoryPersistence()
    generator = ConsultantScheduleGenerator(
        repository,
        config=GeneratorConfig(consolidate_daily=consolidate_daily),
        rng=rng,
    )
    planner = SchedulePlanner(generator, persistence=persistence)

    print(f"Planning {consultant_count} consultants from {from_} to {to}...")
    try:
        result = planner.plan(repository.consultants(), from_, to)
    except SchedulingError as exc:
        logger.error("Planning failed: %s", exc)
        print(f"\nPlanning FAILED: {exc}")
        return 1

    print(f"\n{'=' * 60}")
    print(f"Schedule {result.schedule.id}")
    print(f"{'=' * 60}")
    print(f"  Tasks: {len(result.schedule.tasks)}")
    print(f"  Total hours: {result.total_hours}")
    print(f"  Persisted entities: {len(persistence.stored)}")
    _print_validation(
        ScheduleValidator().validate_schedule(
            result.schedule,
            groups=[ValidationGroup.DEFAULT, ValidationGroup.HOURS],
            contracted_services=repository.all(),
        )
    )

    if report_path:
        ReportGenerator().generate(result.schedule, report_path, repository.all())
        print(f"\nReport written: {report_path}")
    if pdf_path:
        PDFGenerator().generate(result.schedule, pdf_path)
        print(f"PDF created: {pdf_path}")
    return 0


def run_holidays(year: int, include_prefestivi: bool = True) -> None:
    """Print the holiday table of a year."""
    calendar = ItalianBusinessCalendar(include_prefestivi=include_prefestivi)
    print(f"Holidays {year}{' (with prefestivi)' if include_prefestivi else ''}:")
    for day in sorted(calendar.holidays(year)):
        print(f"  {day:%Y-%m-%d %A}")


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for CLI."""
    parser = argparse.ArgumentParser(
        description="consultsched - Consulting Contract Scheduling Tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s demo                                  Demo with 3 consultants
  %(prog)s demo --count 5 --seed 42              Reproducible demo
  %(prog)s plan --from 2021-06-01 --to 2021-06-30 --report plan.txt
  %(prog)s plan --from 2021-06-01 --to 2021-06-30 --pdf plan.pdf
  %(prog)s holidays --year 2021
        """,
    )
    parser.add_argument(
        "--verbose", "-v",
        action="count",
        default=0,
        help="Increase log verbosity (-v info, -vv debug)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Demo command
    demo_parser = subparsers.add_parser("demo", help="Generate one schedule per sample consultant")
    demo_parser.add_argument(
        "--count", "-c",
        type=int,
        default=3,
        help="Number of consultants to generate (default: 3)",
    )
    demo_parser.add_argument("--seed", "-s", type=int, help="Random seed")
    demo_parser.add_argument("--output", "-o", type=str, help="Output PDF file path")

    # Plan command
    plan_parser = subparsers.add_parser("plan", help="Plan all sample consultants into one schedule")
    plan_parser.add_argument(
        "--from",
        dest="from_",
        type=date.fromisoformat,
        required=True,
        help="First day (YYYY-MM-DD)",
    )
    plan_parser.add_argument(
        "--to",
        type=date.fromisoformat,
        required=True,
        help="Last day, inclusive (YYYY-MM-DD)",
    )
    plan_parser.add_argument(
        "--count", "-c",
        type=int,
        default=3,
        help="Number of consultants to generate (default: 3)",
    )
    plan_parser.add_argument("--seed", "-s", type=int, help="Random seed")
    plan_parser.add_argument(
        "--consolidate-daily",
        action="store_true",
        help="Merge each day's same-activity tasks into one block",
    )
    plan_parser.add_argument("--pdf", type=str, help="Output PDF file path")
    plan_parser.add_argument("--report", type=str, help="Output text report path")

    # Holidays command
    holidays_parser = subparsers.add_parser("holidays", help="List the holidays of a year")
    holidays_parser.add_argument("--year", "-y", type=int, default=date.today().year)
    holidays_parser.add_argument(
        "--no-prefestivi",
        action="store_true",
        help="Exclude the days before holidays",
    )

    args = parser.parse_args(argv)

    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if args.command == "demo":
        return run_demo(args.count, args.seed, args.output)
    elif args.command == "plan":
        if args.from_ > args.to:
            parser.error("--from must not be after --to")
        return run_plan(
            args.from_,
            args.to,
            args.count,
            args.seed,
            args.consolidate_daily,
            args.pdf,
            args.report,
        )
    elif args.command == "holidays":
        run_holidays(args.year, not args.no_prefestivi)
        return 0
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
