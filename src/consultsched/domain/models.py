"""Domain models for the consulting schedule system.

This module contains the entities the allocation engine works on:
consultants, recipients, services, contracts, contracted services and
tasks. Slots and schedules live in ``consultsched.domain.schedule``.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import TYPE_CHECKING, Optional

from consultsched.domain.calendar import as_end, as_start

if TYPE_CHECKING:
    from consultsched.domain.schedule import Schedule


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class Consultant:
    """A consultant performing contracted services.

    Attributes:
        name: Unique name, used as the identity key.
        title: Optional honorific (e.g., "Dott.").
        job_title: Optional job description.
    """

    name: str
    title: Optional[str] = None
    job_title: Optional[str] = None

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Recipient:
    """A company receiving consulting services.

    Attributes:
        name: Unique name, used as the identity key.
        vat_number: Optional VAT identification number.
        email: Optional contact address.
    """

    name: str
    vat_number: Optional[str] = None
    email: Optional[str] = None

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Service:
    """A service from the catalogue with its default hour targets.

    Attributes:
        name: Unique name, used as the identity key.
        hours: Default total hours.
        hours_on_premises: Default hours to be spent at the recipient.
        task_preferred_on_premises_hours: Preferred length of on-premises tasks.
    """

    name: str
    hours: int = 0
    hours_on_premises: int = 0
    task_preferred_on_premises_hours: Optional[int] = None

    @property
    def hours_remote(self) -> int:
        return self.hours - self.hours_on_premises

    def __str__(self) -> str:
        return self.name


@dataclass(eq=False)
class Contract:
    """A contract between the consultancy and one recipient."""

    recipient: Recipient
    id: str = field(default_factory=new_id)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    notes: str = ""

    def __str__(self) -> str:
        return f"Contract {self.id} ({self.recipient})"


@dataclass(eq=False)
class ContractedService:
    """A consultant's commitment to perform a service under a contract.

    Hours default to the service's targets when not given. The remote
    share is derived as ``hours - hours_on_premises``.

    Attributes:
        contract: The contract this service is sold under.
        service: The catalogue service.
        consultant: The consultant performing the service.
        hours: Total hours to schedule.
        hours_on_premises: Hours to be spent at the recipient's premises.
        from_date: First day tasks may be scheduled (inclusive).
        to_date: Last day tasks may be scheduled (inclusive).
        id: Stable identity key.
    """

    contract: Contract
    service: Service
    consultant: Consultant
    hours: Optional[int] = None
    hours_on_premises: Optional[int] = None
    from_date: Optional[date] = None
    to_date: Optional[date] = None
    id: str = field(default_factory=new_id)

    def __post_init__(self):
        if self.hours is None:
            self.hours = self.service.hours
        if self.hours_on_premises is None:
            self.hours_on_premises = self.service.hours_on_premises
        if self.hours < 0 or self.hours_on_premises < 0:
            raise ValueError(f"Negative hours for contracted service {self}")
        if self.hours_on_premises > self.hours:
            raise ValueError(
                f"hours_on_premises ({self.hours_on_premises}) exceeds "
                f"hours ({self.hours}) for contracted service {self}"
            )
        if self.from_date and self.to_date and self.from_date > self.to_date:
            raise ValueError(f"from_date > to_date for contracted service {self}")

    @property
    def hours_remote(self) -> int:
        return self.hours - self.hours_on_premises

    @property
    def recipient(self) -> Recipient:
        return self.contract.recipient

    def eligible_window(
        self, from_: datetime, to: datetime
    ) -> tuple[datetime, datetime]:
        """Clip the service's date window to the given bounds.

        Args:
            from_: Inclusive lower bound (usually the schedule start).
            to: Exclusive upper bound (usually the schedule end).

        Returns:
            Tuple of (after, before) datetimes, before exclusive.
        """
        after, before = from_, to
        if self.from_date is not None:
            after = max(after, as_start(self.from_date))
        if self.to_date is not None:
            before = min(before, as_end(self.to_date))
        return after, before

    def __str__(self) -> str:
        return f"{self.consultant} / {self.recipient} / {self.service}"


@dataclass(eq=False)
class Task:
    """A contiguous block of work for one contracted service.

    Tasks compare by identity; ``id`` is the stable key used in maps.
    ``end`` is exclusive: a task from 10:00 to 12:00 covers the 10:00 and
    11:00 slots.

    Attributes:
        contracted_service: The commitment this task works towards.
        start: Start of the block.
        end: End of the block (exclusive).
        on_premises: True if the work happens at the recipient's premises.
        schedule: Owning schedule, maintained by the schedule itself.
        deleted_at: Set when the task is removed from its schedule.
        id: Stable identity key.
    """

    contracted_service: ContractedService
    start: datetime
    end: datetime
    on_premises: bool = False
    schedule: Optional["Schedule"] = field(default=None, repr=False)
    deleted_at: Optional[datetime] = None
    id: str = field(default_factory=new_id)

    @property
    def hours(self) -> int:
        return int((self.end - self.start).total_seconds()) // 3600

    @property
    def day(self) -> date:
        return self.start.date()

    @property
    def consultant(self) -> Consultant:
        return self.contracted_service.consultant

    @property
    def recipient(self) -> Recipient:
        return self.contracted_service.recipient

    @property
    def service(self) -> Service:
        return self.contracted_service.service

    @property
    def consultant_name(self) -> str:
        return self.consultant.name

    @property
    def recipient_name(self) -> str:
        return self.recipient.name

    @property
    def service_name(self) -> str:
        return self.service.name

    def same_activity_of(self, other: "Task") -> bool:
        """Check if two tasks are the same kind of work.

        Same activity means same contracted service and same on-premises
        flag; such tasks can be merged into one.
        """
        return (
            self.contracted_service.id == other.contracted_service.id
            and self.on_premises == other.on_premises
        )

    def __str__(self) -> str:
        where = "on-premises" if self.on_premises else "remote"
        return (
            f"{self.start:%Y-%m-%d %H:%M}-{self.end:%H:%M} "
            f"{self.contracted_service} ({where})"
        )
