"""Lookup and persistence collaborators.

The engine reads contracted services and writes tasks and schedules
through these interfaces. The in-memory implementations back the CLI and
the tests; a database-backed deployment provides its own.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Iterable, Optional

from consultsched.domain.errors import DuplicateContractedServiceError
from consultsched.domain.models import (
    Consultant,
    Contract,
    ContractedService,
    Service,
)

logger = logging.getLogger(__name__)


class ContractedServiceRepository(ABC):
    """Abstract lookup of contracted services."""

    @abstractmethod
    def find_by_consultant(self, consultant: Consultant) -> list[ContractedService]:
        """Get every contracted service performed by a consultant."""
        pass

    @abstractmethod
    def find_by_contract_service_consultant(
        self, contract: Contract, service: Service, consultant: Consultant
    ) -> Optional[ContractedService]:
        """Get the contracted service for a (contract, service, consultant) triple."""
        pass


class InMemoryContractedServiceRepository(ContractedServiceRepository):
    """Contracted services kept in a dict keyed by their unique triple."""

    def __init__(self, contracted_services: Optional[Iterable[ContractedService]] = None):
        self._by_key: dict[tuple[str, str, str], ContractedService] = {}
        for contracted_service in contracted_services or []:
            self.add(contracted_service)

    @staticmethod
    def _key(contract: Contract, service: Service, consultant: Consultant) -> tuple[str, str, str]:
        return (contract.id, service.name, consultant.name)

    def add(self, contracted_service: ContractedService) -> None:
        """Register a contracted service.

        Raises:
            DuplicateContractedServiceError: If the triple is already taken.
        """
        key = self._key(
            contracted_service.contract,
            contracted_service.service,
            contracted_service.consultant,
        )
        if key in self._by_key:
            raise DuplicateContractedServiceError(
                f"Contracted service already registered for {contracted_service}"
            )
        self._by_key[key] = contracted_service

    def all(self) -> list[ContractedService]:
        return list(self._by_key.values())

    def consultants(self) -> list[Consultant]:
        seen: dict[str, Consultant] = {}
        for contracted_service in self._by_key.values():
            seen.setdefault(contracted_service.consultant.name, contracted_service.consultant)
        return list(seen.values())

    def find_by_consultant(self, consultant: Consultant) -> list[ContractedService]:
        return [
            cs for cs in self._by_key.values()
            if cs.consultant.name == consultant.name
        ]

    def find_by_contract_service_consultant(
        self, contract: Contract, service: Service, consultant: Consultant
    ) -> Optional[ContractedService]:
        return self._by_key.get(self._key(contract, service, consultant))


class Persistence(ABC):
    """Abstract durable storage for tasks and schedules."""

    @abstractmethod
    def persist(self, entity: Any) -> None:
        """Queue an entity for saving."""
        pass

    @abstractmethod
    def flush(self) -> None:
        """Write every queued entity."""
        pass


class InMemoryPersistence(Persistence):
    """Stores flushed entities in a dict keyed by their id."""

    def __init__(self):
        self.pending: list[Any] = []
        self.stored: dict[str, Any] = {}
        self.flush_count = 0

    def persist(self, entity: Any) -> None:
        if not any(queued is entity for queued in self.pending):
            self.pending.append(entity)

    def flush(self) -> None:
        for entity in self.pending:
            self.stored[entity.id] = entity
        logger.debug("Flushed %d entities", len(self.pending))
        self.pending = []
        self.flush_count += 1
