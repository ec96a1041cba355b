from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol, runtime_checkable

from pydantic import BaseModel


class EmployeeInfo(BaseModel):
    """Employee display metadata from the Directory Service."""

    employee_id: str
    name: str
    department: str = ""


@runtime_checkable
class DirectoryService(Protocol):
    """Interface for the employee Directory Service."""

    async def get_employees(self, employee_ids: Iterable[str]) -> dict[str, EmployeeInfo]:
        """Fetch display metadata keyed by employee id. Unknown ids are omitted."""
        ...


class InMemoryDirectoryService:
    """In-memory stub implementation for development."""

    def __init__(self) -> None:
        self._employees: dict[str, EmployeeInfo] = {}

    def seed(self, employee: EmployeeInfo) -> None:
        """Seed an employee for testing."""
        self._employees[employee.employee_id] = employee

    async def get_employees(self, employee_ids: Iterable[str]) -> dict[str, EmployeeInfo]:
        """Fetch display metadata keyed by employee id. Unknown ids are omitted."""
        return {eid: self._employees[eid] for eid in set(employee_ids) if eid in self._employees}

    async def list_employees(self) -> list[EmployeeInfo]:
        """List all seeded employees."""
        return sorted(self._employees.values(), key=lambda e: e.employee_id)


_directory_service: DirectoryService = InMemoryDirectoryService()


def get_directory_service() -> DirectoryService:
    """FastAPI dependency for the Directory Service."""
    return _directory_service


def set_directory_service(service: DirectoryService) -> None:
    """Override the service (for testing or production wiring)."""
    global _directory_service
    _directory_service = service
