from __future__ import annotations

from fastapi import APIRouter

from approval_engine.api.deps import AdminViewerDep, AuthDep
from approval_engine.exceptions import ConfigurationError, NotFoundError
from approval_engine.schemas.directory import (
    DirectoryEntryResponse,
    DirectoryListResponse,
    UpsertDirectoryEntryRequest,
)
from approval_engine.services.directory import EmployeeInfo, InMemoryDirectoryService, get_directory_service

directory_router = APIRouter(prefix="/directory", tags=["directory"])


def _to_response(employee: EmployeeInfo) -> DirectoryEntryResponse:
    return DirectoryEntryResponse(
        employee_id=employee.employee_id,
        name=employee.name,
        department=employee.department,
    )


def _stub_directory() -> InMemoryDirectoryService:
    svc = get_directory_service()
    if not isinstance(svc, InMemoryDirectoryService):
        raise ConfigurationError("Directory is read-only in this deployment")
    return svc


@directory_router.put("/{employee_id}", response_model=DirectoryEntryResponse)
async def upsert_directory_entry(
    employee_id: str,
    payload: UpsertDirectoryEntryRequest,
    auth: AdminViewerDep,
) -> DirectoryEntryResponse:
    """Create or update an employee in the stub directory (admin viewers only)."""
    employee = EmployeeInfo(
        employee_id=employee_id.strip(),
        name=payload.name.strip(),
        department=payload.department.strip(),
    )
    _stub_directory().seed(employee)
    return _to_response(employee)


@directory_router.get("/{employee_id}", response_model=DirectoryEntryResponse)
async def get_directory_entry(
    employee_id: str,
    auth: AuthDep,
) -> DirectoryEntryResponse:
    """Get one employee's display metadata."""
    found = await get_directory_service().get_employees([employee_id])
    employee = found.get(employee_id)
    if employee is None:
        raise NotFoundError("Employee not found")
    return _to_response(employee)


@directory_router.get("", response_model=DirectoryListResponse)
async def list_directory(
    auth: AdminViewerDep,
) -> DirectoryListResponse:
    """List all employees in the stub directory (admin viewers only)."""
    employees = await _stub_directory().list_employees()
    items = [_to_response(e) for e in employees]
    return DirectoryListResponse(items=items, total=len(items))
