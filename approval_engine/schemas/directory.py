from __future__ import annotations

from pydantic import BaseModel, Field


class UpsertDirectoryEntryRequest(BaseModel):
    """Request body for upserting an employee in the stub directory."""

    name: str = Field(min_length=1, max_length=200)
    department: str = Field(default="", max_length=200)


class DirectoryEntryResponse(BaseModel):
    """Response schema for a directory entry."""

    employee_id: str
    name: str
    department: str


class DirectoryListResponse(BaseModel):
    """List of directory entries."""

    items: list[DirectoryEntryResponse]
    total: int
