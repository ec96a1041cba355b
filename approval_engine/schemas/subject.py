# ruff: noqa: TC003
from __future__ import annotations

from datetime import date
from typing import Any, Self

from pydantic import BaseModel, Field, field_validator, model_validator

from approval_engine.models.enums import DayPart, ForgotType


def _strip(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


def _inclusive_days(start: date, end: date) -> int:
    return (end - start).days + 1


# ---------------------------------------------------------------------------
# Leave
# ---------------------------------------------------------------------------


class LeaveSubject(BaseModel):
    """Payload of a leave request."""

    leave_type_code: str = Field(min_length=1, max_length=50)
    start_date: date
    end_date: date
    is_half_day: bool = False
    day_part: DayPart | None = None
    reason: str = Field(default="", max_length=2000)

    @field_validator("leave_type_code", mode="before")
    @classmethod
    def _upper_code(cls, value: Any) -> Any:
        return value.strip().upper() if isinstance(value, str) else value

    @field_validator("reason", mode="before")
    @classmethod
    def _strip_reason(cls, value: Any) -> Any:
        return _strip(value) or ""

    @field_validator("day_part", mode="before")
    @classmethod
    def _blank_day_part(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip().upper()
            return value or None
        return value

    @model_validator(mode="after")
    def _validate_dates(self) -> Self:
        if self.is_half_day:
            if self.day_part is None:
                msg = "day_part is required for half-day leave"
                raise ValueError(msg)
            self.end_date = self.start_date
        else:
            self.day_part = None
        if self.end_date < self.start_date:
            msg = "end_date must be on or after start_date"
            raise ValueError(msg)
        return self

    @property
    def total_days(self) -> float:
        return 0.5 if self.is_half_day else float(_inclusive_days(self.start_date, self.end_date))


# ---------------------------------------------------------------------------
# Forget scan
# ---------------------------------------------------------------------------


class ForgetScanSubject(BaseModel):
    """Payload of an attendance correction for a missed clock-in and/or clock-out."""

    forgot_date: date
    forgot_types: list[ForgotType] = Field(min_length=1)
    reason: str = Field(min_length=1, max_length=2000)

    @model_validator(mode="before")
    @classmethod
    def _accept_single_type(cls, data: Any) -> Any:
        if isinstance(data, dict) and "forgot_types" not in data and data.get("forgot_type"):
            data = {**data, "forgot_types": [data["forgot_type"]]}
        return data

    @field_validator("forgot_types", mode="before")
    @classmethod
    def _upper_types(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = [value]
        if isinstance(value, list):
            return [v.strip().upper() if isinstance(v, str) else v for v in value]
        return value

    @field_validator("forgot_types")
    @classmethod
    def _dedupe_types(cls, value: list[ForgotType]) -> list[ForgotType]:
        return sorted(set(value))

    @field_validator("reason", mode="before")
    @classmethod
    def _strip_reason(cls, value: Any) -> Any:
        return _strip(value)


# ---------------------------------------------------------------------------
# Swap working day
# ---------------------------------------------------------------------------


class SwapDaySubject(BaseModel):
    """Payload of a swap: work ``request_*`` day(s) in exchange for ``off_*`` day(s)."""

    request_start_date: date
    request_end_date: date
    off_start_date: date
    off_end_date: date
    reason: str = Field(default="", max_length=2000)

    @field_validator("reason", mode="before")
    @classmethod
    def _strip_reason(cls, value: Any) -> Any:
        return _strip(value) or ""

    @model_validator(mode="after")
    def _validate_ranges(self) -> Self:
        if self.request_end_date < self.request_start_date:
            msg = "request_end_date must be on or after request_start_date"
            raise ValueError(msg)
        if self.off_end_date < self.off_start_date:
            msg = "off_end_date must be on or after off_start_date"
            raise ValueError(msg)
        if self.request_start_date <= self.off_end_date and self.off_start_date <= self.request_end_date:
            msg = "request dates and off dates cannot overlap"
            raise ValueError(msg)
        if self.request_total_days != self.off_total_days:
            msg = f"Total days must match. requestDays={self.request_total_days}, offDays={self.off_total_days}"
            raise ValueError(msg)
        return self

    @property
    def request_total_days(self) -> int:
        return _inclusive_days(self.request_start_date, self.request_end_date)

    @property
    def off_total_days(self) -> int:
        return _inclusive_days(self.off_start_date, self.off_end_date)
