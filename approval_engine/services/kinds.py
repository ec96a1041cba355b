"""Request kinds that share the approval workflow.

Each kind supplies subject validation, the natural key used for duplicate
detection, and a one-line summary for notifications. The workflow itself
never looks inside a subject.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Generic, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from approval_engine.exceptions import NotFoundError, ValidationError
from approval_engine.models.enums import RequestKindCode
from approval_engine.schemas.subject import ForgetScanSubject, LeaveSubject, SwapDaySubject

SubjectT = TypeVar("SubjectT", bound=BaseModel)
DateRange = tuple[date, date]


def _ranges_overlap(a: DateRange, b: DateRange) -> bool:
    return a[0] <= b[1] and b[0] <= a[1]


def _swap_ranges(subject: SwapDaySubject) -> tuple[DateRange, DateRange]:
    return (subject.request_start_date, subject.request_end_date), (subject.off_start_date, subject.off_end_date)


def _format_errors(exc: PydanticValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        msg = err.get("msg", "invalid value")
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts)


class RequestKind(Generic[SubjectT]):
    """Kind-specific behaviour plugged into the generic approval workflow."""

    code: RequestKindCode
    label: str
    subject_model: type[SubjectT]
    checks_overlap = False
    overlap_message = ""

    def parse(self, data: dict[str, Any]) -> SubjectT:
        """Validate a raw subject payload. Raises ValidationError (400) on bad input."""
        try:
            return self.subject_model.model_validate(data)
        except PydanticValidationError as exc:
            raise ValidationError(_format_errors(exc)) from None

    def load(self, stored: dict[str, Any]) -> SubjectT:
        return self.subject_model.model_validate(stored)

    def dump(self, subject: SubjectT) -> dict[str, Any]:
        return subject.model_dump(mode="json")

    def merge(self, stored: dict[str, Any], changes: dict[str, Any]) -> dict[str, Any]:
        """Overlay an owner edit onto the stored subject before validation."""
        return {**stored, **changes}

    def natural_key(self, subject: SubjectT) -> tuple[str, str]:
        """Return ``(subject_date_key, kind_key)`` for the live-request uniqueness constraint."""
        raise NotImplementedError

    def overlaps(self, subject: SubjectT, other: SubjectT) -> bool:
        """Whether two live requests of the same employee clash beyond an exact natural-key repeat."""
        return False

    def summary(self, subject: SubjectT) -> str:
        raise NotImplementedError


class LeaveKind(RequestKind[LeaveSubject]):
    code = RequestKindCode.LEAVE
    label = "Leave"
    subject_model = LeaveSubject

    def natural_key(self, subject: LeaveSubject) -> tuple[str, str]:
        span = f"{subject.start_date.isoformat()}..{subject.end_date.isoformat()}"
        if subject.is_half_day and subject.day_part is not None:
            return span, f"{self.code.value}:{subject.day_part.value}"
        return span, self.code.value

    def summary(self, subject: LeaveSubject) -> str:
        span = subject.start_date.isoformat()
        if subject.end_date != subject.start_date:
            span = f"{span} to {subject.end_date.isoformat()}"
        if subject.is_half_day and subject.day_part is not None:
            span = f"{span} ({subject.day_part.value})"
        return f"{subject.leave_type_code} leave {span}, {subject.total_days:g} day(s)"


class ForgetScanKind(RequestKind[ForgetScanSubject]):
    code = RequestKindCode.FORGET_SCAN
    label = "Forget scan"
    subject_model = ForgetScanSubject

    def merge(self, stored: dict[str, Any], changes: dict[str, Any]) -> dict[str, Any]:
        # A lone forgot_type replaces the whole stored type set.
        if "forgot_type" in changes and "forgot_types" not in changes:
            stored = {key: value for key, value in stored.items() if key != "forgot_types"}
        return super().merge(stored, changes)

    def natural_key(self, subject: ForgetScanSubject) -> tuple[str, str]:
        type_set = "+".join(t.value for t in subject.forgot_types)
        return subject.forgot_date.isoformat(), f"{self.code.value}:{type_set}"

    def summary(self, subject: ForgetScanSubject) -> str:
        types = " and ".join(t.value for t in subject.forgot_types)
        return f"Forgot scan {types} on {subject.forgot_date.isoformat()}"


class SwapDayKind(RequestKind[SwapDaySubject]):
    code = RequestKindCode.SWAP_DAY
    label = "Swap working day"
    subject_model = SwapDaySubject
    checks_overlap = True
    overlap_message = "You already have a swap working day request that overlaps these dates."

    def natural_key(self, subject: SwapDaySubject) -> tuple[str, str]:
        work = f"{subject.request_start_date.isoformat()}..{subject.request_end_date.isoformat()}"
        off = f"{subject.off_start_date.isoformat()}..{subject.off_end_date.isoformat()}"
        return f"{work}|{off}", self.code.value

    def overlaps(self, subject: SwapDaySubject, other: SwapDaySubject) -> bool:
        """Any working or off range of one swap touches any range of the other."""
        return any(_ranges_overlap(mine, theirs) for mine in _swap_ranges(subject) for theirs in _swap_ranges(other))

    def summary(self, subject: SwapDaySubject) -> str:
        return (
            f"Work {subject.request_start_date.isoformat()}..{subject.request_end_date.isoformat()}, "
            f"off {subject.off_start_date.isoformat()}..{subject.off_end_date.isoformat()} "
            f"({subject.request_total_days} day(s))"
        )


REQUEST_KINDS: dict[RequestKindCode, RequestKind[Any]] = {
    kind.code: kind for kind in (LeaveKind(), ForgetScanKind(), SwapDayKind())
}


def get_kind(code: RequestKindCode | str) -> RequestKind[Any]:
    try:
        return REQUEST_KINDS[RequestKindCode(code)]
    except (KeyError, ValueError):
        raise NotFoundError(f"Unknown request kind {code!r}") from None
