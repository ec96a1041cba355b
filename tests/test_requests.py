"""End-to-end tests for the request workflow: create, decide, cancel, edit,
duplicate detection, concurrency, side effects and audit.
"""

from __future__ import annotations

import asyncio
import uuid
from typing import TYPE_CHECKING, Any

import pytest
from sqlalchemy import select
from sqlmodel import col

from approval_engine.models.audit import AuditLog
from approval_engine.models.request import ApprovalRequest
from approval_engine.services import request as request_service
from approval_engine.services.directory import EmployeeInfo, set_directory_service
from approval_engine.services.notification import ADMINS_TARGET, set_notifier
from approval_engine.services.realtime import ADMINS_CHANNEL, user_channel

if TYPE_CHECKING:
    from collections.abc import Iterable

    from httpx import AsyncClient, Response
    from sqlalchemy.ext.asyncio import AsyncSession

    from approval_engine.services.directory import InMemoryDirectoryService
    from approval_engine.services.notification import InMemoryNotifier
    from approval_engine.services.realtime import BroadcastHub

LEAVE_URL = "/leave-requests"
FORGET_URL = "/forget-scans"
SWAP_URL = "/swap-days"


def _headers(login: str, *roles: str, employee_id: str | None = None) -> dict[str, str]:
    headers = {"X-User-Id": login, "X-Roles": ",".join(roles)}
    if employee_id is not None:
        headers["X-Employee-Id"] = employee_id
    return headers


ADMIN = _headers("admin1", "ADMIN")
OWNER = _headers("emp1", "LEAVE_USER", employee_id="E1")
OTHER_EMPLOYEE = _headers("emp2", "LEAVE_USER", employee_id="E2")
MANAGER = _headers("mgr1", "LEAVE_MANAGER")
OTHER_MANAGER = _headers("mgr9", "LEAVE_MANAGER")
GM = _headers("gm1", "LEAVE_GM")
COO = _headers("coo1", "LEAVE_COO")


# ---------------------------------------------------------------------------
# Test helpers
# ---------------------------------------------------------------------------


async def _set_profile(
    client: AsyncClient,
    mode: str = "MANAGER_AND_GM",
    employee_id: str = "E1",
    manager: str = "mgr1",
    gm: str = "gm1",
    coo: str = "coo1",
) -> None:
    resp = await client.put(
        f"/approval-profiles/{employee_id}",
        json={"approval_mode": mode, "manager_login_id": manager, "gm_login_id": gm, "coo_login_id": coo},
        headers=ADMIN,
    )
    assert resp.status_code == 200, resp.text


def _leave(start: str = "2025-03-03", end: str = "2025-03-04", **extra: Any) -> dict[str, Any]:
    return {"leave_type_code": "ANNUAL", "start_date": start, "end_date": end, "reason": "trip", **extra}


async def _create(
    client: AsyncClient,
    body: dict[str, Any] | None = None,
    url: str = LEAVE_URL,
    headers: dict[str, str] = OWNER,
) -> dict[str, Any]:
    resp = await client.post(url, json=body or _leave(), headers=headers)
    assert resp.status_code == 201, resp.text
    result: dict[str, Any] = resp.json()
    return result


async def _decide(
    client: AsyncClient,
    request_id: str,
    stage: str,
    action: str,
    headers: dict[str, str],
    comment: str | None = None,
    url: str = LEAVE_URL,
) -> Response:
    body: dict[str, Any] = {"action": action}
    if comment is not None:
        body["comment"] = comment
    return await client.post(f"{url}/{request_id}/decisions/{stage}", json=body, headers=headers)


def _slot(data: dict[str, Any], role: str) -> dict[str, Any]:
    return next(s for s in data["approvals"] if s["role"] == role)


def _rendezvous_on_first_reads(monkeypatch: pytest.MonkeyPatch, parties: int = 2) -> None:
    """Hold every contender after its initial read until all have read the same state."""
    original = request_service.get_view_or_404
    barrier = asyncio.Barrier(parties)
    calls = 0

    async def _get(session: AsyncSession, kind_code: Any, request_id: uuid.UUID) -> request_service.RequestView:
        nonlocal calls
        view = await original(session, kind_code, request_id)
        calls += 1
        if calls <= parties:
            await barrier.wait()
        return view

    monkeypatch.setattr(request_service, "get_view_or_404", _get)


async def _audit_actions(session: AsyncSession, entity_id: str) -> list[str]:
    result = await session.execute(
        select(AuditLog).where(col(AuditLog.entity_id) == entity_id).order_by(col(AuditLog.created_at))
    )
    return [entry.action for entry in result.scalars().all()]


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


async def test_create_copies_routing_from_profile(async_client: AsyncClient) -> None:
    await _set_profile(async_client, "MANAGER_AND_GM", coo="coo-ignored")
    data = await _create(async_client)

    assert data["status"] == "PENDING_MANAGER"
    assert data["approval_mode"] == "MANAGER_AND_GM"
    assert data["employee_id"] == "E1"
    assert data["requester_login_id"] == "emp1"
    assert (data["manager_login_id"], data["gm_login_id"], data["coo_login_id"]) == ("mgr1", "gm1", "")
    assert [s["role"] for s in data["approvals"]] == ["MANAGER", "GM"]
    assert all(s["slot_status"] == "PENDING" for s in data["approvals"])
    assert _slot(data, "MANAGER")["reached_at"] is not None
    assert _slot(data, "GM")["reached_at"] is None
    assert data["subject"]["start_date"] == "2025-03-03"


async def test_create_without_profile_is_not_found(async_client: AsyncClient) -> None:
    resp = await async_client.post(LEAVE_URL, json=_leave(), headers=OWNER)
    assert resp.status_code == 404
    assert resp.json()["detail"] == "Approval profile not found"


async def test_create_with_missing_approver_is_configuration_error(async_client: AsyncClient) -> None:
    await _set_profile(async_client, "MANAGER_AND_GM", gm="")
    resp = await async_client.post(LEAVE_URL, json=_leave(), headers=OWNER)
    assert resp.status_code == 400
    assert resp.json()["error"] == "ConfigurationError"
    assert "GM approver is missing" in resp.json()["detail"]


async def test_create_with_invalid_subject_is_validation_error(async_client: AsyncClient) -> None:
    await _set_profile(async_client)
    resp = await async_client.post(LEAVE_URL, json=_leave(start="2025-13-01"), headers=OWNER)
    assert resp.status_code == 400
    assert resp.json()["error"] == "ValidationError"


async def test_missing_identity_header_is_rejected(async_client: AsyncClient) -> None:
    resp = await async_client.post(LEAVE_URL, json=_leave())
    assert resp.status_code == 400
    assert resp.json()["error"] == "ValidationError"


async def test_employee_id_defaults_to_login(async_client: AsyncClient) -> None:
    await _set_profile(async_client, "MANAGER_ONLY", employee_id="emp7")
    data = await _create(async_client, headers=_headers("emp7", "LEAVE_USER"))
    assert data["employee_id"] == "emp7"


# ---------------------------------------------------------------------------
# Decisions: end-to-end scenarios
# ---------------------------------------------------------------------------


async def test_manager_then_gm_approval(async_client: AsyncClient) -> None:
    await _set_profile(async_client, "MANAGER_AND_GM")
    created = await _create(async_client)

    resp = await _decide(async_client, created["id"], "manager", "APPROVE", MANAGER)
    assert resp.status_code == 200, resp.text
    after_manager = resp.json()
    assert after_manager["status"] == "PENDING_GM"
    assert _slot(after_manager, "MANAGER")["slot_status"] == "APPROVED"
    assert _slot(after_manager, "GM")["reached_at"] is not None

    resp = await _decide(async_client, created["id"], "gm", "APPROVE", GM)
    assert resp.status_code == 200, resp.text
    final = resp.json()
    assert final["status"] == "APPROVED"
    for role in ("MANAGER", "GM"):
        assert _slot(final, role)["slot_status"] == "APPROVED"
        assert _slot(final, role)["acted_at"] is not None


async def test_gm_reject_ends_gm_and_coo_chain(async_client: AsyncClient) -> None:
    await _set_profile(async_client, "GM_AND_COO")
    created = await _create(async_client)
    assert created["status"] == "PENDING_GM"

    resp = await _decide(async_client, created["id"], "gm", "REJECT", GM, comment="insufficient coverage")
    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["status"] == "REJECTED"
    assert _slot(data, "GM")["slot_status"] == "REJECTED"
    assert _slot(data, "GM")["note"] == "insufficient coverage"
    assert _slot(data, "COO")["slot_status"] == "PENDING"
    assert _slot(data, "COO")["reached_at"] is None

    resp = await _decide(async_client, created["id"], "coo", "APPROVE", COO)
    assert resp.status_code == 400
    assert "REJECTED" in resp.json()["detail"]


async def test_decision_after_owner_cancel_names_cancelled(async_client: AsyncClient) -> None:
    await _set_profile(async_client)
    created = await _create(async_client)

    resp = await async_client.post(f"{LEAVE_URL}/{created['id']}/cancel", headers=OWNER)
    assert resp.status_code == 200, resp.text
    assert resp.json()["status"] == "CANCELLED"
    assert resp.json()["cancelled_by"] == "emp1"
    assert resp.json()["cancelled_at"] is not None

    resp = await _decide(async_client, created["id"], "manager", "APPROVE", MANAGER)
    assert resp.status_code == 400
    assert resp.json()["error"] == "InvalidStateError"
    assert "CANCELLED" in resp.json()["detail"]


async def test_manager_and_coo_skips_gm(async_client: AsyncClient) -> None:
    await _set_profile(async_client, "MANAGER_AND_COO")
    created = await _create(async_client)
    resp = await _decide(async_client, created["id"], "manager", "approved", MANAGER)
    assert resp.json()["status"] == "PENDING_COO"
    resp = await _decide(async_client, created["id"], "coo", "APPROVE", COO)
    assert resp.json()["status"] == "APPROVED"


async def test_single_party_mode_approves_immediately(async_client: AsyncClient) -> None:
    await _set_profile(async_client, "GM_ONLY")
    created = await _create(async_client)
    resp = await _decide(async_client, created["id"], "gm", "APPROVE", GM)
    assert resp.json()["status"] == "APPROVED"
    assert [s["role"] for s in resp.json()["approvals"]] == ["GM"]


# ---------------------------------------------------------------------------
# Decisions: authorization
# ---------------------------------------------------------------------------


async def test_unassigned_manager_cannot_decide(async_client: AsyncClient) -> None:
    await _set_profile(async_client)
    created = await _create(async_client)
    resp = await _decide(async_client, created["id"], "manager", "APPROVE", OTHER_MANAGER)
    assert resp.status_code == 403
    assert resp.json()["detail"] == "Not your request"


async def test_admin_viewer_cannot_decide(async_client: AsyncClient) -> None:
    await _set_profile(async_client, manager="admin1")
    created = await _create(async_client)
    resp = await _decide(async_client, created["id"], "manager", "APPROVE", ADMIN)
    assert resp.status_code == 403


async def test_gm_cannot_decide_out_of_turn(async_client: AsyncClient) -> None:
    await _set_profile(async_client)
    created = await _create(async_client)
    resp = await _decide(async_client, created["id"], "gm", "APPROVE", GM)
    assert resp.status_code == 400
    assert "PENDING_MANAGER" in resp.json()["detail"]


async def test_reject_requires_comment(async_client: AsyncClient) -> None:
    await _set_profile(async_client)
    created = await _create(async_client)
    resp = await _decide(async_client, created["id"], "manager", "REJECT", MANAGER)
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Reject requires a reason."


async def test_unknown_action_is_validation_error(async_client: AsyncClient) -> None:
    await _set_profile(async_client)
    created = await _create(async_client)
    resp = await _decide(async_client, created["id"], "manager", "ESCALATE", MANAGER)
    assert resp.status_code == 400


async def test_unknown_stage_is_not_found(async_client: AsyncClient) -> None:
    await _set_profile(async_client)
    created = await _create(async_client)
    resp = await _decide(async_client, created["id"], "hr", "APPROVE", MANAGER)
    assert resp.status_code == 404


async def test_routing_is_pinned_at_creation(async_client: AsyncClient) -> None:
    await _set_profile(async_client, manager="mgr1")
    created = await _create(async_client)
    await _set_profile(async_client, manager="mgr9")

    resp = await _decide(async_client, created["id"], "manager", "APPROVE", OTHER_MANAGER)
    assert resp.status_code == 403
    resp = await _decide(async_client, created["id"], "manager", "APPROVE", MANAGER)
    assert resp.status_code == 200


# ---------------------------------------------------------------------------
# Cancel
# ---------------------------------------------------------------------------


async def test_admin_viewer_may_cancel_on_behalf(async_client: AsyncClient) -> None:
    await _set_profile(async_client)
    created = await _create(async_client)
    resp = await async_client.post(f"{LEAVE_URL}/{created['id']}/cancel", headers=ADMIN)
    assert resp.status_code == 200
    assert resp.json()["cancelled_by"] == "admin1"


async def test_approver_cannot_cancel(async_client: AsyncClient) -> None:
    await _set_profile(async_client)
    created = await _create(async_client)
    resp = await async_client.post(f"{LEAVE_URL}/{created['id']}/cancel", headers=MANAGER)
    assert resp.status_code == 403


async def test_cancel_terminal_request_names_status(async_client: AsyncClient) -> None:
    await _set_profile(async_client, "MANAGER_ONLY")
    created = await _create(async_client)
    await _decide(async_client, created["id"], "manager", "APPROVE", MANAGER)
    resp = await async_client.post(f"{LEAVE_URL}/{created['id']}/cancel", headers=OWNER)
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Request is APPROVED. Cannot cancel."


async def test_cancel_unknown_request(async_client: AsyncClient) -> None:
    resp = await async_client.post(f"{LEAVE_URL}/{uuid.uuid4()}/cancel", headers=OWNER)
    assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Edit
# ---------------------------------------------------------------------------


async def test_owner_edit_before_any_decision(async_client: AsyncClient) -> None:
    await _set_profile(async_client)
    created = await _create(async_client)
    resp = await async_client.patch(
        f"{LEAVE_URL}/{created['id']}",
        json={"end_date": "2025-03-06", "reason": "longer trip"},
        headers=OWNER,
    )
    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["subject"]["end_date"] == "2025-03-06"
    assert data["subject"]["start_date"] == "2025-03-03"
    assert data["subject"]["reason"] == "longer trip"
    assert data["status"] == "PENDING_MANAGER"


async def test_edit_after_partial_approval_fails(async_client: AsyncClient) -> None:
    await _set_profile(async_client, "MANAGER_AND_GM")
    created = await _create(async_client)
    await _decide(async_client, created["id"], "manager", "APPROVE", MANAGER)

    resp = await async_client.patch(f"{LEAVE_URL}/{created['id']}", json={"reason": "changed"}, headers=OWNER)
    assert resp.status_code == 400
    assert resp.json()["error"] == "EditNotAllowedError"


async def test_edit_by_non_owner_is_forbidden(async_client: AsyncClient) -> None:
    await _set_profile(async_client)
    created = await _create(async_client)
    resp = await async_client.patch(f"{LEAVE_URL}/{created['id']}", json={"reason": "x"}, headers=ADMIN)
    assert resp.status_code == 403


async def test_edit_with_invalid_subject_is_rejected(async_client: AsyncClient) -> None:
    await _set_profile(async_client)
    created = await _create(async_client)
    resp = await async_client.patch(f"{LEAVE_URL}/{created['id']}", json={"end_date": "2025-03-01"}, headers=OWNER)
    assert resp.status_code == 400


async def test_edit_into_existing_natural_key_is_duplicate(async_client: AsyncClient) -> None:
    await _set_profile(async_client)
    await _create(async_client, _leave("2025-03-03", "2025-03-04"))
    second = await _create(async_client, _leave("2025-04-01", "2025-04-01"))
    resp = await async_client.patch(
        f"{LEAVE_URL}/{second['id']}",
        json={"start_date": "2025-03-03", "end_date": "2025-03-04"},
        headers=OWNER,
    )
    assert resp.status_code == 409
    assert resp.json()["error"] == "DuplicateRequestError"


# ---------------------------------------------------------------------------
# Duplicate guard
# ---------------------------------------------------------------------------


async def test_duplicate_live_request_is_rejected(async_client: AsyncClient) -> None:
    await _set_profile(async_client)
    await _create(async_client)
    resp = await async_client.post(LEAVE_URL, json=_leave(), headers=OWNER)
    assert resp.status_code == 409
    assert resp.json() == {
        "error": "DuplicateRequestError",
        "detail": "You already submitted this request (same dates and type).",
        "status_code": 409,
    }


async def test_approved_request_still_blocks_duplicate(async_client: AsyncClient) -> None:
    await _set_profile(async_client, "MANAGER_ONLY")
    created = await _create(async_client)
    await _decide(async_client, created["id"], "manager", "APPROVE", MANAGER)
    resp = await async_client.post(LEAVE_URL, json=_leave(), headers=OWNER)
    assert resp.status_code == 409


async def test_resubmit_after_reject(async_client: AsyncClient) -> None:
    await _set_profile(async_client)
    created = await _create(async_client)
    await _decide(async_client, created["id"], "manager", "REJECT", MANAGER, comment="no")
    again = await _create(async_client)
    assert again["id"] != created["id"]
    assert again["status"] == "PENDING_MANAGER"


async def test_resubmit_after_cancel(async_client: AsyncClient) -> None:
    await _set_profile(async_client)
    created = await _create(async_client)
    await async_client.post(f"{LEAVE_URL}/{created['id']}/cancel", headers=OWNER)
    await _create(async_client)


async def test_same_dates_for_another_employee_is_allowed(async_client: AsyncClient) -> None:
    await _set_profile(async_client, employee_id="E1")
    await _set_profile(async_client, employee_id="E2")
    await _create(async_client)
    await _create(async_client, headers=OTHER_EMPLOYEE)


async def test_forget_scan_type_set_is_part_of_the_key(async_client: AsyncClient) -> None:
    await _set_profile(async_client)
    body = {"forgot_date": "2025-03-03", "forgot_types": ["FORGET_IN"], "reason": "badge left home"}
    await _create(async_client, body, url=FORGET_URL)
    await _create(async_client, {**body, "forgot_types": ["FORGET_IN", "FORGET_OUT"]}, url=FORGET_URL)
    resp = await async_client.post(FORGET_URL, json={**body, "forgot_types": ["forget_in"]}, headers=OWNER)
    assert resp.status_code == 409


async def test_kinds_do_not_collide(async_client: AsyncClient) -> None:
    await _set_profile(async_client)
    await _create(async_client, _leave("2025-03-03", "2025-03-03"))
    await _create(
        async_client,
        {"forgot_date": "2025-03-03", "forgot_types": ["FORGET_IN"], "reason": "x"},
        url=FORGET_URL,
    )


async def test_half_days_on_the_same_date_do_not_collide(async_client: AsyncClient) -> None:
    await _set_profile(async_client)
    morning = _leave("2025-03-03", "2025-03-03", is_half_day=True, day_part="AM")
    await _create(async_client, morning)
    await _create(async_client, {**morning, "day_part": "PM"})
    resp = await async_client.post(LEAVE_URL, json=morning, headers=OWNER)
    assert resp.status_code == 409


def _swap(work: tuple[str, str], off: tuple[str, str]) -> dict[str, Any]:
    return {
        "request_start_date": work[0],
        "request_end_date": work[1],
        "off_start_date": off[0],
        "off_end_date": off[1],
        "reason": "shift cover",
    }


async def test_overlapping_swap_is_rejected(async_client: AsyncClient) -> None:
    await _set_profile(async_client)
    await _create(async_client, _swap(("2025-03-08", "2025-03-09"), ("2025-03-12", "2025-03-13")), url=SWAP_URL)

    resp = await async_client.post(
        SWAP_URL, json=_swap(("2025-03-09", "2025-03-09"), ("2025-03-13", "2025-03-13")), headers=OWNER
    )
    assert resp.status_code == 409
    assert resp.json()["error"] == "DuplicateRequestError"
    assert "overlaps" in resp.json()["detail"]

    # work day of one swap on the off day of the other
    resp = await async_client.post(
        SWAP_URL, json=_swap(("2025-03-12", "2025-03-12"), ("2025-03-20", "2025-03-20")), headers=OWNER
    )
    assert resp.status_code == 409


async def test_swap_overlap_ignores_closed_requests_and_other_employees(async_client: AsyncClient) -> None:
    await _set_profile(async_client)
    await _set_profile(async_client, employee_id="E2")
    body = _swap(("2025-03-08", "2025-03-09"), ("2025-03-12", "2025-03-13"))
    first = await _create(async_client, body, url=SWAP_URL)
    await _create(async_client, body, url=SWAP_URL, headers=OTHER_EMPLOYEE)

    resp = await async_client.post(f"{SWAP_URL}/{first['id']}/cancel", headers=OWNER)
    assert resp.status_code == 200
    await _create(async_client, _swap(("2025-03-09", "2025-03-09"), ("2025-03-13", "2025-03-13")), url=SWAP_URL)


async def test_swap_edit_checks_overlap_against_other_requests_only(async_client: AsyncClient) -> None:
    await _set_profile(async_client)
    await _create(async_client, _swap(("2025-03-08", "2025-03-08"), ("2025-03-12", "2025-03-12")), url=SWAP_URL)
    second = await _create(
        async_client, _swap(("2025-04-05", "2025-04-05"), ("2025-04-07", "2025-04-07")), url=SWAP_URL
    )

    resp = await async_client.patch(f"{SWAP_URL}/{second['id']}", json={"reason": "still mine"}, headers=OWNER)
    assert resp.status_code == 200

    resp = await async_client.patch(
        f"{SWAP_URL}/{second['id']}",
        json={"request_start_date": "2025-03-12", "request_end_date": "2025-03-12"},
        headers=OWNER,
    )
    assert resp.status_code == 409
    assert resp.json()["error"] == "DuplicateRequestError"


async def test_forget_scan_edit_with_single_type_replaces_type_set(async_client: AsyncClient) -> None:
    await _set_profile(async_client)
    created = await _create(
        async_client,
        {"forgot_date": "2025-03-03", "forgot_type": "FORGET_IN", "reason": "badge left home"},
        url=FORGET_URL,
    )
    assert created["subject"]["forgot_types"] == ["FORGET_IN"]

    resp = await async_client.patch(f"{FORGET_URL}/{created['id']}", json={"forgot_type": "FORGET_OUT"}, headers=OWNER)
    assert resp.status_code == 200
    assert resp.json()["subject"]["forgot_types"] == ["FORGET_OUT"]
    assert resp.json()["subject"]["reason"] == "badge left home"


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


def _codes(responses: Iterable[Response]) -> list[int]:
    return sorted(r.status_code for r in responses)


async def test_concurrent_decisions_exactly_one_wins(
    async_client: AsyncClient,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    await _set_profile(async_client)
    created = await _create(async_client)
    _rendezvous_on_first_reads(monkeypatch)

    approve, reject = await asyncio.gather(
        _decide(async_client, created["id"], "manager", "APPROVE", MANAGER),
        _decide(async_client, created["id"], "manager", "REJECT", MANAGER, comment="no"),
    )
    assert _codes([approve, reject]) == [200, 409]
    loser = approve if approve.status_code == 409 else reject
    winner = reject if loser is approve else approve
    assert loser.json()["error"] == "ConflictError"
    assert winner.json()["status"] in loser.json()["detail"]

    resp = await async_client.get(f"{LEAVE_URL}/{created['id']}", headers=OWNER)
    assert resp.json()["status"] == winner.json()["status"]
    assert _slot(resp.json(), "MANAGER")["slot_status"] == winner.json()["approvals"][0]["slot_status"]


async def test_concurrent_cancel_and_decision(
    async_client: AsyncClient,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    await _set_profile(async_client)
    created = await _create(async_client)
    _rendezvous_on_first_reads(monkeypatch)

    cancel, approve = await asyncio.gather(
        async_client.post(f"{LEAVE_URL}/{created['id']}/cancel", headers=OWNER),
        _decide(async_client, created["id"], "manager", "APPROVE", MANAGER),
    )
    assert _codes([cancel, approve]) == [200, 409]
    expected = "CANCELLED" if cancel.status_code == 200 else "PENDING_GM"
    resp = await async_client.get(f"{LEAVE_URL}/{created['id']}", headers=OWNER)
    assert resp.json()["status"] == expected


async def test_concurrent_duplicate_creates(async_client: AsyncClient, db_session: AsyncSession) -> None:
    await _set_profile(async_client)
    first, second = await asyncio.gather(
        async_client.post(LEAVE_URL, json=_leave(), headers=OWNER),
        async_client.post(LEAVE_URL, json=_leave(), headers=OWNER),
    )
    assert _codes([first, second]) == [201, 409]

    result = await db_session.execute(select(ApprovalRequest).where(col(ApprovalRequest.employee_id) == "E1"))
    assert len(result.scalars().all()) == 1


# ---------------------------------------------------------------------------
# Side effects
# ---------------------------------------------------------------------------


async def test_create_enriches_from_directory(
    async_client: AsyncClient,
    directory: InMemoryDirectoryService,
) -> None:
    directory.seed(EmployeeInfo(employee_id="E1", name="Jane Doe", department="Operations"))
    await _set_profile(async_client)
    data = await _create(async_client)
    assert data["employee_name"] == "Jane Doe"
    assert data["department"] == "Operations"
    assert data["summary"].startswith("ANNUAL leave 2025-03-03 to 2025-03-04")


async def test_directory_failure_leaves_fields_blank(async_client: AsyncClient) -> None:
    class _BrokenDirectory:
        async def get_employees(self, employee_ids: Iterable[str]) -> dict[str, EmployeeInfo]:
            raise RuntimeError("directory down")

    set_directory_service(_BrokenDirectory())
    await _set_profile(async_client)
    data = await _create(async_client)
    assert data["employee_name"] == ""
    assert data["department"] == ""


async def test_notifications_after_create_and_decision(
    async_client: AsyncClient,
    notifier: InMemoryNotifier,
) -> None:
    await _set_profile(async_client)
    created = await _create(async_client)
    assert len(notifier.messages_for(ADMINS_TARGET)) == 1
    assert len(notifier.messages_for("user:emp1")) == 1
    assert notifier.messages_for("user:mgr1")[0].startswith("Awaiting your decision")

    await _decide(async_client, created["id"], "manager", "APPROVE", MANAGER)
    assert len(notifier.messages_for(ADMINS_TARGET)) == 2
    assert "approved by MANAGER" in notifier.messages_for("user:emp1")[-1]
    assert notifier.messages_for("user:gm1")[0].startswith("Awaiting your decision")


async def test_notifier_failure_does_not_fail_transition(async_client: AsyncClient) -> None:
    class _BrokenNotifier:
        async def send(self, target: str, message: str) -> None:
            raise RuntimeError("chat API down")

    await _set_profile(async_client)
    set_notifier(_BrokenNotifier())
    created = await _create(async_client)
    resp = await _decide(async_client, created["id"], "manager", "APPROVE", MANAGER)
    assert resp.status_code == 200
    assert resp.json()["status"] == "PENDING_GM"


async def test_broadcast_reaches_admins_requester_and_participants(
    async_client: AsyncClient,
    hub: BroadcastHub,
) -> None:
    await _set_profile(async_client)
    channels = [ADMINS_CHANNEL, user_channel("emp1"), user_channel("mgr1"), user_channel("gm1")]
    async with hub.subscribe([user_channel("nobody")]) as stranger, hub.subscribe(channels) as queue:
        created = await _create(async_client)
        # one queue on four channels receives each event once per channel
        created_events = [queue.get_nowait() for _ in range(queue.qsize())]
        await async_client.post(f"{LEAVE_URL}/{created['id']}/cancel", headers=OWNER)
        updated_events = [queue.get_nowait() for _ in range(queue.qsize())]
        assert stranger.empty()

    assert [e for e, _ in created_events] == ["leave:req:created"] * 4
    assert all(p["id"] == created["id"] for _, p in created_events)
    assert [e for e, _ in updated_events] == ["leave:req:updated"] * 4
    assert all(p["status"] == "CANCELLED" for _, p in updated_events)


async def test_swap_day_events_are_namespaced(async_client: AsyncClient, hub: BroadcastHub) -> None:
    await _set_profile(async_client)
    async with hub.subscribe([ADMINS_CHANNEL]) as queue:
        await _create(
            async_client,
            {
                "request_start_date": "2025-03-08",
                "request_end_date": "2025-03-08",
                "off_start_date": "2025-03-10",
                "off_end_date": "2025-03-10",
            },
            url=SWAP_URL,
        )
        event, _ = queue.get_nowait()
    assert event == "swap_day:req:created"


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------


async def test_every_transition_is_audited(async_client: AsyncClient, db_session: AsyncSession) -> None:
    await _set_profile(async_client)
    created = await _create(async_client)
    await async_client.patch(f"{LEAVE_URL}/{created['id']}", json={"reason": "edited"}, headers=OWNER)
    await _decide(async_client, created["id"], "manager", "APPROVE", MANAGER)
    await _decide(async_client, created["id"], "gm", "REJECT", GM, comment="blackout week")

    assert await _audit_actions(db_session, created["id"]) == ["CREATE", "UPDATE", "APPROVE", "REJECT"]

    result = await db_session.execute(
        select(AuditLog).where(col(AuditLog.entity_id) == created["id"], col(AuditLog.action) == "REJECT")
    )
    entry = result.scalar_one()
    assert entry.actor_login_id == "gm1"
    assert entry.before_json is not None
    assert entry.after_json is not None
    assert entry.before_json["status"] == "PENDING_GM"
    assert entry.after_json["status"] == "REJECTED"


async def test_failed_decision_writes_no_audit(async_client: AsyncClient, db_session: AsyncSession) -> None:
    await _set_profile(async_client)
    created = await _create(async_client)
    await _decide(async_client, created["id"], "manager", "APPROVE", OTHER_MANAGER)
    assert await _audit_actions(db_session, created["id"]) == ["CREATE"]
