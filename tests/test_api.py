"""HTTP surface tests — status codes, problem+json bodies, auth and role gates.

Requests go through the ASGI app with the DB dependency overridden by the
shared conftest.py fixtures.
"""

from __future__ import annotations

import uuid
from decimal import Decimal

from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from tests.conftest import (
    _seed_balance,
    _seed_leave_type,
    auth_header,
    create_access_token,
)

BASE = "/api/v1/leave"


def _apply_body(leave_type_id, start="2024-08-12", end="2024-08-14", **extra) -> dict:
    body = {
        "leave_type_id": str(leave_type_id),
        "start_date": start,
        "end_date": end,
        "reason": "Family function",
    }
    body.update(extra)
    return body


async def _apply(client: AsyncClient, staff, leave_type, **kwargs) -> dict:
    resp = await client.post(
        f"{BASE}/apply",
        json=_apply_body(leave_type.id, **kwargs),
        headers=auth_header(staff.id),
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


async def _balance_row(client: AsyncClient, staff, leave_type, year: int = 2024) -> dict:
    resp = await client.get(
        f"{BASE}/balances", params={"year": year}, headers=auth_header(staff.id),
    )
    assert resp.status_code == 200
    rows = [r for r in resp.json() if r["leave_type_id"] == str(leave_type.id)]
    assert len(rows) == 1
    return rows[0]


# ═════════════════════════════════════════════════════════════════════
# System & auth
# ═════════════════════════════════════════════════════════════════════


class TestSystem:

    async def test_health(self, client: AsyncClient):
        resp = await client.get("/api/v1/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"

    async def test_missing_token(self, client: AsyncClient, college):
        resp = await client.post(f"{BASE}/apply", json=_apply_body(college["casual"].id))
        assert resp.status_code == 401

    async def test_expired_token(self, client: AsyncClient, college):
        token = create_access_token(college["faculty"].id, expired=True)
        resp = await client.get(
            f"{BASE}/types", headers={"Authorization": f"Bearer {token}"},
        )
        assert resp.status_code == 401

    async def test_token_with_wrong_secret(self, client: AsyncClient, college):
        token = create_access_token(college["faculty"].id, secret="not-the-secret")
        resp = await client.get(
            f"{BASE}/types", headers={"Authorization": f"Bearer {token}"},
        )
        assert resp.status_code == 401

    async def test_unknown_staff_token(self, client: AsyncClient, college):
        resp = await client.get(f"{BASE}/types", headers=auth_header(uuid.uuid4()))
        assert resp.status_code == 401


# ═════════════════════════════════════════════════════════════════════
# Apply
# ═════════════════════════════════════════════════════════════════════


class TestApplyEndpoint:

    async def test_apply_created(self, client: AsyncClient, college):
        data = await _apply(client, college["faculty"], college["casual"])

        assert data["status"] == "pending"
        assert Decimal(data["working_days"]) == Decimal("3")
        assert Decimal(data["updated_balance"]["remaining"]) == Decimal("9")
        assert data["request"]["applicant"]["id"] == str(college["faculty"].id)

    async def test_insufficient_balance_problem_detail(
        self, client: AsyncClient, db: AsyncSession, college,
    ):
        faculty = college["faculty"]
        medical = await _seed_leave_type(db, code="ML", name="Medical Leave")
        await _seed_balance(
            db, staff_id=faculty.id, leave_type_id=medical.id, allocated=Decimal("2"),
        )
        await db.commit()

        resp = await client.post(
            f"{BASE}/apply", json=_apply_body(medical.id), headers=auth_header(faculty.id),
        )

        assert resp.status_code == 400
        assert resp.headers["content-type"].startswith("application/problem+json")
        body = resp.json()
        assert body["type"].endswith("/insufficient-balance")
        assert body["status"] == 400
        assert "Medical Leave" in body["detail"]

        mine = await client.get(f"{BASE}/my-leaves", headers=auth_header(faculty.id))
        assert mine.json()["meta"]["total"] == 0

    async def test_no_allocation(self, client: AsyncClient, college):
        resp = await client.post(
            f"{BASE}/apply",
            json=_apply_body(college["casual"].id),
            headers=auth_header(college["other_hod"].id),
        )
        assert resp.status_code == 400
        assert resp.json()["type"].endswith("/no-allocation")

    async def test_missing_reason_is_422(self, client: AsyncClient, college):
        body = _apply_body(college["casual"].id)
        del body["reason"]

        resp = await client.post(
            f"{BASE}/apply", json=body, headers=auth_header(college["faculty"].id),
        )
        assert resp.status_code == 422
        assert "errors" in resp.json()

    async def test_end_before_start_is_422(self, client: AsyncClient, college):
        resp = await client.post(
            f"{BASE}/apply",
            json=_apply_body(college["casual"].id, start="2024-08-14", end="2024-08-12"),
            headers=auth_header(college["faculty"].id),
        )
        assert resp.status_code == 422

    async def test_admin_apply_forbidden(self, client: AsyncClient, college):
        resp = await client.post(
            f"{BASE}/apply",
            json=_apply_body(college["casual"].id),
            headers=auth_header(college["admin"].id),
        )
        assert resp.status_code == 403


# ═════════════════════════════════════════════════════════════════════
# Decide / cancel / delete
# ═════════════════════════════════════════════════════════════════════


class TestTransitionEndpoints:

    async def test_reject_restores_balance(self, client: AsyncClient, college):
        faculty, casual = college["faculty"], college["casual"]
        applied = await _apply(client, faculty, casual)

        resp = await client.post(
            f"{BASE}/{applied['request_id']}/decide",
            json={"decision": "reject", "comments": "clashes with exam duty"},
            headers=auth_header(college["hod"].id),
        )

        assert resp.status_code == 200
        assert resp.json()["status"] == "rejected"
        row = await _balance_row(client, faculty, casual)
        assert Decimal(row["used"]) == Decimal("0")
        assert Decimal(row["remaining"]) == Decimal("12")

    async def test_other_department_hod_forbidden(self, client: AsyncClient, college):
        applied = await _apply(client, college["faculty"], college["casual"])

        resp = await client.post(
            f"{BASE}/{applied['request_id']}/decide",
            json={"decision": "approve"},
            headers=auth_header(college["other_hod"].id),
        )

        assert resp.status_code == 403
        assert resp.json()["type"].endswith("/forbidden")

    async def test_second_decision_conflict(self, client: AsyncClient, college):
        applied = await _apply(client, college["faculty"], college["casual"])
        url = f"{BASE}/{applied['request_id']}/decide"
        headers = auth_header(college["hod"].id)

        first = await client.post(url, json={"decision": "approve"}, headers=headers)
        second = await client.post(url, json={"decision": "approve"}, headers=headers)

        assert first.status_code == 200
        assert second.status_code == 409
        assert second.json()["type"].endswith("/already-processed")

    async def test_unknown_decision_is_422(self, client: AsyncClient, college):
        applied = await _apply(client, college["faculty"], college["casual"])

        resp = await client.post(
            f"{BASE}/{applied['request_id']}/decide",
            json={"decision": "maybe"},
            headers=auth_header(college["hod"].id),
        )
        assert resp.status_code == 422

    async def test_hod_request_approved_by_principal_then_cancelled(
        self, client: AsyncClient, college,
    ):
        hod, casual = college["hod"], college["casual"]
        applied = await _apply(client, hod, casual, start="2024-08-12", end="2024-08-13")

        approved = await client.post(
            f"{BASE}/{applied['request_id']}/decide",
            json={"decision": "approve"},
            headers=auth_header(college["principal"].id),
        )
        assert approved.status_code == 200
        assert Decimal(approved.json()["balance"]["used"]) == Decimal("2")

        cancelled = await client.post(
            f"{BASE}/{applied['request_id']}/cancel", headers=auth_header(hod.id),
        )
        assert cancelled.status_code == 200
        assert cancelled.json()["status"] == "cancelled"

        row = await _balance_row(client, hod, casual)
        assert Decimal(row["used"]) == Decimal("0")
        assert Decimal(row["remaining"]) == Decimal("10")

    async def test_cancel_rejected_is_conflict(self, client: AsyncClient, college):
        applied = await _apply(client, college["faculty"], college["casual"])
        await client.post(
            f"{BASE}/{applied['request_id']}/decide",
            json={"decision": "reject"},
            headers=auth_header(college["hod"].id),
        )

        resp = await client.post(
            f"{BASE}/{applied['request_id']}/cancel",
            json={"reason": "too late"},
            headers=auth_header(college["faculty"].id),
        )
        assert resp.status_code == 409
        assert resp.json()["type"].endswith("/illegal-state")

    async def test_admin_delete(self, client: AsyncClient, college):
        applied = await _apply(client, college["faculty"], college["casual"])
        url = f"{BASE}/{applied['request_id']}"

        resp = await client.delete(url, headers=auth_header(college["admin"].id))
        assert resp.status_code == 200
        assert Decimal(resp.json()["restored_days"]) == Decimal("3")

        again = await client.delete(url, headers=auth_header(college["admin"].id))
        assert again.status_code == 409
        assert again.json()["type"].endswith("/already-processed")

        row = await _balance_row(client, college["faculty"], college["casual"])
        assert Decimal(row["used"]) == Decimal("0")

    async def test_faculty_delete_forbidden(self, client: AsyncClient, college):
        applied = await _apply(client, college["faculty"], college["casual"])

        resp = await client.delete(
            f"{BASE}/{applied['request_id']}",
            headers=auth_header(college["faculty"].id),
        )
        assert resp.status_code == 403

    async def test_edit_pending(self, client: AsyncClient, college):
        applied = await _apply(client, college["faculty"], college["casual"])

        resp = await client.put(
            f"{BASE}/{applied['request_id']}",
            json={"end_date": "2024-08-12"},
            headers=auth_header(college["faculty"].id),
        )
        assert resp.status_code == 200
        assert Decimal(resp.json()["working_days"]) == Decimal("1")

        row = await _balance_row(client, college["faculty"], college["casual"])
        assert Decimal(row["used"]) == Decimal("1")


# ═════════════════════════════════════════════════════════════════════
# Reads
# ═════════════════════════════════════════════════════════════════════


class TestReadEndpoints:

    async def test_get_unknown_request(self, client: AsyncClient, college):
        resp = await client.get(
            f"{BASE}/{uuid.uuid4()}", headers=auth_header(college["faculty"].id),
        )
        assert resp.status_code == 404
        assert resp.headers["content-type"].startswith("application/problem+json")

    async def test_get_request_with_approvals(self, client: AsyncClient, college):
        applied = await _apply(client, college["faculty"], college["casual"])
        await client.post(
            f"{BASE}/{applied['request_id']}/decide",
            json={"decision": "approve", "comments": "Enjoy"},
            headers=auth_header(college["hod"].id),
        )

        resp = await client.get(
            f"{BASE}/{applied['request_id']}", headers=auth_header(college["faculty"].id),
        )
        assert resp.status_code == 200
        approvals = resp.json()["approvals"]
        assert len(approvals) == 1
        assert approvals[0]["decision"] == "approved"
        assert approvals[0]["level"] == 1

    async def test_pending_approvals_role_gate(self, client: AsyncClient, college):
        await _apply(client, college["faculty"], college["casual"])

        hod = await client.get(
            f"{BASE}/pending-approvals", headers=auth_header(college["hod"].id),
        )
        assert hod.status_code == 200
        assert len(hod.json()) == 1

        faculty = await client.get(
            f"{BASE}/pending-approvals", headers=auth_header(college["faculty"].id),
        )
        assert faculty.status_code == 403

    async def test_requests_invalid_scope(self, client: AsyncClient, college):
        resp = await client.get(
            f"{BASE}/requests",
            params={"scope": "everything"},
            headers=auth_header(college["principal"].id),
        )
        assert resp.status_code == 422

    async def test_requests_all_scope(self, client: AsyncClient, college):
        await _apply(client, college["faculty"], college["casual"])
        await _apply(client, college["other_faculty"], college["casual"])

        resp = await client.get(
            f"{BASE}/requests",
            params={"scope": "all", "page_size": 1},
            headers=auth_header(college["principal"].id),
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["meta"]["total"] == 2
        assert body["meta"]["has_next"] is True
        assert len(body["data"]) == 1

    async def test_leave_types(self, client: AsyncClient, college):
        resp = await client.get(f"{BASE}/types", headers=auth_header(college["faculty"].id))
        assert resp.status_code == 200
        assert [t["code"] for t in resp.json()] == ["CL"]


# ═════════════════════════════════════════════════════════════════════
# Balance maintenance
# ═════════════════════════════════════════════════════════════════════


class TestBalanceEndpoints:

    async def test_allocate_admin_only(self, client: AsyncClient, college):
        body = {
            "staff_id": str(college["other_hod"].id),
            "leave_type_id": str(college["casual"].id),
            "year": 2024,
            "amount": "8",
        }

        denied = await client.post(
            f"{BASE}/balances/allocate", json=body, headers=auth_header(college["principal"].id),
        )
        assert denied.status_code == 403

        resp = await client.post(
            f"{BASE}/balances/allocate", json=body, headers=auth_header(college["admin"].id),
        )
        assert resp.status_code == 200
        assert Decimal(resp.json()["remaining"]) == Decimal("8")

    async def test_allocate_sub_precision_amount_rejected(self, client: AsyncClient, college):
        staff = college["other_hod"]
        body = {
            "staff_id": str(staff.id),
            "leave_type_id": str(college["casual"].id),
            "year": 2024,
            "amount": "7.25",
        }

        resp = await client.post(
            f"{BASE}/balances/allocate", json=body, headers=auth_header(college["admin"].id),
        )
        assert resp.status_code == 422

        body["amount"] = "7.5"
        resp = await client.post(
            f"{BASE}/balances/allocate", json=body, headers=auth_header(college["admin"].id),
        )
        assert resp.status_code == 200
        assert Decimal(resp.json()["allocated"]) == Decimal("7.5")

        row = await _balance_row(client, staff, college["casual"])
        assert Decimal(row["allocated"]) == Decimal("7.5")
        assert Decimal(row["remaining"]) == Decimal("7.5")

    async def test_bulk_allocate(self, client: AsyncClient, college):
        resp = await client.post(
            f"{BASE}/balances/bulk-allocate",
            json={"year": 2025},
            headers=auth_header(college["admin"].id),
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["staff_count"] == 5
        assert body["created"] == 5

    async def test_reset(self, client: AsyncClient, college):
        faculty = college["faculty"]
        await _apply(client, faculty, college["casual"])

        resp = await client.post(
            f"{BASE}/balances/reset",
            json={"staff_id": str(faculty.id), "year": 2024},
            headers=auth_header(college["admin"].id),
        )
        assert resp.status_code == 200
        assert Decimal(resp.json()[0]["used"]) == Decimal("0")

    async def test_summary_for_principal(self, client: AsyncClient, college):
        resp = await client.get(
            f"{BASE}/balances/summary",
            params={"year": 2024},
            headers=auth_header(college["principal"].id),
        )
        assert resp.status_code == 200
        rows = resp.json()["rows"]
        assert rows[0]["leave_type_code"] == "CL"
        assert rows[0]["staff_count"] == 3

    async def test_staff_balances_visibility(self, client: AsyncClient, college):
        url = f"{BASE}/balances/{college['faculty'].id}"

        hod = await client.get(url, params={"year": 2024}, headers=auth_header(college["hod"].id))
        assert hod.status_code == 200
        assert len(hod.json()) == 1

        other = await client.get(
            url, params={"year": 2024}, headers=auth_header(college["other_hod"].id),
        )
        assert other.status_code == 403
