"""HTTP surface tests — auth, RFC 7807 errors, the request state machine over
HTTP, HR ledger endpoints, pagination.

Seed data goes through the ``db`` fixture and is committed before the client
call so the app's own session sees it.
"""

from __future__ import annotations

import uuid
from decimal import Decimal

from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from leaveflow.common.constants import UserRole
from tests.conftest import auth_headers_for, create_access_token, seed_user

PROBLEM_JSON = "application/problem+json"


async def _submit(client: AsyncClient, org: dict, **overrides) -> dict:
    payload = {
        "leave_type_id": str(org["catalog"]["VACATION"].id),
        "start_date": "2026-03-02",
        "end_date": "2026-03-04",
        "session": "FULL_DAY",
        "reason": "Family event",
    }
    payload.update(overrides)
    resp = await client.post(
        "/api/v1/leave/requests",
        json=payload,
        headers=auth_headers_for(org["employee"]),
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


async def _vacation_used(client: AsyncClient, org: dict) -> Decimal:
    resp = await client.get(
        "/api/v1/leave/balances",
        params={"year": 2026},
        headers=auth_headers_for(org["employee"]),
    )
    assert resp.status_code == 200
    by_name = {b["leave_type"]["name"]: b for b in resp.json()}
    return Decimal(by_name["VACATION"]["used_days"])


# ═════════════════════════════════════════════════════════════════════
# 1. System & auth
# ═════════════════════════════════════════════════════════════════════


async def test_api_health(client: AsyncClient):
    resp = await client.get("/api/v1/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


async def test_api_requires_auth(client: AsyncClient):
    resp = await client.get("/api/v1/requests/mine")
    assert resp.status_code == 401


async def test_api_expired_token(client: AsyncClient, db: AsyncSession, org):
    await db.commit()
    resp = await client.get(
        "/api/v1/requests/mine",
        headers={"Authorization": f"Bearer {create_access_token(org['employee'].id, expired=True)}"},
    )
    assert resp.status_code == 401


async def test_api_inactive_user_rejected(client: AsyncClient, db: AsyncSession):
    gone = await seed_user(db, is_active=False)
    await db.commit()
    resp = await client.get("/api/v1/requests/mine", headers=auth_headers_for(gone))
    assert resp.status_code == 401


async def test_api_leave_types(client: AsyncClient, db: AsyncSession, org):
    await db.commit()
    resp = await client.get("/api/v1/leave/types", headers=auth_headers_for(org["employee"]))
    assert resp.status_code == 200
    names = [t["name"] for t in resp.json()]
    assert names == ["EMERGENCY", "SICK", "UNPAID", "VACATION"]


# ═════════════════════════════════════════════════════════════════════
# 2. State machine over HTTP
# ═════════════════════════════════════════════════════════════════════


async def test_api_full_approval_and_cancel(client: AsyncClient, db: AsyncSession, org):
    await db.commit()
    created = await _submit(client, org)
    assert created["status"] == "PENDING_MANAGER"
    assert created["kind"] == "leave"

    resp = await client.post(
        f"/api/v1/requests/{created['id']}/approve",
        json={"comments": "OK"},
        headers=auth_headers_for(org["manager"]),
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "PENDING_HR"

    resp = await client.post(
        f"/api/v1/requests/{created['id']}/approve",
        headers=auth_headers_for(org["hr"]),
    )
    assert resp.status_code == 200
    assert resp.json() == {
        "id": created["id"],
        "kind": "leave",
        "previous_status": "PENDING_HR",
        "status": "APPROVED",
    }
    assert await _vacation_used(client, org) == Decimal("3")

    resp = await client.post(
        f"/api/v1/requests/{created['id']}/cancel",
        headers=auth_headers_for(org["employee"]),
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "CANCELLED"
    assert await _vacation_used(client, org) == Decimal("0")


async def test_api_reject_requires_comment(client: AsyncClient, db: AsyncSession, org):
    await db.commit()
    created = await _submit(client, org)
    resp = await client.post(
        f"/api/v1/requests/{created['id']}/reject",
        json={"comments": "   "},
        headers=auth_headers_for(org["manager"]),
    )
    assert resp.status_code == 422
    assert resp.headers["content-type"].startswith(PROBLEM_JSON)
    assert "comments" in resp.json()["errors"]


async def test_api_manager_cannot_finalise(client: AsyncClient, db: AsyncSession, org):
    await db.commit()
    created = await _submit(client, org)
    headers = auth_headers_for(org["manager"])
    await client.post(f"/api/v1/requests/{created['id']}/approve", headers=headers)

    resp = await client.post(f"/api/v1/requests/{created['id']}/approve", headers=headers)
    assert resp.status_code == 403
    body = resp.json()
    assert body["type"].endswith("/forbidden")
    assert body["instance"] == f"/api/v1/requests/{created['id']}/approve"


async def test_api_insufficient_balance_is_409(client: AsyncClient, db: AsyncSession, org):
    await db.commit()
    resp = await client.post(
        "/api/v1/leave/requests",
        json={
            "leave_type_id": str(org["catalog"]["VACATION"].id),
            "start_date": "2026-03-01",
            "end_date": "2026-03-20",
            "reason": "Sabbatical",
        },
        headers=auth_headers_for(org["employee"]),
    )
    assert resp.status_code == 409
    assert resp.headers["content-type"].startswith(PROBLEM_JSON)
    assert resp.json()["type"].endswith("/insufficient-balance")


async def test_api_invalid_dates_422(client: AsyncClient, db: AsyncSession, org):
    await db.commit()
    resp = await client.post(
        "/api/v1/leave/requests",
        json={
            "leave_type_id": str(org["catalog"]["VACATION"].id),
            "start_date": "2026-03-04",
            "end_date": "2026-03-02",
            "reason": "Backwards",
        },
        headers=auth_headers_for(org["employee"]),
    )
    assert resp.status_code == 422


async def test_api_unknown_request_404(client: AsyncClient, db: AsyncSession, org):
    await db.commit()
    resp = await client.get(
        f"/api/v1/requests/{uuid.uuid4()}",
        headers=auth_headers_for(org["employee"]),
    )
    assert resp.status_code == 404
    assert resp.json()["type"].endswith("/not-found")


async def test_api_request_hidden_from_stranger(client: AsyncClient, db: AsyncSession, org):
    stranger = await seed_user(db, name="Stan Stranger")
    await db.commit()
    created = await _submit(client, org)

    resp = await client.get(
        f"/api/v1/requests/{created['id']}", headers=auth_headers_for(stranger),
    )
    assert resp.status_code == 404

    resp = await client.get(
        f"/api/v1/requests/{created['id']}", headers=auth_headers_for(org["manager"]),
    )
    assert resp.status_code == 200
    assert resp.json()["user_name"] == "Eli Employee"


async def test_api_edit_leave_request(client: AsyncClient, db: AsyncSession, org):
    await db.commit()
    created = await _submit(client, org)
    resp = await client.put(
        f"/api/v1/leave/requests/{created['id']}",
        json={
            "leave_type_id": str(org["catalog"]["SICK"].id),
            "start_date": "2026-03-02",
            "end_date": "2026-03-02",
            "session": "MORNING",
            "reason": "Only the morning",
        },
        headers=auth_headers_for(org["employee"]),
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["leave_type_name"] == "SICK"
    assert Decimal(body["total_days"]) == Decimal("0.5")


async def test_api_overtime_submit_and_queue(client: AsyncClient, db: AsyncSession, org):
    await db.commit()
    resp = await client.post(
        "/api/v1/overtime/requests",
        json={
            "start_time": "2026-03-02T18:00:00Z",
            "end_time": "2026-03-02T20:30:00Z",
            "reason": "Release",
        },
        headers=auth_headers_for(org["employee"]),
    )
    assert resp.status_code == 201
    created = resp.json()
    assert created["kind"] == "overtime"
    assert Decimal(created["total_hours"]) == Decimal("2.5")

    resp = await client.get("/api/v1/requests/pending", headers=auth_headers_for(org["manager"]))
    assert resp.status_code == 200
    assert [r["id"] for r in resp.json()] == [created["id"]]


async def test_api_overtime_mixed_offsets_is_422(client: AsyncClient, db: AsyncSession, org):
    await db.commit()
    resp = await client.post(
        "/api/v1/overtime/requests",
        json={
            "start_time": "2026-03-02T18:00:00",
            "end_time": "2026-03-02T20:00:00+00:00",
            "reason": "Release",
        },
        headers=auth_headers_for(org["employee"]),
    )
    assert resp.status_code == 422
    assert resp.headers["content-type"].startswith(PROBLEM_JSON)


# ═════════════════════════════════════════════════════════════════════
# 3. Listings
# ═════════════════════════════════════════════════════════════════════


async def test_api_team_pagination(client: AsyncClient, db: AsyncSession, org):
    await db.commit()
    await _submit(client, org)
    await _submit(client, org, start_date="2026-04-01", end_date="2026-04-01")

    resp = await client.get(
        "/api/v1/requests/team",
        params={"page": 1, "page_size": 1},
        headers=auth_headers_for(org["manager"]),
    )
    assert resp.status_code == 200
    body = resp.json()
    assert len(body["data"]) == 1
    assert body["meta"]["total"] == 2
    assert body["meta"]["total_pages"] == 2
    assert body["meta"]["has_next"] is True


async def test_api_history_and_mine(client: AsyncClient, db: AsyncSession, org):
    await db.commit()
    created = await _submit(client, org)
    await client.post(
        f"/api/v1/requests/{created['id']}/reject",
        json={"comments": "Not this week"},
        headers=auth_headers_for(org["manager"]),
    )

    resp = await client.get("/api/v1/requests/history", headers=auth_headers_for(org["manager"]))
    assert [r["id"] for r in resp.json()] == [created["id"]]

    resp = await client.get("/api/v1/requests/mine", headers=auth_headers_for(org["employee"]))
    mine = resp.json()
    assert mine[0]["status"] == "REJECTED"
    assert mine[0]["manager_comments"] == "Not this week"


# ═════════════════════════════════════════════════════════════════════
# 4. HR ledger endpoints
# ═════════════════════════════════════════════════════════════════════


async def test_api_hr_endpoints_forbidden_for_user(client: AsyncClient, db: AsyncSession, org):
    await db.commit()
    headers = auth_headers_for(org["employee"])
    resp = await client.get("/api/v1/leave/balances/summary", headers=headers)
    assert resp.status_code == 403
    resp = await client.post("/api/v1/leave/balances/renew", json={"year": 2027}, headers=headers)
    assert resp.status_code == 403


async def test_api_admin_inherits_hr(client: AsyncClient, db: AsyncSession, org):
    admin = await seed_user(db, name="Ada Admin", role=UserRole.ADMIN)
    await db.commit()
    resp = await client.get(
        "/api/v1/leave/balances/summary",
        params={"year": 2026},
        headers=auth_headers_for(admin),
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["total_employees"] == 1
    assert Decimal(body["total_allocated"]) == Decimal("20")
    names = [t["leave_type_name"] for t in body["by_type"]]
    assert names == ["EMERGENCY", "SICK", "UNPAID", "VACATION"]


async def test_api_adjust_balance(client: AsyncClient, db: AsyncSession, org):
    await db.commit()
    resp = await client.put(
        f"/api/v1/leave/balances/{org['vacation'].id}",
        json={"allocated_days": "12", "used_days": "1.5"},
        headers=auth_headers_for(org["hr"]),
    )
    assert resp.status_code == 200
    body = resp.json()
    assert Decimal(body["remaining_days"]) == Decimal("10.5")
    assert body["leave_type"]["name"] == "VACATION"


async def test_api_all_balances(client: AsyncClient, db: AsyncSession, org):
    await db.commit()
    resp = await client.get(
        "/api/v1/leave/balances/all",
        params={"year": 2026},
        headers=auth_headers_for(org["hr"]),
    )
    assert resp.status_code == 200
    rows = resp.json()
    assert [r["leave_type"]["name"] for r in rows] == ["SICK", "VACATION"]
    assert {r["employee"]["name"] for r in rows} == {"Eli Employee"}
    assert rows[0]["employee"]["department"] is None

    resp = await client.get(
        "/api/v1/leave/balances/all", headers=auth_headers_for(org["employee"]),
    )
    assert resp.status_code == 403


async def test_api_bulk_adjust(client: AsyncClient, db: AsyncSession, org):
    await db.commit()
    headers = auth_headers_for(org["hr"])
    resp = await client.put(
        "/api/v1/leave/balances",
        json={"updates": [
            {"balance_id": str(org["vacation"].id), "allocated_days": "12", "used_days": "2"},
            {"balance_id": str(org["sick"].id), "allocated_days": "8", "used_days": "0"},
        ]},
        headers=headers,
    )
    assert resp.status_code == 200
    assert [Decimal(r["remaining_days"]) for r in resp.json()] == [Decimal("10"), Decimal("8")]

    resp = await client.put(
        "/api/v1/leave/balances",
        json={"updates": [
            {"balance_id": str(org["vacation"].id), "allocated_days": "30", "used_days": "0"},
            {"balance_id": str(uuid.uuid4()), "allocated_days": "1", "used_days": "0"},
        ]},
        headers=headers,
    )
    assert resp.status_code == 404

    resp = await client.get("/api/v1/leave/balances", params={"year": 2026},
                            headers=auth_headers_for(org["employee"]))
    vacation = next(r for r in resp.json() if r["leave_type"]["name"] == "VACATION")
    assert Decimal(vacation["allocated_days"]) == Decimal("12")


async def test_api_provision_balances(client: AsyncClient, db: AsyncSession, org):
    newcomer = await seed_user(db, name="Nia Newcomer")
    await db.commit()
    resp = await client.post(
        f"/api/v1/leave/balances/provision/{newcomer.id}",
        params={"year": 2026},
        headers=auth_headers_for(org["hr"]),
    )
    assert resp.status_code == 200
    rows = {r["leave_type"]["name"]: r for r in resp.json()}
    assert Decimal(rows["VACATION"]["allocated_days"]) == Decimal("15")
    assert len(rows) == 4


async def test_api_renew(client: AsyncClient, db: AsyncSession, org):
    await db.commit()
    resp = await client.post(
        "/api/v1/leave/balances/renew",
        json={"year": 2027},
        headers=auth_headers_for(org["hr"]),
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["year"] == 2027
    assert body["renewed"] == 3
    # Employee's 10 unused 2026 VACATION days carry over
    assert Decimal(body["rollover"]) == Decimal("10")


async def test_api_renew_rejects_bad_year(client: AsyncClient, db: AsyncSession, org):
    await db.commit()
    resp = await client.post(
        "/api/v1/leave/balances/renew",
        json={"year": 1800},
        headers=auth_headers_for(org["hr"]),
    )
    assert resp.status_code == 422
