"""HTTP tests for the leave policy endpoints and their effect on requests."""

from __future__ import annotations

from datetime import date, timedelta
from typing import TYPE_CHECKING, Any

import pytest
from factories import auth_headers

if TYPE_CHECKING:
    from factories import Org
    from httpx import AsyncClient
    from sqlalchemy.ext.asyncio import AsyncSession


def _future_monday() -> date:
    june = date(date.today().year + 1, 6, 1)
    return june + timedelta(days=-june.weekday() % 7)


MONDAY = _future_monday()


@pytest.fixture
async def headers(db_session: AsyncSession, org: Org) -> dict[str, dict[str, str]]:
    return {
        "admin": await auth_headers(db_session, org.admin),
        "manager": await auth_headers(db_session, org.manager),
        "employee": await auth_headers(db_session, org.employee),
    }


async def _create_policy(client: AsyncClient, org: Org, headers: dict[str, str], **body: Any) -> dict[str, Any]:
    body.setdefault("name", "Summer limits")
    resp = await client.post(f"{org.url}/policies", json=body, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


def _request_body(org: Org, start: date, end: date) -> dict[str, Any]:
    return {
        "leave_type_id": str(org.leave_type.id),
        "start_date": start.isoformat(),
        "end_date": end.isoformat(),
    }


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------


async def test_create_normalizes_blackout_dates(
    async_client: AsyncClient,
    org: Org,
    headers: dict[str, dict[str, str]],
) -> None:
    later = MONDAY + timedelta(days=3)
    policy = await _create_policy(
        async_client,
        org,
        headers["admin"],
        max_consecutive_days=10,
        blackout_dates=[later.isoformat(), MONDAY.isoformat(), later.isoformat()],
    )

    assert policy["tenant_id"] == str(org.tenant.id)
    assert policy["max_consecutive_days"] == 10
    assert policy["blackout_dates"] == [MONDAY.isoformat(), later.isoformat()]
    assert policy["is_active"] is True


async def test_duplicate_name_is_409(async_client: AsyncClient, org: Org, headers: dict[str, dict[str, str]]) -> None:
    await _create_policy(async_client, org, headers["admin"])

    resp = await async_client.post(f"{org.url}/policies", json={"name": "Summer limits"}, headers=headers["admin"])
    assert resp.status_code == 409


async def test_zero_day_limit_is_422(async_client: AsyncClient, org: Org, headers: dict[str, dict[str, str]]) -> None:
    resp = await async_client.post(
        f"{org.url}/policies",
        json={"name": "Nothing", "max_consecutive_days": 0},
        headers=headers["admin"],
    )
    assert resp.status_code == 422


async def test_list_and_get(async_client: AsyncClient, org: Org, headers: dict[str, dict[str, str]]) -> None:
    active = await _create_policy(async_client, org, headers["admin"], name="Active")
    await _create_policy(async_client, org, headers["admin"], name="Dormant", is_active=False)

    resp = await async_client.get(f"{org.url}/policies", headers=headers["manager"])
    assert resp.status_code == 200
    assert resp.json()["total"] == 2

    resp = await async_client.get(
        f"{org.url}/policies", params={"include_inactive": False}, headers=headers["manager"]
    )
    assert [p["id"] for p in resp.json()["items"]] == [active["id"]]

    resp = await async_client.get(f"{org.url}/policies/{active['id']}", headers=headers["admin"])
    assert resp.status_code == 200
    assert resp.json()["name"] == "Active"


async def test_employee_cannot_read_policies(
    async_client: AsyncClient,
    org: Org,
    headers: dict[str, dict[str, str]],
) -> None:
    resp = await async_client.get(f"{org.url}/policies", headers=headers["employee"])
    assert resp.status_code == 403


async def test_manager_cannot_create_policy(
    async_client: AsyncClient,
    org: Org,
    headers: dict[str, dict[str, str]],
) -> None:
    resp = await async_client.post(f"{org.url}/policies", json={"name": "Mine"}, headers=headers["manager"])
    assert resp.status_code == 403
    assert resp.json()["error"] == "InsufficientRole"


async def test_update_and_clear_limit(async_client: AsyncClient, org: Org, headers: dict[str, dict[str, str]]) -> None:
    policy = await _create_policy(async_client, org, headers["admin"], max_consecutive_days=5)

    resp = await async_client.put(
        f"{org.url}/policies/{policy['id']}",
        json={"description": "Peak season", "blackout_dates": [MONDAY.isoformat()]},
        headers=headers["admin"],
    )
    assert resp.status_code == 200
    data = resp.json()
    assert (data["description"], data["max_consecutive_days"]) == ("Peak season", 5)
    assert data["blackout_dates"] == [MONDAY.isoformat()]

    resp = await async_client.put(
        f"{org.url}/policies/{policy['id']}",
        json={"clear_max_consecutive_days": True},
        headers=headers["admin"],
    )
    assert resp.json()["max_consecutive_days"] is None


async def test_delete_policy(async_client: AsyncClient, org: Org, headers: dict[str, dict[str, str]]) -> None:
    policy = await _create_policy(async_client, org, headers["admin"])

    resp = await async_client.delete(f"{org.url}/policies/{policy['id']}", headers=headers["admin"])
    assert resp.status_code == 204

    resp = await async_client.get(f"{org.url}/policies/{policy['id']}", headers=headers["admin"])
    assert resp.status_code == 404


async def test_policy_of_other_tenant_is_404(
    async_client: AsyncClient,
    db_session: AsyncSession,
    org: Org,
    other_org: Org,
    headers: dict[str, dict[str, str]],
) -> None:
    other_admin = await auth_headers(db_session, other_org.admin)
    foreign = await _create_policy(async_client, other_org, other_admin)

    resp = await async_client.get(f"{org.url}/policies/{foreign['id']}", headers=headers["admin"])
    assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Enforcement
# ---------------------------------------------------------------------------


async def test_request_over_day_limit_is_400(
    async_client: AsyncClient,
    org: Org,
    headers: dict[str, dict[str, str]],
) -> None:
    await _create_policy(async_client, org, headers["admin"], max_consecutive_days=3)

    resp = await async_client.post(
        f"{org.url}/requests",
        json=_request_body(org, MONDAY, MONDAY + timedelta(days=3)),
        headers=headers["employee"],
    )
    assert resp.status_code == 400
    assert resp.json()["error"] == "ValidationFailed"
    assert "Summer limits" in resp.json()["detail"]

    resp = await async_client.post(
        f"{org.url}/requests",
        json=_request_body(org, MONDAY, MONDAY + timedelta(days=2)),
        headers=headers["employee"],
    )
    assert resp.status_code == 201


async def test_blackout_blocks_submit_of_existing_draft(
    async_client: AsyncClient,
    org: Org,
    headers: dict[str, dict[str, str]],
) -> None:
    resp = await async_client.post(
        f"{org.url}/requests", json=_request_body(org, MONDAY, MONDAY), headers=headers["employee"]
    )
    assert resp.status_code == 201
    draft = resp.json()

    await _create_policy(async_client, org, headers["admin"], blackout_dates=[MONDAY.isoformat()])

    resp = await async_client.post(f"{org.url}/requests/{draft['id']}/submit", headers=headers["employee"])
    assert resp.status_code == 400
    assert "blackout" in resp.json()["detail"]

    # Deactivating the policy lifts the block.
    policies = await async_client.get(f"{org.url}/policies", headers=headers["admin"])
    (policy,) = policies.json()["items"]
    resp = await async_client.put(
        f"{org.url}/policies/{policy['id']}", json={"is_active": False}, headers=headers["admin"]
    )
    assert resp.status_code == 200
    resp = await async_client.post(f"{org.url}/requests/{draft['id']}/submit", headers=headers["employee"])
    assert resp.status_code == 200
    assert resp.json()["status"] == "PENDING"
