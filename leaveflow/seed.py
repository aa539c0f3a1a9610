"""Seed script for development data.

Run with:  python -m leaveflow.seed

The tenant, its first admin and every bearer session are written straight to
the database, since sessions come from the authentication provider. Everything
else goes through the running API so the usual rules and audit trail apply.
"""

from __future__ import annotations

import asyncio
import logging
import sys
import uuid
from datetime import date, timedelta

import httpx
from sqlalchemy import select
from sqlmodel import col

from leaveflow.config import get_settings
from leaveflow.db import dispose_engine, session_scope
from leaveflow.models.enums import Role, SubscriptionStatus
from leaveflow.models.tenant import Tenant
from leaveflow.models.user import User
from leaveflow.services.identity import issue_session

BASE_URL = "http://localhost:8000"
TENANT_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")
ADMIN_ID = uuid.UUID("00000000-0000-0000-0000-000000000002")
ADMIN_EMAIL = "admin@example.com"

USERS = [
    {"email": "maria.manager@example.com", "name": "Maria Manager", "role": "MANAGER"},
    {"email": "bob.smith@example.com", "name": "Bob Smith", "role": "EMPLOYEE"},
    {"email": "carol.williams@example.com", "name": "Carol Williams", "role": "EMPLOYEE"},
]

LEAVE_TYPES = [
    {
        "key": "vacation",
        "name": "Vacation",
        "settings": {
            "accrual_units_per_year": 50,
            "carry_over_allowed": True,
            "carry_over_max_units": 10,
            "change_reason": "Initial vacation allowance (25 days)",
        },
    },
    {
        "key": "sick",
        "name": "Sick leave",
        "settings": {"accrual_units_per_year": 20, "change_reason": "Initial sick allowance (10 days)"},
    },
]


# ---------------------------------------------------------------------------
# Database bootstrap
# ---------------------------------------------------------------------------


async def bootstrap_tenant() -> str:
    """Create the demo tenant and its admin if missing; return an admin token."""
    async with session_scope() as session:
        tenant = await session.get(Tenant, TENANT_ID)
        if tenant is None:
            session.add(
                Tenant(id=TENANT_ID, name="Example Corp", subscription_status=SubscriptionStatus.ACTIVE)
            )
            await session.flush()
            print("  [OK] Tenant: Example Corp")
        else:
            print("  [SKIP] Tenant: Example Corp (already exists)")

        admin = await session.get(User, ADMIN_ID)
        if admin is None:
            admin = User(id=ADMIN_ID, tenant_id=TENANT_ID, email=ADMIN_EMAIL, name="Ada Admin", role=Role.ADMIN)
            session.add(admin)
            await session.flush()
            print(f"  [OK] Admin: {ADMIN_EMAIL}")

        token = await issue_session(session, admin, timedelta(hours=get_settings().session_ttl_hours))
        await session.commit()
    return token


async def issue_tokens(emails: list[str]) -> dict[str, str]:
    """Issue a bearer session per seeded user, keyed by email."""
    ttl = timedelta(hours=get_settings().session_ttl_hours)
    tokens: dict[str, str] = {}
    async with session_scope() as session:
        result = await session.execute(
            select(User).where(col(User.tenant_id) == TENANT_ID, col(User.email).in_(emails))
        )
        for user in result.scalars().all():
            tokens[user.email] = await issue_session(session, user, ttl)
        await session.commit()
    return tokens


# ---------------------------------------------------------------------------
# API seeding
# ---------------------------------------------------------------------------


def _headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}", "X-Tenant-Id": str(TENANT_ID)}


def _url(path: str) -> str:
    return f"{BASE_URL}/tenants/{TENANT_ID}{path}"


async def _safe_post(client: httpx.AsyncClient, token: str, path: str, json: dict, label: str) -> dict | None:
    """POST with 409-conflict tolerance so the script can be re-run."""
    resp = await client.post(_url(path), json=json, headers=_headers(token))
    if resp.status_code in (200, 201):
        print(f"  [OK] {label}")
        return resp.json()
    if resp.status_code == 409:
        print(f"  [SKIP] {label} ({resp.json().get('detail', 'conflict')})")
        return None
    print(f"  [ERROR] {label}: {resp.status_code} {resp.text[:200]}")
    return None


async def _list_ids(client: httpx.AsyncClient, token: str, path: str, field: str) -> dict[str, str]:
    resp = await client.get(_url(path), headers=_headers(token), params={"limit": 100})
    resp.raise_for_status()
    return {item[field]: item["id"] for item in resp.json()["items"]}


async def seed_users(client: httpx.AsyncClient, admin_token: str) -> dict[str, str]:
    """Seed the manager first, then employees reporting to them; return email->id."""
    print("\n--- Seeding users ---")
    manager, *employees = USERS
    await _safe_post(client, admin_token, "/users", manager, f"User: {manager['email']}")
    user_ids = await _list_ids(client, admin_token, "/users", "email")

    for employee in employees:
        body = {**employee, "manager_id": user_ids[manager["email"]]}
        await _safe_post(client, admin_token, "/users", body, f"User: {employee['email']}")
    return await _list_ids(client, admin_token, "/users", "email")


async def seed_leave_types(client: httpx.AsyncClient, admin_token: str) -> dict[str, str]:
    """Seed leave types and return a key->id mapping."""
    print("\n--- Seeding leave types ---")
    for leave_type in LEAVE_TYPES:
        await _safe_post(client, admin_token, "/leave-types", leave_type, f"Leave type: {leave_type['key']}")
    return await _list_ids(client, admin_token, "/leave-types", "key")


async def open_balances(
    client: httpx.AsyncClient,
    admin_token: str,
    user_ids: dict[str, str],
    leave_type_ids: dict[str, str],
    year: int,
) -> None:
    print(f"\n--- Opening {year} balances ---")
    for email, user_id in user_ids.items():
        for key, leave_type_id in leave_type_ids.items():
            await _safe_post(
                client,
                admin_token,
                f"/users/{user_id}/balances/{leave_type_id}/{year}/open",
                {},
                f"Balance: {email} {key}",
            )


async def seed_policies(client: httpx.AsyncClient, admin_token: str) -> None:
    print("\n--- Seeding policies ---")
    await _safe_post(
        client,
        admin_token,
        "/policies",
        {"name": "Three weeks max", "description": "Longer absences need a plan", "max_consecutive_days": 15},
        "Policy: Three weeks max",
    )


def _next_weekday(start: date, days_ahead: int) -> date:
    candidate = start + timedelta(days=days_ahead)
    while candidate.isoweekday() > 5:
        candidate += timedelta(days=1)
    return candidate


async def seed_requests(
    client: httpx.AsyncClient,
    tokens: dict[str, str],
    leave_type_ids: dict[str, str],
) -> None:
    """Bob submits a three-day vacation; Carol's one-day sick leave gets approved."""
    print("\n--- Seeding requests ---")
    today = date.today()
    manager_email, bob_email, carol_email = (u["email"] for u in USERS)

    bob_start = _next_weekday(today, 7)
    draft = await _safe_post(
        client,
        tokens[bob_email],
        "/requests",
        {
            "leave_type_id": leave_type_ids["vacation"],
            "start_date": bob_start.isoformat(),
            "end_date": _next_weekday(bob_start, 2).isoformat(),
            "comment": "Family vacation",
        },
        "Request: Bob vacation (DRAFT)",
    )
    if draft:
        await _safe_post(client, tokens[bob_email], f"/requests/{draft['id']}/submit", {}, "Submit: Bob vacation")

    carol_day = _next_weekday(today, 14)
    draft = await _safe_post(
        client,
        tokens[carol_email],
        "/requests",
        {
            "leave_type_id": leave_type_ids["sick"],
            "start_date": carol_day.isoformat(),
            "end_date": carol_day.isoformat(),
            "comment": "Doctor appointment",
        },
        "Request: Carol sick leave (DRAFT)",
    )
    if draft:
        await _safe_post(client, tokens[carol_email], f"/requests/{draft['id']}/submit", {}, "Submit: Carol")
        await _safe_post(
            client,
            tokens[manager_email],
            f"/requests/{draft['id']}/decision",
            {"decision": "APPROVE"},
            "Approve: Carol sick leave",
        )


async def main() -> None:
    """Run all seed steps in order."""
    print("Seeding leaveflow development data...")
    print(f"Target: {BASE_URL}")

    try:
        print("\n--- Bootstrapping tenant ---")
        admin_token = await bootstrap_tenant()

        async with httpx.AsyncClient(timeout=30.0) as client:
            try:
                resp = await client.get(f"{BASE_URL}/health")
                resp.raise_for_status()
            except httpx.HTTPError as exc:
                print(f"\nERROR: Cannot reach API at {BASE_URL}: {exc}")
                sys.exit(1)

            user_ids = await seed_users(client, admin_token)
            leave_type_ids = await seed_leave_types(client, admin_token)
            await seed_policies(client, admin_token)
            await open_balances(client, admin_token, user_ids, leave_type_ids, date.today().year)

            tokens = await issue_tokens([u["email"] for u in USERS])
            await seed_requests(client, tokens, leave_type_ids)
    finally:
        await dispose_engine()

    print("\n--- Bearer tokens ---")
    print(f"  X-Tenant-Id: {TENANT_ID}")
    print(f"  {ADMIN_EMAIL}: {admin_token}")
    for email, token in tokens.items():
        print(f"  {email}: {token}")
    print("\nDone!")


if __name__ == "__main__":
    logging.basicConfig(level=get_settings().log_level.upper())
    asyncio.run(main())
