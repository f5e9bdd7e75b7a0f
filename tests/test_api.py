"""End-to-end HTTP tests through the ASGI app."""

from datetime import timedelta

import pytest

from app.db.base import utcnow
from app.db.tenant_access import TenantAwareDataAccess
from app.models import User, UserRole
from app.services.budget_service import current_period

REGISTER_BODY = {
    "company_name": "Acme Corp",
    "business_number": "123-45-67890",
    "email": "owner@acme.io",
    "name": "Owner",
    "password": "supersecret1",
}


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


async def _login(client, email: str, password: str) -> str:
    response = await client.post("/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return response.json()["data"]["access_token"]


# ── Auth ────────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_register_admin_returns_envelope(client):
    response = await client.post("/auth/register-admin", json=REGISTER_BODY)

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["data"]["user"]["role"] == UserRole.ADMIN.value
    assert body["data"]["company"]["name"] == "Acme Corp"

    me = await client.get("/auth/me", headers=bearer(body["data"]["access_token"]))
    assert me.status_code == 200
    assert me.json()["data"]["email"] == "owner@acme.io"


@pytest.mark.asyncio
async def test_duplicate_business_number_conflicts(client):
    await client.post("/auth/register-admin", json=REGISTER_BODY)
    again = await client.post(
        "/auth/register-admin", json={**REGISTER_BODY, "email": "second@acme.io"}
    )

    assert again.status_code == 409
    assert again.json()["error"]["code"] == "COMPANY_BUSINESS_NUMBER_TAKEN"


@pytest.mark.asyncio
async def test_login_with_wrong_password(client, factory):
    company = await factory.company()
    user = await factory.user(company)

    response = await client.post(
        "/auth/login", json={"email": user.email, "password": "not-the-password"}
    )

    assert response.status_code == 401
    assert response.json() == {
        "success": False,
        "error": {
            "code": "AUTH_INVALID_CREDENTIALS",
            "message": response.json()["error"]["message"],
            "details": None,
        },
    }


@pytest.mark.asyncio
async def test_invalid_body_is_a_validation_error(client):
    response = await client.post(
        "/auth/register-admin", json={**REGISTER_BODY, "email": "not-an-email"}
    )

    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert any(d["field"].endswith("email") for d in error["details"])


# ── Catalog ─────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_product_pagination(client, factory, auth):
    company = await factory.company()
    user = await factory.user(company)
    for n in range(3):
        await factory.product(company, name=f"Snack {n}")

    response = await client.get("/products", params={"limit": 2}, headers=auth(user))

    assert response.status_code == 200
    body = response.json()
    assert len(body["data"]) == 2
    assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "totalPages": 2}


@pytest.mark.asyncio
async def test_other_company_product_is_not_found(client, factory, auth):
    company = await factory.company()
    other = await factory.company("Other")
    user = await factory.user(company)
    foreign = await factory.product(other)

    response = await client.get(f"/products/{foreign.id}", headers=auth(user))

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "PRODUCT_NOT_FOUND"


# ── Purchase flow ───────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_request_and_approve_flow(client, factory):
    await factory.category()
    registered = await client.post("/auth/register-admin", json=REGISTER_BODY)
    admin_headers = bearer(registered.json()["data"]["access_token"])

    created = await client.post(
        "/admin/users",
        json={"email": "staff@acme.io", "name": "Staff", "password": "staffpass1"},
        headers=admin_headers,
    )
    assert created.status_code == 201
    user_headers = bearer(await _login(client, "staff@acme.io", "staffpass1"))

    year, month = current_period()
    budget = await client.put(
        "/budgets", json={"year": year, "month": month, "amount": 50_000}, headers=admin_headers
    )
    assert budget.status_code == 200
    assert budget.json()["data"]["created"] is True

    product = await client.post(
        "/products",
        json={"category_id": 1, "name": "Choco", "price": 1500, "link": "https://shop.io/c"},
        headers=admin_headers,
    )
    assert product.status_code == 201
    product_id = product.json()["data"]["id"]

    # Plain members cannot manage the catalog.
    forbidden = await client.delete(f"/products/{product_id}", headers=user_headers)
    assert forbidden.status_code == 403

    cart = await client.post(
        "/cart", json={"product_id": product_id, "quantity": 2}, headers=user_headers
    )
    assert cart.status_code == 201
    listed = await client.get("/cart", headers=user_headers)
    assert listed.json()["summary"]["total_price"] == 3000

    requested = await client.post(
        "/purchases/requests",
        json={"items": [{"product_id": product_id, "quantity": 2}], "shipping_fee": 0},
        headers=user_headers,
    )
    assert requested.status_code == 201, requested.text
    request_id = requested.json()["data"]["id"]
    assert requested.json()["data"]["status"] == "PENDING"

    unread = await client.get("/notifications/unread-count", headers=admin_headers)
    assert unread.json()["data"]["count"] == 1

    approved = await client.patch(
        f"/purchases/requests/{request_id}/approve", headers=admin_headers
    )
    assert approved.status_code == 200
    assert approved.json()["data"]["status"] == "APPROVED"

    again = await client.patch(
        f"/purchases/requests/{request_id}/reject",
        json={"reason": "late"},
        headers=admin_headers,
    )
    assert again.status_code == 409

    budgets = await client.get(
        "/budgets", params={"year": year, "month": month}, headers=admin_headers
    )
    assert budgets.json()["data"][0]["amount"] == 47_000

    unread = await client.get("/notifications/unread-count", headers=user_headers)
    assert unread.json()["data"]["count"] == 1

    mine = await client.get("/purchases/my", headers=user_headers)
    assert [r["id"] for r in mine.json()["data"]] == [request_id]

    stats = await client.get("/purchases/statistics", headers=admin_headers)
    assert stats.json()["data"]["this_month_spend"] == 3000


# ── Budgets ─────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_budget_upsert_creates_then_updates(client, factory, auth):
    company = await factory.company()
    admin = await factory.user(company, UserRole.ADMIN)
    manager = await factory.user(company, UserRole.MANAGER)
    body = {"year": 2025, "month": 3, "amount": 20_000}

    first = await client.put("/budgets", json=body, headers=auth(admin))
    assert first.status_code == 200
    assert first.json()["data"]["created"] is True

    second = await client.put("/budgets", json={**body, "amount": 15_000}, headers=auth(admin))
    assert second.json()["data"]["created"] is False
    assert second.json()["data"]["budget"]["id"] == first.json()["data"]["budget"]["id"]

    listed = await client.get(
        "/budgets", params={"year": 2025, "month": 3}, headers=auth(manager)
    )
    assert [b["amount"] for b in listed.json()["data"]] == [15_000]

    refused = await client.put("/budgets", json=body, headers=auth(manager))
    assert refused.status_code == 403


@pytest.mark.asyncio
async def test_budget_criteria_roundtrip(client, factory, auth):
    company = await factory.company()
    admin = await factory.user(company, UserRole.ADMIN)

    missing = await client.get("/budgets/criteria", headers=auth(admin))
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "BUDGET_CRITERIA_NOT_FOUND"

    for amount in (30_000, 25_000):
        saved = await client.put("/budgets/criteria", json={"amount": amount}, headers=auth(admin))
        assert saved.status_code == 200
        data = saved.json()["data"]
        assert (data["company_id"], data["amount"]) == (company.id, amount)

    current = await client.get("/budgets/criteria", headers=auth(admin))
    assert current.json()["data"]["amount"] == 25_000


# ── Refresh tokens ──────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_refresh_token_rotates_and_logout_revokes(client):
    registered = await client.post("/auth/register-admin", json=REGISTER_BODY)
    first = registered.json()["data"]["refresh_token"]

    rotated = await client.post("/auth/refresh", json={"refresh_token": first})
    assert rotated.status_code == 200
    second = rotated.json()["data"]["refresh_token"]
    assert second != first
    me = await client.get("/auth/me", headers=bearer(rotated.json()["data"]["access_token"]))
    assert me.json()["data"]["email"] == "owner@acme.io"

    reused = await client.post("/auth/refresh", json={"refresh_token": first})
    assert reused.status_code == 401
    assert reused.json()["error"]["code"] == "AUTH_INVALID_TOKEN"

    logged_out = await client.post(
        "/auth/logout", headers=bearer(rotated.json()["data"]["access_token"])
    )
    assert logged_out.status_code == 200
    revoked = await client.post("/auth/refresh", json={"refresh_token": second})
    assert revoked.status_code == 401


@pytest.mark.asyncio
async def test_expired_refresh_token_is_refused(client, session_factory):
    await client.post("/auth/register-admin", json=REGISTER_BODY)
    login = await client.post(
        "/auth/login", json={"email": "owner@acme.io", "password": "supersecret1"}
    )
    refresh_token = login.json()["data"]["refresh_token"]

    async with session_factory() as session:
        users = TenantAwareDataAccess(session).table(User)
        await users.update_many(
            {"email": "owner@acme.io"},
            {"refresh_token_expires_at": utcnow() - timedelta(minutes=1)},
        )
        await session.commit()

    expired = await client.post("/auth/refresh", json={"refresh_token": refresh_token})
    assert expired.status_code == 401
    assert expired.json()["error"]["code"] == "AUTH_TOKEN_EXPIRED"
