"""Wishlist: tenant-scoped saved products."""

import pytest

from app.core.exceptions import InvalidInput, NotFound
from app.core.tenant_context import TenantContext, tenant_scope
from app.db.tenant_access import TenantAwareDataAccess
from app.models import UserRole, WishlistItem
from app.schemas.purchase import SortOrder
from app.services.wishlist_service import WishlistService


def scope(user):
    return tenant_scope(TenantContext(company_id=user.company_id, user_id=user.id))


@pytest.mark.asyncio
async def test_add_is_idempotent(db, factory):
    company = await factory.company()
    user = await factory.user(company)
    product = await factory.product(company)

    with scope(user):
        item, created = await WishlistService.add(db, company.id, user.id, product.id)
        again, created_again = await WishlistService.add(db, company.id, user.id, product.id)

    assert (created, created_again) == (True, False)
    assert again.id == item.id
    assert item.company_id == company.id
    assert item.product.name == product.name
    assert await TenantAwareDataAccess(db).table(WishlistItem).count() == 1


@pytest.mark.asyncio
async def test_add_refuses_foreign_and_inactive_products(db, factory):
    company = await factory.company()
    user = await factory.user(company)
    foreign = await factory.product(await factory.company("Other"))
    retired = await factory.product(company, is_active=False)

    with scope(user):
        with pytest.raises(NotFound) as exc_info:
            await WishlistService.add(db, company.id, user.id, foreign.id)
        assert exc_info.value.code == "PRODUCT_NOT_FOUND"
        with pytest.raises(InvalidInput) as exc_info:
            await WishlistService.add(db, company.id, user.id, retired.id)
        assert exc_info.value.code == "PRODUCT_INACTIVE"


@pytest.mark.asyncio
async def test_list_is_per_user_and_sorted(db, factory):
    company = await factory.company()
    user = await factory.user(company)
    colleague = await factory.user(company)
    first = await factory.product(company, name="First")
    second = await factory.product(company, name="Second")

    with scope(user):
        await WishlistService.add(db, company.id, user.id, first.id)
        await WishlistService.add(db, company.id, user.id, second.id)
    with scope(colleague):
        await WishlistService.add(db, company.id, colleague.id, first.id)

    with scope(user):
        total, newest_first = await WishlistService.list_my(db, user.id, 1, 10)
        _, oldest_first = await WishlistService.list_my(db, user.id, 1, 10, SortOrder.ASC)

    assert total == 2
    assert [i.product_id for i in newest_first] == [second.id, first.id]
    assert [i.product_id for i in oldest_first] == [first.id, second.id]


@pytest.mark.asyncio
async def test_remove(db, factory):
    company = await factory.company()
    user = await factory.user(company)
    product = await factory.product(company)

    with scope(user):
        await WishlistService.add(db, company.id, user.id, product.id)
        await WishlistService.remove(db, user.id, product.id)
        with pytest.raises(NotFound) as exc_info:
            await WishlistService.remove(db, user.id, product.id)
    assert exc_info.value.code == "WISHLIST_ITEM_NOT_FOUND"


@pytest.mark.asyncio
async def test_wishlist_endpoints(client, factory, auth):
    company = await factory.company()
    user = await factory.user(company, UserRole.USER)
    product = await factory.product(company, price=700)

    created = await client.post(f"/wishlist/{product.id}", headers=auth(user))
    assert created.status_code == 201
    assert created.json()["data"]["product"]["price"] == 700

    repeated = await client.post(f"/wishlist/{product.id}", headers=auth(user))
    assert repeated.status_code == 200

    listed = await client.get("/wishlist/my", headers=auth(user))
    assert listed.json()["pagination"]["total"] == 1
    assert [i["product_id"] for i in listed.json()["data"]] == [product.id]

    removed = await client.delete(f"/wishlist/{product.id}", headers=auth(user))
    assert removed.status_code == 200
    missing = await client.delete(f"/wishlist/{product.id}", headers=auth(user))
    assert missing.status_code == 404
