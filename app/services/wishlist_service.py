"""
services/wishlist_service.py
----------------------------
Saved products. Only active products of the caller's company can be saved;
saving the same product twice returns the existing row.
"""

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.exceptions import InvalidInput, NotFound
from app.core.logging import get_logger
from app.db.session import atomic
from app.db.tenant_access import TenantAwareDataAccess
from app.models.product import Product
from app.models.wishlist import WishlistItem
from app.schemas.purchase import SortOrder

logger = get_logger(__name__)


class WishlistService:

    @staticmethod
    async def add(
        db: AsyncSession, company_id: str, user_id: str, product_id: int
    ) -> tuple[WishlistItem, bool]:
        """Returns (item, created)."""
        data = TenantAwareDataAccess(db)
        product = await data.table(Product).find_one({"id": product_id})
        if product is None:
            raise NotFound("Product not found", code="PRODUCT_NOT_FOUND")
        if not product.is_active:
            raise InvalidInput("Product is no longer available", code="PRODUCT_INACTIVE")

        wishlist = data.table(WishlistItem)
        where = {"user_id": user_id, "product_id": product_id}
        options = [selectinload(WishlistItem.product)]
        existing = await wishlist.find_one(where, options=options)
        if existing is not None:
            return existing, False

        async with atomic(db):
            await wishlist.create({**where, "company_id": company_id})
        item = await wishlist.find_one(where, options=options, refresh=True)
        logger.info("Wishlist item added", product_id=product_id)
        return item, True

    @staticmethod
    async def list_my(
        db: AsyncSession,
        user_id: str,
        page: int,
        limit: int,
        order: SortOrder = SortOrder.DESC,
    ) -> tuple[int, list[WishlistItem]]:
        wishlist = TenantAwareDataAccess(db).table(WishlistItem)
        where = {"user_id": user_id}
        column = WishlistItem.created_at
        direction = column.asc() if order == SortOrder.ASC else column.desc()
        total = await wishlist.count(where)
        rows = await wishlist.find_many(
            where,
            order_by=[direction, WishlistItem.id],
            offset=(page - 1) * limit,
            limit=limit,
            options=[selectinload(WishlistItem.product)],
        )
        return total, rows

    @staticmethod
    async def remove(db: AsyncSession, user_id: str, product_id: int) -> None:
        wishlist = TenantAwareDataAccess(db).table(WishlistItem)
        async with atomic(db):
            deleted = await wishlist.delete_many({"user_id": user_id, "product_id": product_id})
            if deleted == 0:
                raise NotFound("Product is not in the wishlist", code="WISHLIST_ITEM_NOT_FOUND")
        logger.info("Wishlist item removed", product_id=product_id)
