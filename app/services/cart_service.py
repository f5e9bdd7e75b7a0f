"""
services/cart_service.py
------------------------
Per-user cart. Rows are owned by user_id; products must be active and
visible through the caller's tenant scope when they are added.
"""

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.exceptions import NotFound
from app.core.logging import get_logger
from app.db.session import atomic
from app.db.tenant_access import TenantAwareDataAccess
from app.models.cart import CartItem
from app.models.product import Product

logger = get_logger(__name__)


class CartService:

    @staticmethod
    async def _get_item(data: TenantAwareDataAccess, user_id: str, item_id: str) -> CartItem:
        item = await data.table(CartItem).find_one(
            {"id": item_id, "user_id": user_id},
            options=[selectinload(CartItem.product)],
            refresh=True,
        )
        if item is None:
            raise NotFound("Cart item not found", code="CART_ITEM_NOT_FOUND")
        return item

    @staticmethod
    async def add_item(db: AsyncSession, user_id: str, product_id: int, quantity: int) -> CartItem:
        """Add a product, or increase its quantity when already in the cart."""
        data = TenantAwareDataAccess(db)
        product = await data.table(Product).find_one({"id": product_id, "is_active": True})
        if product is None:
            raise NotFound("Product not found", code="PRODUCT_NOT_FOUND")

        carts = data.table(CartItem)
        async with atomic(db):
            updated = await carts.update_many(
                {"user_id": user_id, "product_id": product_id},
                {"quantity": CartItem.quantity + quantity},
            )
            if updated == 0:
                await carts.create(
                    {"user_id": user_id, "product_id": product_id, "quantity": quantity}
                )

        item = await carts.find_one(
            {"user_id": user_id, "product_id": product_id},
            options=[selectinload(CartItem.product)],
            refresh=True,
        )
        logger.info("Cart item saved", product_id=product_id, quantity=item.quantity)
        return item

    @staticmethod
    async def list_items(
        db: AsyncSession, user_id: str, page: int, limit: int
    ) -> tuple[int, list[CartItem], dict]:
        carts = TenantAwareDataAccess(db).table(CartItem)
        total = await carts.count({"user_id": user_id})
        items = await carts.find_many(
            {"user_id": user_id},
            order_by=[CartItem.created_at.desc(), CartItem.id],
            offset=(page - 1) * limit,
            limit=limit,
            options=[selectinload(CartItem.product)],
        )
        total_quantity, total_price = await carts.aggregate(
            func.coalesce(func.sum(CartItem.quantity), 0),
            func.coalesce(func.sum(CartItem.quantity * Product.price), 0),
            where={"user_id": user_id},
            joins=[CartItem.product],
        )
        summary = {
            "page_subtotal": sum(item.quantity * item.product.price for item in items),
            "total_quantity": int(total_quantity),
            "total_price": int(total_price),
        }
        return total, items, summary

    @staticmethod
    async def update_quantity(db: AsyncSession, user_id: str, item_id: str, quantity: int) -> CartItem:
        data = TenantAwareDataAccess(db)
        async with atomic(db):
            updated = await data.table(CartItem).update_many(
                {"id": item_id, "user_id": user_id}, {"quantity": quantity}
            )
            if updated == 0:
                raise NotFound("Cart item not found", code="CART_ITEM_NOT_FOUND")
        return await CartService._get_item(data, user_id, item_id)

    @staticmethod
    async def remove_item(db: AsyncSession, user_id: str, item_id: str) -> None:
        carts = TenantAwareDataAccess(db).table(CartItem)
        async with atomic(db):
            deleted = await carts.delete_many({"id": item_id, "user_id": user_id})
            if deleted == 0:
                raise NotFound("Cart item not found", code="CART_ITEM_NOT_FOUND")

    @staticmethod
    async def remove_items(db: AsyncSession, user_id: str, item_ids: list[str]) -> int:
        """All ids must belong to the caller's cart, otherwise nothing is removed."""
        ids = list(dict.fromkeys(item_ids))
        carts = TenantAwareDataAccess(db).table(CartItem)
        async with atomic(db):
            owned = await carts.count({"id": ids, "user_id": user_id})
            if owned != len(ids):
                raise NotFound("Some cart items were not found", code="CART_ITEM_NOT_FOUND")
            deleted = await carts.delete_many({"id": ids, "user_id": user_id})
        logger.info("Cart items removed", count=deleted)
        return deleted
