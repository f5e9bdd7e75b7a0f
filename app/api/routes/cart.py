"""
api/routes/cart.py
------------------
The caller's cart.

POST   /cart              — Add a product (quantity is added when present).
GET    /cart              — Paginated items plus page and cart totals.
PATCH  /cart/{id}         — Set quantity.
DELETE /cart/{id}         — Remove one item.
POST   /cart/bulk-delete  — Remove several items, all or nothing.
"""

from fastapi import APIRouter, Depends, Query, status

from app.core.responses import paginated, success
from app.dependencies import AnyMember, DataAccess, require_tenant
from app.schemas.cart import CartBulkDelete, CartItemAdd, CartItemRead, CartItemUpdate, CartSummary
from app.services.cart_service import CartService

router = APIRouter(prefix="/cart", tags=["Cart"], dependencies=[Depends(require_tenant)])


@router.post("", status_code=status.HTTP_201_CREATED, summary="Add to cart")
async def add_to_cart(body: CartItemAdd, principal: AnyMember, data: DataAccess) -> dict:
    item = await CartService.add_item(data.session, principal.id, body.product_id, body.quantity)
    return success(CartItemRead.model_validate(item), "Added to cart")


@router.get("", summary="List cart items")
async def list_cart(
    principal: AnyMember,
    data: DataAccess,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
) -> dict:
    total, items, summary = await CartService.list_items(data.session, principal.id, page, limit)
    body = paginated([CartItemRead.model_validate(i) for i in items], page, limit, total)
    body["summary"] = CartSummary(**summary).model_dump()
    return body


@router.patch("/{item_id}", summary="Change quantity")
async def update_cart_item(
    item_id: str, body: CartItemUpdate, principal: AnyMember, data: DataAccess
) -> dict:
    item = await CartService.update_quantity(data.session, principal.id, item_id, body.quantity)
    return success(CartItemRead.model_validate(item), "Cart updated")


@router.delete("/{item_id}", summary="Remove from cart")
async def remove_cart_item(item_id: str, principal: AnyMember, data: DataAccess) -> dict:
    await CartService.remove_item(data.session, principal.id, item_id)
    return success(None, "Removed from cart")


@router.post("/bulk-delete", summary="Remove several cart items")
async def bulk_remove_cart_items(
    body: CartBulkDelete, principal: AnyMember, data: DataAccess
) -> dict:
    deleted = await CartService.remove_items(data.session, principal.id, body.ids)
    return success({"deleted_count": deleted}, "Removed from cart")
