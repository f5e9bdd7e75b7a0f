"""
api/routes/wishlist.py
----------------------
The caller's saved products.

POST   /wishlist/{product_id}  — Save a product (200 if it was already saved).
GET    /wishlist/my            — Paginated, newest first by default.
DELETE /wishlist/{product_id}  — Remove a saved product.
"""

from fastapi import APIRouter, Depends, Path, Query, Response, status

from app.core.responses import paginated, success
from app.dependencies import AnyMember, DataAccess, require_tenant
from app.schemas.purchase import SortOrder
from app.schemas.wishlist import WishlistItemRead
from app.services.wishlist_service import WishlistService

router = APIRouter(prefix="/wishlist", tags=["Wishlist"], dependencies=[Depends(require_tenant)])


@router.post("/{product_id}", status_code=status.HTTP_201_CREATED, summary="Save a product")
async def add_to_wishlist(
    response: Response,
    principal: AnyMember,
    data: DataAccess,
    product_id: int = Path(..., gt=0),
) -> dict:
    item, created = await WishlistService.add(
        data.session, principal.company_id, principal.id, product_id
    )
    if not created:
        response.status_code = status.HTTP_200_OK
    return success(
        WishlistItemRead.model_validate(item),
        "Added to wishlist" if created else "Already in wishlist",
    )


@router.get("/my", summary="List saved products")
async def list_my_wishlist(
    principal: AnyMember,
    data: DataAccess,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    order: SortOrder = Query(default=SortOrder.DESC),
) -> dict:
    total, items = await WishlistService.list_my(data.session, principal.id, page, limit, order)
    return paginated([WishlistItemRead.model_validate(i) for i in items], page, limit, total)


@router.delete("/{product_id}", summary="Remove a saved product")
async def remove_from_wishlist(
    principal: AnyMember,
    data: DataAccess,
    product_id: int = Path(..., gt=0),
) -> dict:
    await WishlistService.remove(data.session, principal.id, product_id)
    return success(None, "Removed from wishlist")
