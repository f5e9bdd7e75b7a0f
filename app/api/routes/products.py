"""
api/routes/products.py
----------------------
Catalog endpoints.

GET    /categories        — All categories.
POST   /products          — Create (MANAGER+).
GET    /products          — Paginated list; category filter, sort.
GET    /products/{id}     — Detail with sales count and image URL.
PATCH  /products/{id}     — Update (MANAGER+).
DELETE /products/{id}     — Soft delete (MANAGER+).
"""

from fastapi import APIRouter, Depends, Query, status

from app.core.responses import paginated, success
from app.dependencies import AnyMember, DataAccess, Manager, require_tenant
from app.schemas.product import (
    CategoryRead,
    ProductCreate,
    ProductDetail,
    ProductRead,
    ProductSort,
    ProductUpdate,
)
from app.services.product_service import ProductService

router = APIRouter(tags=["Products"], dependencies=[Depends(require_tenant)])


def _detail(entry: dict) -> ProductDetail:
    return ProductDetail(
        **ProductRead.model_validate(entry["product"]).model_dump(),
        sales_count=entry["sales_count"],
        image_url=entry["image_url"],
    )


@router.get("/categories", summary="List categories")
async def list_categories(principal: AnyMember, data: DataAccess) -> dict:
    categories = await ProductService.list_categories(data.session)
    return success([CategoryRead.model_validate(c) for c in categories])


@router.post("/products", status_code=status.HTTP_201_CREATED, summary="Create a product")
async def create_product(body: ProductCreate, principal: Manager, data: DataAccess) -> dict:
    product = await ProductService.create_product(
        data.session, principal.company_id, principal.id, body
    )
    return success(ProductRead.model_validate(product), "Product created")


@router.get("/products", summary="List products")
async def list_products(
    principal: AnyMember,
    data: DataAccess,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    category_id: int | None = Query(default=None, alias="categoryId", gt=0),
    sort: ProductSort = Query(default=ProductSort.LATEST),
) -> dict:
    total, entries = await ProductService.list_products(
        data.session, principal.company_id, page, limit, category_id=category_id, sort=sort
    )
    return paginated([_detail(e) for e in entries], page, limit, total)


@router.get("/products/{product_id}", summary="Product detail")
async def get_product(product_id: int, principal: AnyMember, data: DataAccess) -> dict:
    entry = await ProductService.get_detail(data.session, principal.company_id, product_id)
    return success(_detail(entry))


@router.patch("/products/{product_id}", summary="Update a product")
async def update_product(
    product_id: int, body: ProductUpdate, principal: Manager, data: DataAccess
) -> dict:
    product = await ProductService.update_product(data.session, product_id, body)
    return success(ProductRead.model_validate(product), "Product updated")


@router.delete("/products/{product_id}", summary="Soft-delete a product")
async def delete_product(product_id: int, principal: Manager, data: DataAccess) -> dict:
    await ProductService.delete_product(data.session, product_id)
    return success(None, "Product deleted")
