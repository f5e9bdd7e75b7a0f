"""
services/product_service.py
---------------------------
Company product catalog.

Products are soft-deleted. Sales counts come from APPROVED purchases only.
"""

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AppError, InvalidInput, NotFound
from app.core.logging import get_logger
from app.db.session import atomic
from app.db.tenant_access import TenantAwareDataAccess
from app.models.product import Category, Product
from app.models.purchase import PurchaseItem, PurchaseRequest, PurchaseStatus
from app.schemas.product import ProductCreate, ProductSort, ProductUpdate
from app.services.storage_service import storage_service

logger = get_logger(__name__)

ORDERINGS = {
    ProductSort.LATEST: [Product.created_at.desc(), Product.id.desc()],
    ProductSort.PRICE_ASC: [Product.price.asc(), Product.id.desc()],
    ProductSort.PRICE_DESC: [Product.price.desc(), Product.id.desc()],
}


class ProductService:

    @staticmethod
    async def list_categories(db: AsyncSession) -> list[Category]:
        return await TenantAwareDataAccess(db).table(Category).find_many(
            order_by=[Category.id]
        )

    @staticmethod
    async def sales_counts(db: AsyncSession, company_id: str, product_ids: list[int]) -> dict[int, int]:
        if not product_ids:
            return {}
        rows = await TenantAwareDataAccess(db).table(PurchaseItem).group_by(
            [PurchaseItem.product_id],
            [func.sum(PurchaseItem.quantity).label("quantity")],
            {"product_id": product_ids},
            criteria=[
                PurchaseRequest.company_id == company_id,
                PurchaseRequest.status == PurchaseStatus.APPROVED.value,
            ],
            joins=[PurchaseItem.purchase_request],
        )
        return {row.product_id: int(row.quantity) for row in rows}

    @staticmethod
    async def image_url(product: Product) -> str | None:
        if not product.image:
            return None
        try:
            return await storage_service.signed_url(product.image)
        except AppError as exc:
            logger.warning("Could not sign product image", product_id=product.id, error=exc.message)
            return None

    @staticmethod
    async def create_product(
        db: AsyncSession, company_id: str, user_id: str, body: ProductCreate
    ) -> Product:
        data = TenantAwareDataAccess(db)
        if await data.table(Category).find_one({"id": body.category_id}) is None:
            raise InvalidInput("Unknown category", code="PRODUCT_INVALID_CATEGORY")
        async with atomic(db):
            product = await data.table(Product).create(
                {**body.model_dump(), "company_id": company_id, "created_by_id": user_id}
            )
        logger.info("Product created", product_id=product.id, price=product.price)
        return product

    @staticmethod
    async def list_products(
        db: AsyncSession,
        company_id: str,
        page: int,
        limit: int,
        category_id: int | None = None,
        sort: ProductSort = ProductSort.LATEST,
    ) -> tuple[int, list[dict]]:
        products = TenantAwareDataAccess(db).table(Product)
        where: dict = {"company_id": company_id, "is_active": True}
        if category_id is not None:
            where["category_id"] = category_id

        total = await products.count(where)
        offset = (page - 1) * limit

        if sort == ProductSort.SALES:
            # Ranking needs every product's count before paging.
            rows = await products.find_many(where)
            sales = await ProductService.sales_counts(db, company_id, [p.id for p in rows])
            rows.sort(
                key=lambda p: (sales.get(p.id, 0), p.created_at, p.id), reverse=True
            )
            rows = rows[offset:offset + limit]
        else:
            rows = await products.find_many(
                where, order_by=ORDERINGS[sort], offset=offset, limit=limit
            )
            sales = await ProductService.sales_counts(db, company_id, [p.id for p in rows])

        items = []
        for product in rows:
            items.append(
                {
                    "product": product,
                    "sales_count": sales.get(product.id, 0),
                    "image_url": await ProductService.image_url(product),
                }
            )
        return total, items

    @staticmethod
    async def get_product(db: AsyncSession, product_id: int) -> Product:
        product = await TenantAwareDataAccess(db).table(Product).find_one(
            {"id": product_id, "is_active": True}
        )
        if product is None:
            raise NotFound("Product not found", code="PRODUCT_NOT_FOUND")
        return product

    @staticmethod
    async def get_detail(db: AsyncSession, company_id: str, product_id: int) -> dict:
        product = await ProductService.get_product(db, product_id)
        sales = await ProductService.sales_counts(db, company_id, [product.id])
        return {
            "product": product,
            "sales_count": sales.get(product.id, 0),
            "image_url": await ProductService.image_url(product),
        }

    @staticmethod
    async def update_product(db: AsyncSession, product_id: int, body: ProductUpdate) -> Product:
        data = TenantAwareDataAccess(db)
        changes = body.model_dump(exclude_unset=True)
        if not changes:
            raise InvalidInput("Nothing to update")
        if "category_id" in changes and (
            await data.table(Category).find_one({"id": changes["category_id"]}) is None
        ):
            raise InvalidInput("Unknown category", code="PRODUCT_INVALID_CATEGORY")

        product = await ProductService.get_product(db, product_id)
        async with atomic(db):
            for key, value in changes.items():
                setattr(product, key, value)
        logger.info("Product updated", product_id=product_id, fields=sorted(changes))
        return product

    @staticmethod
    async def delete_product(db: AsyncSession, product_id: int) -> None:
        products = TenantAwareDataAccess(db).table(Product)
        async with atomic(db):
            updated = await products.update_many(
                {"id": product_id, "is_active": True}, {"is_active": False}
            )
            if updated == 0:
                raise NotFound("Product not found", code="PRODUCT_NOT_FOUND")
        logger.info("Product deactivated", product_id=product_id)
