"""
services/purchase_service.py
----------------------------
PurchaseRequestWorkflow: PENDING → APPROVED | REJECTED | CANCELLED.

Rules enforced here:
  - Every transition is one conditional UPDATE naming status='PENDING'.
    Zero affected rows means another decider got there first, reported as
    AlreadyProcessed (409), never as a crash.
  - Approval flips the status and debits the month's budget in the same
    transaction. If the debit is refused the flip is rolled back and the
    request stays PENDING.
  - Cart-backed creation (request + items + cart cleanup) commits as one
    unit. Unit prices are copied into price_snapshot and never recomputed.
  - Notifications are sent after commit; a fan-out failure is logged and
    does not undo the business action.
"""

from datetime import datetime, timezone

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.exceptions import (
    AlreadyProcessed,
    Forbidden,
    InsufficientBudget,
    InvalidInput,
    NotFound,
)
from app.core.logging import get_logger
from app.db.base import utcnow
from app.db.session import atomic
from app.db.tenant_access import ScopedTable, TenantAwareDataAccess
from app.models.cart import CartItem
from app.models.product import Product
from app.models.purchase import PurchaseItem, PurchaseRequest, PurchaseStatus
from app.schemas.purchase import (
    PurchaseItemIn,
    PurchaseNowCreate,
    PurchaseRequestCreate,
    PurchaseSortField,
    SortOrder,
)
from app.services.budget_service import (
    BudgetLedger,
    current_period,
    next_period,
    previous_period,
)
from app.services.notification_service import notification_service

logger = get_logger(__name__)

SORT_COLUMNS = {
    PurchaseSortField.CREATED_AT: PurchaseRequest.created_at,
    PurchaseSortField.UPDATED_AT: PurchaseRequest.updated_at,
    PurchaseSortField.TOTAL_PRICE: PurchaseRequest.total_price,
}

DETAIL_OPTIONS = (
    selectinload(PurchaseRequest.items).selectinload(PurchaseItem.product),
    selectinload(PurchaseRequest.requester),
    selectinload(PurchaseRequest.approver),
)

TOP_PRODUCTS_LIMIT = 5
TREND_MONTHS = 12


def _month_start(year: int, month: int) -> datetime:
    return datetime(year, month, 1, tzinfo=timezone.utc)


class PurchaseService:

    # ── Helpers ──────────────────────────────────────────────────────────────

    @staticmethod
    async def _load_products(
        data: TenantAwareDataAccess, items: list[PurchaseItemIn]
    ) -> dict[int, Product]:
        """Active products of the caller's company, keyed by id. All must exist."""
        ids = [item.product_id for item in items]
        products = await data.table(Product).find_many({"id": ids, "is_active": True})
        found = {product.id: product for product in products}
        missing = [pid for pid in ids if pid not in found]
        if missing:
            raise InvalidInput(
                "Some products do not exist or belong to another company",
                code="PURCHASE_INVALID_PRODUCTS",
                details={"product_ids": missing},
            )
        return found

    @staticmethod
    def _build_items(
        items: list[PurchaseItemIn], products: dict[int, Product]
    ) -> tuple[int, list[PurchaseItem]]:
        total = 0
        rows = []
        for item in items:
            price = products[item.product_id].price
            total += price * item.quantity
            rows.append(
                PurchaseItem(
                    product_id=item.product_id,
                    quantity=item.quantity,
                    price_snapshot=price,
                )
            )
        return total, rows

    @staticmethod
    async def _clear_cart(data: TenantAwareDataAccess, user_id: str) -> int:
        return await data.table(CartItem).delete_many({"user_id": user_id})

    @staticmethod
    async def _transition(
        requests: ScopedTable[PurchaseRequest],
        request_id: str,
        target: PurchaseStatus,
        match: dict | None = None,
        **values,
    ) -> None:
        where = {"id": request_id, "status": PurchaseStatus.PENDING.value, **(match or {})}
        updated = await requests.update_many(
            where, {"status": target.value, "updated_at": utcnow(), **values}
        )
        if updated == 0:
            raise AlreadyProcessed()

    @staticmethod
    async def _get_pending(
        requests: ScopedTable[PurchaseRequest], request_id: str
    ) -> PurchaseRequest:
        request = await requests.find_one({"id": request_id})
        if request is None:
            raise NotFound("Purchase request not found", code="PURCHASE_NOT_FOUND")
        if request.status != PurchaseStatus.PENDING.value:
            raise AlreadyProcessed(details={"status": request.status})
        return request

    @staticmethod
    async def get_detail(db: AsyncSession, request_id: str, **where) -> PurchaseRequest:
        request = await TenantAwareDataAccess(db).table(PurchaseRequest).find_one(
            {"id": request_id, **where}, options=DETAIL_OPTIONS, refresh=True
        )
        if request is None:
            raise NotFound("Purchase request not found", code="PURCHASE_NOT_FOUND")
        return request

    @staticmethod
    async def _fan_out(coro) -> None:
        try:
            await coro
        except Exception:
            logger.error("Notification fan-out failed", exc_info=True)

    # ── Creation ─────────────────────────────────────────────────────────────

    @staticmethod
    async def create_from_cart(
        db: AsyncSession,
        company_id: str,
        user_id: str,
        body: PurchaseRequestCreate,
        *,
        check_budget: bool = True,
    ) -> PurchaseRequest:
        """
        Turn the caller's cart into a PENDING request. The requested items
        must equal the whole cart, product for product and quantity for
        quantity; the cart is emptied in the same transaction.
        """
        data = TenantAwareDataAccess(db)
        requested = {item.product_id: item.quantity for item in body.items}

        cart_rows = await data.table(CartItem).find_many({"user_id": user_id})
        in_cart = {row.product_id: row.quantity for row in cart_rows}
        mismatched = [
            {"product_id": pid, "requested": requested.get(pid), "in_cart": in_cart.get(pid)}
            for pid in sorted(requested.keys() | in_cart.keys())
            if requested.get(pid) != in_cart.get(pid)
        ]
        if mismatched:
            raise InvalidInput(
                "Requested items do not match the cart",
                code="PURCHASE_CART_MISMATCH",
                details=mismatched,
            )

        products = await PurchaseService._load_products(data, body.items)
        total_price, items = PurchaseService._build_items(body.items, products)

        if check_budget:
            await BudgetLedger.check_pre_purchase(
                db, company_id, total_price + body.shipping_fee
            )

        async with atomic(db):
            request = await data.table(PurchaseRequest).create(
                {
                    "company_id": company_id,
                    "requester_id": user_id,
                    "status": PurchaseStatus.PENDING.value,
                    "total_price": total_price,
                    "shipping_fee": body.shipping_fee,
                    "request_message": body.request_message,
                    "items": items,
                }
            )
            await PurchaseService._clear_cart(data, user_id)

        logger.info(
            "Purchase request created",
            purchase_request_id=request.id,
            total_price=total_price,
            items=len(items),
            budget_checked=check_budget,
        )
        await PurchaseService._fan_out(
            notification_service.notify_purchase_requested(
                db, company_id, user_id, request.id
            )
        )
        return await PurchaseService.get_detail(db, request.id)

    @staticmethod
    async def purchase_now(
        db: AsyncSession, company_id: str, user_id: str, body: PurchaseNowCreate
    ) -> PurchaseRequest:
        """
        Immediate purchase: created APPROVED with approver = requester and
        the budget debited in the same transaction.
        """
        data = TenantAwareDataAccess(db)
        products = await PurchaseService._load_products(data, body.items)
        total_price, items = PurchaseService._build_items(body.items, products)
        order_total = total_price + body.shipping_fee
        year, month = current_period()

        async with atomic(db):
            if not await BudgetLedger.try_debit(db, company_id, year, month, order_total):
                raise InsufficientBudget(details={"order_total": order_total})
            request = await data.table(PurchaseRequest).create(
                {
                    "company_id": company_id,
                    "requester_id": user_id,
                    "approver_id": user_id,
                    "status": PurchaseStatus.APPROVED.value,
                    "total_price": total_price,
                    "shipping_fee": body.shipping_fee,
                    "items": items,
                }
            )

        logger.info("Immediate purchase recorded", purchase_request_id=request.id, order_total=order_total)
        return await PurchaseService.get_detail(db, request.id)

    # ── Decisions ────────────────────────────────────────────────────────────

    @staticmethod
    async def approve(db: AsyncSession, approver_id: str, request_id: str) -> PurchaseRequest:
        requests = TenantAwareDataAccess(db).table(PurchaseRequest)
        request = await PurchaseService._get_pending(requests, request_id)
        company_id, requester_id, order_total = (
            request.company_id,
            request.requester_id,
            request.order_total,
        )
        year, month = current_period()

        async with atomic(db):
            await PurchaseService._transition(
                requests, request_id, PurchaseStatus.APPROVED, approver_id=approver_id
            )
            if not await BudgetLedger.try_debit(db, company_id, year, month, order_total):
                raise InsufficientBudget(
                    "Insufficient budget to approve this request",
                    details={"order_total": order_total},
                )

        logger.info("Purchase request approved", purchase_request_id=request_id, approver_id=approver_id)
        await PurchaseService._fan_out(
            notification_service.notify_purchase_approved(db, requester_id, request_id)
        )
        return await PurchaseService.get_detail(db, request_id)

    @staticmethod
    async def reject(
        db: AsyncSession, approver_id: str, request_id: str, reason: str
    ) -> PurchaseRequest:
        if not reason or not reason.strip():
            raise InvalidInput("A rejection reason is required")
        requests = TenantAwareDataAccess(db).table(PurchaseRequest)
        request = await PurchaseService._get_pending(requests, request_id)
        requester_id = request.requester_id

        async with atomic(db):
            await PurchaseService._transition(
                requests,
                request_id,
                PurchaseStatus.REJECTED,
                approver_id=approver_id,
                reject_reason=reason.strip(),
            )

        logger.info("Purchase request rejected", purchase_request_id=request_id, approver_id=approver_id)
        await PurchaseService._fan_out(
            notification_service.notify_purchase_denied(db, requester_id, request_id)
        )
        return await PurchaseService.get_detail(db, request_id)

    @staticmethod
    async def cancel(db: AsyncSession, user_id: str, request_id: str) -> PurchaseRequest:
        requests = TenantAwareDataAccess(db).table(PurchaseRequest)
        request = await PurchaseService._get_pending(requests, request_id)
        if request.requester_id != user_id:
            raise Forbidden("Only the requester can cancel this request")

        async with atomic(db):
            await PurchaseService._transition(
                requests,
                request_id,
                PurchaseStatus.CANCELLED,
                match={"requester_id": user_id},
            )

        logger.info("Purchase request cancelled", purchase_request_id=request_id)
        return await PurchaseService.get_detail(db, request_id)

    # ── Listings ─────────────────────────────────────────────────────────────

    @staticmethod
    async def _page(
        db: AsyncSession,
        where: dict,
        page: int,
        limit: int,
        sort_by: PurchaseSortField = PurchaseSortField.CREATED_AT,
        order: SortOrder = SortOrder.DESC,
    ) -> tuple[int, list[PurchaseRequest]]:
        requests = TenantAwareDataAccess(db).table(PurchaseRequest)
        column = SORT_COLUMNS[sort_by]
        direction = column.asc() if order == SortOrder.ASC else column.desc()
        total = await requests.count(where)
        rows = await requests.find_many(
            where,
            order_by=[direction, PurchaseRequest.id.desc()],
            offset=(page - 1) * limit,
            limit=limit,
            options=DETAIL_OPTIONS,
        )
        return total, rows

    @staticmethod
    async def list_my(
        db: AsyncSession,
        user_id: str,
        page: int,
        limit: int,
        sort_by: PurchaseSortField = PurchaseSortField.CREATED_AT,
        order: SortOrder = SortOrder.DESC,
        status: PurchaseStatus | None = None,
    ) -> tuple[int, list[PurchaseRequest]]:
        where: dict = {"requester_id": user_id}
        if status is not None:
            where["status"] = status.value
        return await PurchaseService._page(db, where, page, limit, sort_by, order)

    @staticmethod
    async def get_my_detail(db: AsyncSession, user_id: str, request_id: str) -> PurchaseRequest:
        return await PurchaseService.get_detail(db, request_id, requester_id=user_id)

    @staticmethod
    async def list_all(
        db: AsyncSession,
        company_id: str,
        page: int,
        limit: int,
        sort_by: PurchaseSortField = PurchaseSortField.CREATED_AT,
        order: SortOrder = SortOrder.DESC,
    ) -> tuple[int, list[PurchaseRequest]]:
        return await PurchaseService._page(
            db, {"company_id": company_id}, page, limit, sort_by, order
        )

    @staticmethod
    async def list_requests(
        db: AsyncSession,
        company_id: str,
        page: int,
        limit: int,
        status: PurchaseStatus | None = PurchaseStatus.PENDING,
    ) -> tuple[int, list[PurchaseRequest]]:
        where: dict = {"company_id": company_id}
        if status is not None:
            where["status"] = status.value
        return await PurchaseService._page(db, where, page, limit)

    # ── Statistics ───────────────────────────────────────────────────────────

    @staticmethod
    async def _approved_spend(
        db: AsyncSession, company_id: str, start: datetime, end: datetime
    ) -> int:
        return await TenantAwareDataAccess(db).table(PurchaseRequest).sum(
            PurchaseRequest.total_price + PurchaseRequest.shipping_fee,
            {"company_id": company_id, "status": PurchaseStatus.APPROVED.value},
            criteria=[PurchaseRequest.updated_at >= start, PurchaseRequest.updated_at < end],
        )

    @staticmethod
    async def statistics(db: AsyncSession, company_id: str) -> dict:
        """Approved spend only. A request counts in the month it was approved."""
        year, month = current_period()
        last_year, last_month = previous_period(year, month)
        following = next_period(year, month)

        this_month = await PurchaseService._approved_spend(
            db, company_id, _month_start(year, month), _month_start(*following)
        )
        previous_month = await PurchaseService._approved_spend(
            db, company_id, _month_start(last_year, last_month), _month_start(year, month)
        )
        this_year = await PurchaseService._approved_spend(
            db, company_id, _month_start(year, 1), _month_start(year + 1, 1)
        )
        previous_year = await PurchaseService._approved_spend(
            db, company_id, _month_start(year - 1, 1), _month_start(year, 1)
        )
        remaining = await BudgetLedger.get_available(db, company_id, year, month)

        return {
            "this_month_spend": this_month,
            "last_month_spend": previous_month,
            "this_year_spend": this_year,
            "last_year_spend": previous_year,
            "this_month_budget": remaining + this_month,
            "remaining_budget": remaining,
        }

    @staticmethod
    async def top_products(db: AsyncSession, company_id: str, limit: int = TOP_PRODUCTS_LIMIT) -> list[dict]:
        quantity = func.sum(PurchaseItem.quantity)
        amount = func.sum(PurchaseItem.quantity * PurchaseItem.price_snapshot)
        rows = await TenantAwareDataAccess(db).table(PurchaseItem).group_by(
            [PurchaseItem.product_id, Product.name],
            [quantity.label("quantity"), amount.label("amount")],
            criteria=[
                PurchaseRequest.company_id == company_id,
                PurchaseRequest.status == PurchaseStatus.APPROVED.value,
            ],
            joins=[PurchaseItem.purchase_request, PurchaseItem.product],
            order_by=[quantity.desc(), PurchaseItem.product_id],
            limit=limit,
        )
        return [
            {
                "product_id": row.product_id,
                "name": row.name,
                "quantity": int(row.quantity),
                "amount": int(row.amount),
            }
            for row in rows
        ]

    @staticmethod
    async def monthly_trend(db: AsyncSession, company_id: str, months: int = TREND_MONTHS) -> list[dict]:
        year, month = current_period()
        periods = []
        for _ in range(months):
            periods.append((year, month))
            year, month = previous_period(year, month)

        trend = []
        for year, month in reversed(periods):
            spend = await PurchaseService._approved_spend(
                db,
                company_id,
                _month_start(year, month),
                _month_start(*next_period(year, month)),
            )
            trend.append({"year": year, "month": month, "spend": spend})
        return trend

    @staticmethod
    async def dashboard(db: AsyncSession, company_id: str) -> dict:
        return {
            "statistics": await PurchaseService.statistics(db, company_id),
            "top_products": await PurchaseService.top_products(db, company_id),
            "monthly_trend": await PurchaseService.monthly_trend(db, company_id),
        }
