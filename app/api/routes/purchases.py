"""
api/routes/purchases.py
-----------------------
Purchase requests.

POST  /purchases/requests               — Cart-backed request (budget pre-check).
POST  /purchases/requests/urgent        — Same, without the pre-check.
POST  /purchases/now                    — Immediate purchase (ADMIN).
PATCH /purchases/requests/{id}/approve  — MANAGER+.
PATCH /purchases/requests/{id}/reject   — MANAGER+, reason required.
PATCH /purchases/requests/{id}/cancel   — Requester only.
GET   /purchases/my, /purchases/my/{id} — Caller's own requests.
GET   /purchases                        — All company purchases (MANAGER+).
GET   /purchases/requests               — Requests by status (MANAGER+).
GET   /purchases/statistics             — Spend summary (MANAGER+).
GET   /purchases/dashboard              — Summary, top products, trend (MANAGER+).
"""

from fastapi import APIRouter, Depends, Query, status

from app.core.responses import paginated, success
from app.dependencies import Admin, AnyMember, DataAccess, Manager, require_tenant
from app.models.purchase import PurchaseStatus
from app.schemas.purchase import (
    PurchaseNowCreate,
    PurchaseRequestCreate,
    PurchaseRequestDetail,
    PurchaseSortField,
    RejectBody,
    SortOrder,
)
from app.services.purchase_service import PurchaseService

router = APIRouter(
    prefix="/purchases", tags=["Purchases"], dependencies=[Depends(require_tenant)]
)


def _read(request) -> PurchaseRequestDetail:
    return PurchaseRequestDetail.model_validate(request)


# ── Requests ────────────────────────────────────────────────────────────────

@router.post("/requests", status_code=status.HTTP_201_CREATED, summary="Request a purchase")
async def create_request(
    body: PurchaseRequestCreate, principal: AnyMember, data: DataAccess
) -> dict:
    request = await PurchaseService.create_from_cart(
        data.session, principal.company_id, principal.id, body
    )
    return success(_read(request), "Purchase requested")


@router.post(
    "/requests/urgent",
    status_code=status.HTTP_201_CREATED,
    summary="Request a purchase without the budget pre-check",
)
async def create_urgent_request(
    body: PurchaseRequestCreate, principal: AnyMember, data: DataAccess
) -> dict:
    request = await PurchaseService.create_from_cart(
        data.session, principal.company_id, principal.id, body, check_budget=False
    )
    return success(_read(request), "Urgent purchase requested")


@router.post("/now", status_code=status.HTTP_201_CREATED, summary="Purchase immediately")
async def purchase_now(body: PurchaseNowCreate, admin: Admin, data: DataAccess) -> dict:
    request = await PurchaseService.purchase_now(
        data.session, admin.company_id, admin.id, body
    )
    return success(_read(request), "Purchase completed")


@router.patch("/requests/{request_id}/approve", summary="Approve a request")
async def approve_request(request_id: str, principal: Manager, data: DataAccess) -> dict:
    request = await PurchaseService.approve(data.session, principal.id, request_id)
    return success(_read(request), "Purchase request approved")


@router.patch("/requests/{request_id}/reject", summary="Reject a request")
async def reject_request(
    request_id: str, body: RejectBody, principal: Manager, data: DataAccess
) -> dict:
    request = await PurchaseService.reject(data.session, principal.id, request_id, body.reason)
    return success(_read(request), "Purchase request rejected")


@router.patch("/requests/{request_id}/cancel", summary="Cancel own request")
async def cancel_request(request_id: str, principal: AnyMember, data: DataAccess) -> dict:
    request = await PurchaseService.cancel(data.session, principal.id, request_id)
    return success(_read(request), "Purchase request cancelled")


# ── Reads ───────────────────────────────────────────────────────────────────

@router.get("/my", summary="List own purchase requests")
async def list_my_purchases(
    principal: AnyMember,
    data: DataAccess,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    sort_by: PurchaseSortField = Query(default=PurchaseSortField.CREATED_AT, alias="sortBy"),
    order: SortOrder = Query(default=SortOrder.DESC),
    status_filter: PurchaseStatus | None = Query(default=None, alias="status"),
) -> dict:
    total, rows = await PurchaseService.list_my(
        data.session, principal.id, page, limit, sort_by, order, status_filter
    )
    return paginated([_read(r) for r in rows], page, limit, total)


@router.get("/my/{request_id}", summary="Own purchase request detail")
async def get_my_purchase(request_id: str, principal: AnyMember, data: DataAccess) -> dict:
    request = await PurchaseService.get_my_detail(data.session, principal.id, request_id)
    return success(_read(request))


@router.get("", summary="List all company purchases")
async def list_all_purchases(
    principal: Manager,
    data: DataAccess,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    sort_by: PurchaseSortField = Query(default=PurchaseSortField.CREATED_AT, alias="sortBy"),
    order: SortOrder = Query(default=SortOrder.DESC),
) -> dict:
    total, rows = await PurchaseService.list_all(
        data.session, principal.company_id, page, limit, sort_by, order
    )
    return paginated([_read(r) for r in rows], page, limit, total)


@router.get("/requests", summary="List purchase requests by status")
async def list_purchase_requests(
    principal: Manager,
    data: DataAccess,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    status_filter: PurchaseStatus = Query(default=PurchaseStatus.PENDING, alias="status"),
) -> dict:
    total, rows = await PurchaseService.list_requests(
        data.session, principal.company_id, page, limit, status_filter
    )
    return paginated([_read(r) for r in rows], page, limit, total)


@router.get("/statistics", summary="Spend statistics")
async def purchase_statistics(principal: Manager, data: DataAccess) -> dict:
    return success(await PurchaseService.statistics(data.session, principal.company_id))


@router.get("/dashboard", summary="Purchase dashboard")
async def purchase_dashboard(principal: Manager, data: DataAccess) -> dict:
    return success(await PurchaseService.dashboard(data.session, principal.company_id))
