"""
api/routes/budgets.py
---------------------
Monthly budgets (MANAGER+ read, ADMIN write).

PUT /budgets           — Upsert a month's budget.
GET /budgets           — List, optionally filtered by year / month.
PUT /budgets/criteria  — Upsert the monthly seeding template.
GET /budgets/criteria  — Read the template.
"""

from fastapi import APIRouter, Depends, Query

from app.core.exceptions import NotFound
from app.core.responses import success
from app.dependencies import Admin, DataAccess, Manager, require_tenant
from app.schemas.budget import BudgetCriteriaRead, BudgetCriteriaUpsert, BudgetRead, BudgetUpsert
from app.services.budget_service import BudgetLedger

router = APIRouter(prefix="/budgets", tags=["Budgets"], dependencies=[Depends(require_tenant)])


@router.put("", summary="Create or update a month's budget")
async def upsert_budget(body: BudgetUpsert, admin: Admin, data: DataAccess) -> dict:
    budget, created = await BudgetLedger.upsert_budget(
        data.session, admin.company_id, body.year, body.month, body.amount
    )
    return success(
        {"budget": BudgetRead.model_validate(budget), "created": created},
        "Budget created" if created else "Budget updated",
    )


@router.get("", summary="List budgets")
async def list_budgets(
    principal: Manager,
    data: DataAccess,
    year: int | None = Query(default=None, ge=2000, le=2100),
    month: int | None = Query(default=None, ge=1, le=12),
) -> dict:
    budgets = await BudgetLedger.list_budgets(data.session, principal.company_id, year, month)
    return success([BudgetRead.model_validate(b) for b in budgets])


@router.put("/criteria", summary="Set the monthly budget template")
async def upsert_criteria(body: BudgetCriteriaUpsert, admin: Admin, data: DataAccess) -> dict:
    criteria = await BudgetLedger.upsert_criteria(data.session, admin.company_id, body.amount)
    return success(BudgetCriteriaRead.model_validate(criteria), "Budget criteria saved")


@router.get("/criteria", summary="Get the monthly budget template")
async def get_criteria(principal: Manager, data: DataAccess) -> dict:
    criteria = await BudgetLedger.get_criteria(data.session, principal.company_id)
    if criteria is None:
        raise NotFound("Budget criteria not set", code="BUDGET_CRITERIA_NOT_FOUND")
    return success(BudgetCriteriaRead.model_validate(criteria))
