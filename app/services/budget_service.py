"""
services/budget_service.py
--------------------------
BudgetLedger: per-company, per-month spending allowance.

  - get_available()      → stored amount for the period, 0 when no row.
  - try_debit()          → single conditional UPDATE
                           `amount = amount - X WHERE amount >= X`;
                           the row count says whether it happened.
                           Runs inside the caller's transaction.
  - seed_monthly()       → scheduler entry point. Runs with no tenant
                           context so it covers every company; existing
                           rows are skipped, never overwritten.
  - check_pre_purchase() → advisory check before a request is created.
                           The authoritative debit happens at approval.
"""

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import InsufficientBudget, InvalidInput
from app.core.logging import get_logger
from app.db.base import utcnow
from app.db.session import atomic
from app.db.tenant_access import TenantAwareDataAccess
from app.models.budget import Budget, BudgetCriteria
from app.models.user import User, UserRole
from app.services.email_service import email_service

logger = get_logger(__name__)


def current_period(now: datetime | None = None) -> tuple[int, int]:
    """(year, month) in UTC."""
    now = now or utcnow()
    return now.year, now.month


def previous_period(year: int, month: int) -> tuple[int, int]:
    if month == 1:
        return year - 1, 12
    return year, month - 1


def next_period(year: int, month: int) -> tuple[int, int]:
    if month == 12:
        return year + 1, 1
    return year, month + 1


class BudgetLedger:

    @staticmethod
    async def get_available(db: AsyncSession, company_id: str, year: int, month: int) -> int:
        return await TenantAwareDataAccess(db).table(Budget).sum(
            Budget.amount, {"company_id": company_id, "year": year, "month": month}
        )

    @staticmethod
    async def try_debit(
        db: AsyncSession, company_id: str, year: int, month: int, amount: int
    ) -> bool:
        """
        Decrement the period's budget by `amount` if it covers it.
        Does not commit; the caller owns the transaction.
        """
        if amount < 0:
            raise InvalidInput("Debit amount must be non-negative")
        updated = await TenantAwareDataAccess(db).table(Budget).update_many(
            {"company_id": company_id, "year": year, "month": month},
            {"amount": Budget.amount - amount, "updated_at": utcnow()},
            criteria=[Budget.amount >= amount],
        )
        if updated == 0:
            logger.info(
                "Budget debit refused",
                company_id=company_id,
                period=f"{year}-{month:02d}",
                requested=amount,
            )
            return False
        logger.info(
            "Budget debited",
            company_id=company_id,
            period=f"{year}-{month:02d}",
            amount=amount,
        )
        return True

    @staticmethod
    async def seed_monthly(db: AsyncSession, year: int, month: int) -> int:
        """
        Create this period's Budget for every company that has a
        BudgetCriteria template and no Budget yet. One transaction.
        Returns the number of rows created.
        """
        data = TenantAwareDataAccess(db)
        async with atomic(db):
            templates = await data.table(BudgetCriteria).find_many()
            existing = {
                row.company_id
                for row in await data.table(Budget).find_many({"year": year, "month": month})
            }
            rows = [
                {
                    "company_id": template.company_id,
                    "year": year,
                    "month": month,
                    "amount": template.amount,
                }
                for template in templates
                if template.company_id not in existing
            ]
            if rows:
                await data.table(Budget).create_many(rows)

        logger.info(
            "Monthly budgets seeded",
            period=f"{year}-{month:02d}",
            created=len(rows),
            skipped=len(existing),
        )
        return len(rows)

    # ── Admin maintenance ────────────────────────────────────────────────────

    @staticmethod
    async def upsert_budget(
        db: AsyncSession, company_id: str, year: int, month: int, amount: int
    ) -> tuple[Budget, bool]:
        table = TenantAwareDataAccess(db).table(Budget)
        async with atomic(db):
            budget, created = await table.upsert(
                {"company_id": company_id, "year": year, "month": month},
                create={"company_id": company_id, "year": year, "month": month, "amount": amount},
                update_values={"amount": amount},
            )
        logger.info("Budget saved", period=f"{year}-{month:02d}", amount=amount, created=created)
        return budget, created

    @staticmethod
    async def list_budgets(
        db: AsyncSession,
        company_id: str,
        year: int | None = None,
        month: int | None = None,
    ) -> list[Budget]:
        where: dict = {"company_id": company_id}
        if year is not None:
            where["year"] = year
        if month is not None:
            where["month"] = month
        return await TenantAwareDataAccess(db).table(Budget).find_many(
            where, order_by=[Budget.year.desc(), Budget.month.desc()]
        )

    @staticmethod
    async def upsert_criteria(db: AsyncSession, company_id: str, amount: int) -> BudgetCriteria:
        table = TenantAwareDataAccess(db).table(BudgetCriteria)
        async with atomic(db):
            criteria, _ = await table.upsert(
                {"company_id": company_id},
                create={"company_id": company_id, "amount": amount},
                update_values={"amount": amount},
            )
        return criteria

    @staticmethod
    async def get_criteria(db: AsyncSession, company_id: str) -> BudgetCriteria | None:
        return await TenantAwareDataAccess(db).table(BudgetCriteria).find_one(
            {"company_id": company_id}
        )

    # ── Pre-purchase check ───────────────────────────────────────────────────

    @staticmethod
    async def check_pre_purchase(db: AsyncSession, company_id: str, order_total: int) -> int:
        """
        Refuse a new request when the month has no budget or the order
        exceeds it. Alerts ADMIN / MANAGER users by email before raising;
        a failed email never changes the outcome.
        Returns the available amount on success.
        """
        year, month = current_period()
        available = await BudgetLedger.get_available(db, company_id, year, month)

        if available <= 0:
            message = "No budget is configured for this month."
        elif order_total > available:
            message = f"Order total {order_total:,} exceeds the remaining budget {available:,}."
        else:
            return available

        recipients = await TenantAwareDataAccess(db).table(User).find_many(
            {
                "company_id": company_id,
                "role": [UserRole.ADMIN.value, UserRole.MANAGER.value],
                "is_active": True,
            }
        )
        for recipient in recipients:
            await email_service.send_budget_alert(recipient.email, available, message)

        logger.warning(
            "Pre-purchase budget check failed",
            available=available,
            order_total=order_total,
            alerted=len(recipients),
        )
        raise InsufficientBudget(
            message, details={"available": available, "order_total": order_total}
        )
