"""BudgetLedger: seeding, atomic debit and the pre-purchase check."""

import asyncio

import pytest

from app.core.exceptions import InsufficientBudget, InvalidInput
from app.db.session import atomic
from app.db.tenant_access import TenantAwareDataAccess
from app.models import Budget, UserRole
from app.services.budget_service import BudgetLedger, current_period
from app.services.email_service import email_service


async def _budgets(session, year, month) -> dict:
    rows = await TenantAwareDataAccess(session).table(Budget).find_many(
        {"year": year, "month": month}
    )
    return {row.company_id: row.amount for row in rows}


@pytest.mark.asyncio
async def test_seed_monthly_is_idempotent(db, factory):
    a = await factory.company("A")
    b = await factory.company("B")
    await factory.company("No template")
    await factory.criteria(a, 5000)
    await factory.criteria(b, 3000)

    assert await BudgetLedger.seed_monthly(db, 2025, 7) == 2
    first = await _budgets(db, 2025, 7)
    assert await BudgetLedger.seed_monthly(db, 2025, 7) == 0
    assert await _budgets(db, 2025, 7) == first == {a.id: 5000, b.id: 3000}


@pytest.mark.asyncio
async def test_seed_monthly_keeps_manual_adjustment(db, factory):
    a = await factory.company("A")
    b = await factory.company("B")
    await factory.criteria(a, 5000)
    await factory.criteria(b, 3000)
    await factory.budget(a, 1234, 2025, 8)

    assert await BudgetLedger.seed_monthly(db, 2025, 8) == 1
    assert await _budgets(db, 2025, 8) == {a.id: 1234, b.id: 3000}


@pytest.mark.asyncio
async def test_try_debit_refuses_overdraft(db, factory):
    company = await factory.company()
    await factory.budget(company, 1000, 2025, 6)

    async with atomic(db):
        assert await BudgetLedger.try_debit(db, company.id, 2025, 6, 600) is True
        assert await BudgetLedger.try_debit(db, company.id, 2025, 6, 600) is False
    assert await BudgetLedger.get_available(db, company.id, 2025, 6) == 400
    assert await BudgetLedger.try_debit(db, company.id, 2025, 5, 1) is False
    assert await BudgetLedger.get_available(db, company.id, 2025, 5) == 0

    with pytest.raises(InvalidInput):
        await BudgetLedger.try_debit(db, company.id, 2025, 6, -1)


@pytest.mark.asyncio
async def test_concurrent_debits_never_overdraw(session_factory, factory):
    company = await factory.company()
    await factory.budget(company, 1000, 2025, 6)

    async def debit() -> bool:
        async with session_factory() as session:
            async with atomic(session):
                return await BudgetLedger.try_debit(session, company.id, 2025, 6, 300)

    results = await asyncio.gather(*(debit() for _ in range(8)))

    assert results.count(True) == 3
    async with session_factory() as session:
        assert await BudgetLedger.get_available(session, company.id, 2025, 6) == 100


@pytest.mark.asyncio
async def test_pre_purchase_check_alerts_and_rejects(db, factory, monkeypatch):
    company = await factory.company()
    admin = await factory.user(company, UserRole.ADMIN)
    manager = await factory.user(company, UserRole.MANAGER)
    await factory.user(company, UserRole.USER)
    sent = []

    async def failing_alert(to, budget, message):
        sent.append(to)
        return False

    monkeypatch.setattr(email_service, "send_budget_alert", failing_alert)

    with pytest.raises(InsufficientBudget):
        await BudgetLedger.check_pre_purchase(db, company.id, 100)
    assert sorted(sent) == sorted([admin.email, manager.email])

    year, month = current_period()
    await factory.budget(company, 5000, year, month)
    sent.clear()
    with pytest.raises(InsufficientBudget) as exc_info:
        await BudgetLedger.check_pre_purchase(db, company.id, 6000)
    assert exc_info.value.details == {"available": 5000, "order_total": 6000}
    assert len(sent) == 2

    assert await BudgetLedger.check_pre_purchase(db, company.id, 5000) == 5000
