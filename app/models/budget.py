"""
models/budget.py
----------------
Monthly budgets and the per-company template used to seed them.

Budget.amount is only ever decreased through BudgetLedger.try_debit, a
conditional UPDATE guarded by `amount >= debit`; the check constraint is
the last line of defence against a negative balance.
"""

from sqlalchemy import CheckConstraint, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, TimestampMixin, generate_uuid


class Budget(Base, TimestampMixin):
    __tablename__ = "budgets"
    __table_args__ = (
        UniqueConstraint("company_id", "year", "month", name="uq_budgets_company_period"),
        CheckConstraint("amount >= 0", name="ck_budgets_amount_non_negative"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    company_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<Budget company_id={self.company_id} {self.year}-{self.month:02d} amount={self.amount}>"


class BudgetCriteria(Base, TimestampMixin):
    __tablename__ = "budget_criteria"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    company_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("companies.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
