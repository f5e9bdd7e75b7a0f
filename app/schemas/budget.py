"""
schemas/budget.py
-----------------
Pydantic models for monthly budgets and the per-company seeding template.
"""

from datetime import datetime

from pydantic import BaseModel, Field


class BudgetUpsert(BaseModel):
    year: int = Field(..., ge=2000, le=2100)
    month: int = Field(..., ge=1, le=12)
    amount: int = Field(..., ge=0)


class BudgetRead(BaseModel):
    id: str
    company_id: str
    year: int
    month: int
    amount: int
    updated_at: datetime

    model_config = {"from_attributes": True}


class BudgetCriteriaUpsert(BaseModel):
    amount: int = Field(..., ge=0)


class BudgetCriteriaRead(BaseModel):
    company_id: str
    amount: int
    updated_at: datetime

    model_config = {"from_attributes": True}
