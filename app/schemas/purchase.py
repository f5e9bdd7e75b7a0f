"""
schemas/purchase.py
-------------------
Pydantic models for purchase requests.

Item lists are validated before any state is touched: ids and quantities
must be positive integers, the list must be non-empty, and a product may
appear only once.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator

from app.models.purchase import PurchaseStatus


class PurchaseItemIn(BaseModel):
    product_id: int = Field(..., gt=0)
    quantity: int = Field(..., gt=0)


class PurchaseItemsBody(BaseModel):
    items: list[PurchaseItemIn] = Field(..., min_length=1)
    shipping_fee: int = Field(default=0, ge=0)

    @field_validator("items")
    @classmethod
    def unique_products(cls, v: list[PurchaseItemIn]) -> list[PurchaseItemIn]:
        ids = [item.product_id for item in v]
        if len(ids) != len(set(ids)):
            raise ValueError("Each product may appear only once")
        return v


class PurchaseRequestCreate(PurchaseItemsBody):
    request_message: str | None = Field(default=None, max_length=1000)


class PurchaseNowCreate(PurchaseItemsBody):
    pass


class RejectBody(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)

    @field_validator("reason")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("reason must not be blank")
        return v.strip()


class PurchaseSortField(str, Enum):
    CREATED_AT = "createdAt"
    UPDATED_AT = "updatedAt"
    TOTAL_PRICE = "totalPrice"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class UserSummary(BaseModel):
    id: str
    name: str
    email: str

    model_config = {"from_attributes": True}


class PurchaseItemRead(BaseModel):
    id: int
    product_id: int
    quantity: int
    price_snapshot: int

    model_config = {"from_attributes": True}


class PurchaseRequestRead(BaseModel):
    id: str
    company_id: str
    requester_id: str
    approver_id: str | None = None
    status: PurchaseStatus
    total_price: int
    shipping_fee: int
    request_message: str | None = None
    reject_reason: str | None = None
    created_at: datetime
    updated_at: datetime
    items: list[PurchaseItemRead] = []

    model_config = {"from_attributes": True}


class PurchaseRequestDetail(PurchaseRequestRead):
    requester: UserSummary | None = None
    approver: UserSummary | None = None
