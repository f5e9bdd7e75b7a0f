"""
schemas/product.py
------------------
Pydantic models for categories and products.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class ProductSort(str, Enum):
    LATEST = "latest"
    PRICE_ASC = "priceAsc"
    PRICE_DESC = "priceDesc"
    SALES = "sales"


class CategoryRead(BaseModel):
    id: int
    name: str
    parent_id: int | None = None

    model_config = {"from_attributes": True}


class ProductCreate(BaseModel):
    category_id: int = Field(..., gt=0)
    name: str = Field(..., min_length=1, max_length=255)
    price: int = Field(..., ge=0)
    image: str | None = Field(default=None, max_length=512, description="Upload key")
    link: str = Field(..., min_length=1, max_length=1024)


class ProductUpdate(BaseModel):
    category_id: int | None = Field(default=None, gt=0)
    name: str | None = Field(default=None, min_length=1, max_length=255)
    price: int | None = Field(default=None, ge=0)
    image: str | None = Field(default=None, max_length=512)
    link: str | None = Field(default=None, min_length=1, max_length=1024)


class ProductRead(BaseModel):
    id: int
    category_id: int
    name: str
    price: int
    image: str | None = None
    link: str
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class ProductDetail(ProductRead):
    sales_count: int = 0
    image_url: str | None = None
