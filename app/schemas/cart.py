"""
schemas/cart.py
---------------
Pydantic models for the per-user cart.
"""

from pydantic import BaseModel, Field, computed_field

from app.schemas.product import ProductRead


class CartItemAdd(BaseModel):
    product_id: int = Field(..., gt=0)
    quantity: int = Field(default=1, gt=0)


class CartItemUpdate(BaseModel):
    quantity: int = Field(..., gt=0)


class CartBulkDelete(BaseModel):
    ids: list[str] = Field(..., min_length=1)


class CartItemRead(BaseModel):
    id: str
    product_id: int
    quantity: int
    product: ProductRead

    model_config = {"from_attributes": True}

    @computed_field
    @property
    def subtotal(self) -> int:
        return self.product.price * self.quantity


class CartSummary(BaseModel):
    page_subtotal: int
    total_quantity: int
    total_price: int
