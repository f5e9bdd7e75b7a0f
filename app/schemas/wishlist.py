"""
schemas/wishlist.py
-------------------
Pydantic models for saved products.
"""

from datetime import datetime

from pydantic import BaseModel

from app.schemas.product import ProductRead


class WishlistItemRead(BaseModel):
    id: str
    product_id: int
    created_at: datetime
    product: ProductRead

    model_config = {"from_attributes": True}
