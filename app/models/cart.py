"""
models/cart.py
--------------
Per-user cart rows. Not tenant-scoped directly: ownership is by user_id and
products are checked against the caller's company when added.
"""

from sqlalchemy import CheckConstraint, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base, TimestampMixin, generate_uuid


class CartItem(Base, TimestampMixin):
    __tablename__ = "carts"
    __table_args__ = (
        UniqueConstraint("user_id", "product_id", name="uq_carts_user_product"),
        CheckConstraint("quantity >= 1", name="ck_carts_quantity_positive"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("products.id"), nullable=False
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    product: Mapped["Product"] = relationship("Product")  # noqa: F821
