"""
models/purchase.py
------------------
Purchase requests and their line items.

Lifecycle: PENDING → APPROVED | REJECTED | CANCELLED (all terminal).
Transitions are performed only by conditional UPDATEs that name the
expected current status, so concurrent deciders cannot both win.

PurchaseItem.price_snapshot is the unit price at creation time and is
never recomputed from the product.
"""

from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import CheckConstraint, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base, TimestampMixin, generate_uuid


class PurchaseStatus(str, PyEnum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class PurchaseRequest(Base, TimestampMixin):
    __tablename__ = "purchase_requests"
    __table_args__ = (
        CheckConstraint("shipping_fee >= 0", name="ck_purchase_requests_shipping_fee"),
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
    requester_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id"), nullable=False, index=True
    )
    approver_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("users.id"), nullable=True
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PurchaseStatus.PENDING.value, index=True
    )
    total_price: Mapped[int] = mapped_column(Integer, nullable=False)
    shipping_fee: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    request_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    reject_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    items: Mapped[list["PurchaseItem"]] = relationship(
        "PurchaseItem", back_populates="purchase_request", cascade="all, delete-orphan"
    )
    requester: Mapped["User"] = relationship("User", foreign_keys=[requester_id])  # noqa: F821
    approver: Mapped[Optional["User"]] = relationship("User", foreign_keys=[approver_id])  # noqa: F821

    @property
    def order_total(self) -> int:
        return self.total_price + self.shipping_fee

    def __repr__(self) -> str:
        return f"<PurchaseRequest id={self.id} status={self.status} total={self.total_price}>"


class PurchaseItem(Base):
    __tablename__ = "purchase_items"
    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_purchase_items_quantity_positive"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    purchase_request_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("purchase_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("products.id"), nullable=False, index=True
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price_snapshot: Mapped[int] = mapped_column(Integer, nullable=False)

    purchase_request: Mapped["PurchaseRequest"] = relationship(
        "PurchaseRequest", back_populates="items"
    )
    product: Mapped["Product"] = relationship("Product")  # noqa: F821
