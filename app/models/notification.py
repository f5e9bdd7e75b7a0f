"""
models/notification.py
----------------------
Append-only per-recipient notification records.
Rows are written whether or not the recipient is connected live.
"""

from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, utcnow


class NotificationTargetType(str, PyEnum):
    PURCHASE_REQUEST = "PURCHASE_REQUEST"
    APPROVAL_NOTICE = "APPROVAL_NOTICE"
    DENIAL_NOTICE = "DENIAL_NOTICE"
    ADMIN_MESSAGE = "ADMIN_MESSAGE"
    GENERAL_NOTICE = "GENERAL_NOTICE"


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    receiver_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    target_type: Mapped[str] = mapped_column(String(32), nullable=False)
    target_id: Mapped[str] = mapped_column(String(64), nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
        index=True,
    )
