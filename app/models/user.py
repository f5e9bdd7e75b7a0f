"""
models/user.py
--------------
User ORM model with roles and company binding.

Role design (total order, used for minimum-role checks):
  - 'USER':    Browses products, manages a cart, submits purchase requests.
  - 'MANAGER': Manages products, approves / rejects purchase requests.
  - 'ADMIN':   Everything above plus users, budgets and immediate purchases.

The hashed_password column stores bcrypt hashes only — plain text is
never stored and never logged. refresh_token_hash holds the SHA-256 of the
one live refresh token; rotating or logging out replaces or clears it.
"""

from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import Boolean, DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base, TimestampMixin, generate_uuid


class UserRole(str, PyEnum):
    USER = "USER"
    MANAGER = "MANAGER"
    ADMIN = "ADMIN"

    @property
    def rank(self) -> int:
        return _ROLE_RANK[self]

    def at_least(self, other: "UserRole") -> bool:
        return self.rank >= other.rank


_ROLE_RANK = {UserRole.USER: 1, UserRole.MANAGER: 2, UserRole.ADMIN: 3}


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    email: Mapped[str] = mapped_column(
        String(320), unique=True, nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(
        String(20), nullable=False, default=UserRole.USER.value
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    refresh_token_hash: Mapped[str | None] = mapped_column(
        String(64), nullable=True, unique=True
    )
    refresh_token_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    company_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Relationships
    company: Mapped["Company"] = relationship("Company", back_populates="users")  # noqa: F821

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email} role={self.role}>"
