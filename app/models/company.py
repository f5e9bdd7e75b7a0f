"""
models/company.py
-----------------
Company (tenant) ORM model.

Each company is an isolated organisational unit. Every tenant-scoped table
carries a company_id foreign key back to exactly one row here; isolation
itself is enforced by TenantAwareDataAccess (db/tenant_access.py).
"""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base, TimestampMixin, generate_uuid


class Company(Base, TimestampMixin):
    __tablename__ = "companies"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    business_number: Mapped[str] = mapped_column(
        String(32), unique=True, nullable=False, index=True
    )

    # Relationships
    users: Mapped[list["User"]] = relationship(  # noqa: F821
        "User", back_populates="company"
    )

    def __repr__(self) -> str:
        return f"<Company id={self.id} name={self.name}>"
