"""
services/company_service.py
---------------------------
Company registration and profile.

Service layer is responsible for:
  - Enforcing business rules (unique business number / email)
  - Grouping multi-row changes into one transaction
  - Returning domain objects (ORM models) to the route layer
  - Never returning HTTP responses (that's the route's job)
"""

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import Conflict, NotFound
from app.core.logging import get_logger
from app.core.security import hash_password
from app.db.session import atomic
from app.db.tenant_access import TenantAwareDataAccess
from app.models.company import Company
from app.models.user import User, UserRole
from app.schemas.company import AdminRegister, CompanyProfileUpdate
from app.services.user_service import UserService

logger = get_logger(__name__)


class CompanyService:

    @staticmethod
    async def register_admin(db: AsyncSession, data: AdminRegister) -> tuple[Company, User]:
        """Create the company and its first ADMIN together, or neither."""
        access = TenantAwareDataAccess(db)
        if await access.table(Company).count({"business_number": data.business_number}):
            raise Conflict("Business number is already registered", code="COMPANY_BUSINESS_NUMBER_TAKEN")
        if await UserService.email_taken(db, data.email):
            raise Conflict(f"Email '{data.email}' is already registered", code="USER_EMAIL_TAKEN")

        async with atomic(db):
            company = await access.table(Company).create(
                {"name": data.company_name, "business_number": data.business_number}
            )
            user = await access.table(User).create(
                {
                    "email": data.email.lower(),
                    "name": data.name,
                    "hashed_password": hash_password(data.password),
                    "role": UserRole.ADMIN.value,
                    "company_id": company.id,
                }
            )
        logger.info("Company registered", company_id=company.id, admin_id=user.id)
        return company, user

    @staticmethod
    async def get_company(db: AsyncSession, company_id: str) -> Company:
        company = await TenantAwareDataAccess(db).table(Company).find_one({"id": company_id})
        if company is None:
            raise NotFound("Company not found", code="COMPANY_NOT_FOUND")
        return company

    @staticmethod
    async def update_profile(
        db: AsyncSession, company_id: str, user_id: str, data: CompanyProfileUpdate
    ) -> Company:
        """Rename the company and/or change the admin's password as one unit."""
        company = await CompanyService.get_company(db, company_id)
        user = await UserService.get_user(db, company_id, user_id)
        if data.new_password is not None:
            UserService.check_password(user, data.current_password)

        async with atomic(db):
            if data.company_name is not None:
                company.name = data.company_name.strip()
            if data.new_password is not None:
                user.hashed_password = hash_password(data.new_password)

        logger.info(
            "Company profile updated",
            renamed=data.company_name is not None,
            password_changed=data.new_password is not None,
        )
        return company
