"""
api/routes/companies.py
-----------------------
The caller's own company.

GET   /companies/me          — Company profile.
GET   /companies/me/users    — Members (MANAGER+), paginated.
PATCH /companies/me/profile  — Rename and/or change admin password (ADMIN).
"""

from fastapi import APIRouter, Depends, Query

from app.core.responses import paginated, success
from app.dependencies import Admin, AnyMember, DataAccess, Manager, require_tenant
from app.models.user import UserRole
from app.schemas.company import CompanyProfileUpdate, CompanyRead
from app.schemas.user import UserRead
from app.services.company_service import CompanyService
from app.services.user_service import UserService

router = APIRouter(
    prefix="/companies", tags=["Companies"], dependencies=[Depends(require_tenant)]
)


@router.get("/me", summary="Get the caller's company")
async def get_my_company(principal: AnyMember, data: DataAccess) -> dict:
    company = await CompanyService.get_company(data.session, principal.company_id)
    return success(CompanyRead.model_validate(company))


@router.get("/me/users", summary="List company members")
async def list_company_users(
    principal: Manager,
    data: DataAccess,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    role: UserRole | None = Query(default=None),
    is_active: bool | None = Query(default=None, alias="isActive"),
) -> dict:
    total, users = await UserService.list_users(
        data.session, principal.company_id, page, limit, role=role, is_active=is_active
    )
    return paginated([UserRead.model_validate(u) for u in users], page, limit, total)


@router.patch("/me/profile", summary="Update company name and/or admin password")
async def update_company_profile(
    body: CompanyProfileUpdate, principal: Admin, data: DataAccess
) -> dict:
    company = await CompanyService.update_profile(
        data.session, principal.company_id, principal.id, body
    )
    return success(CompanyRead.model_validate(company), "Profile updated")
