"""
api/routes/users.py
-------------------
Self-service account endpoints.

PATCH /users/me/password — Change the caller's password.
"""

from fastapi import APIRouter, Depends

from app.core.responses import success
from app.dependencies import AnyMember, DataAccess, require_tenant
from app.schemas.user import PasswordChange
from app.services.user_service import UserService

router = APIRouter(prefix="/users", tags=["Users"], dependencies=[Depends(require_tenant)])


@router.patch("/me/password", summary="Change own password")
async def change_my_password(body: PasswordChange, principal: AnyMember, data: DataAccess) -> dict:
    await UserService.change_password(
        data.session,
        principal.company_id,
        principal.id,
        body.current_password,
        body.new_password,
    )
    return success(None, "Password changed")
