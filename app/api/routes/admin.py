"""
api/routes/admin.py
-------------------
Admin-only endpoints for users and invitations within a company.

POST  /admin/users              — Create a user (any role) in the company.
GET   /admin/users              — Search / filter users.
PATCH /admin/users/{id}/role    — Change a role; admins cannot demote themselves.
PATCH /admin/users/{id}/status  — (De)activate; not allowed on oneself.

POST   /admin/invitations       — Invite an email address; mails the link.
GET    /admin/invitations       — List the company's invitations.
DELETE /admin/invitations/{id}  — Revoke an unused invitation.
"""

from fastapi import APIRouter, Depends, Query, status

from app.core.responses import paginated, success
from app.dependencies import Admin, DataAccess, require_tenant
from app.models.user import UserRole
from app.schemas.invitation import InvitationCreate, InvitationIssued, InvitationRead
from app.schemas.user import UserCreate, UserRead, UserRoleUpdate, UserStatusUpdate
from app.services.invitation_service import InvitationService
from app.services.user_service import UserService

router = APIRouter(prefix="/admin", tags=["Admin"], dependencies=[Depends(require_tenant)])


@router.post(
    "/users",
    status_code=status.HTTP_201_CREATED,
    summary="Admin: create a new user in the current company",
)
async def admin_create_user(body: UserCreate, admin: Admin, data: DataAccess) -> dict:
    """
    The company is taken from the admin's token; admins cannot create
    users in other companies.
    """
    user = await UserService.create_user_by_admin(data.session, body, admin.company_id)
    return success(UserRead.model_validate(user), "User created")


@router.get("/users", summary="Admin: search users")
async def admin_list_users(
    admin: Admin,
    data: DataAccess,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    q: str | None = Query(default=None, max_length=100, description="Email or name"),
    role: UserRole | None = Query(default=None),
    is_active: bool | None = Query(default=None, alias="isActive"),
) -> dict:
    total, users = await UserService.list_users(
        data.session, admin.company_id, page, limit, role=role, is_active=is_active, q=q
    )
    return paginated([UserRead.model_validate(u) for u in users], page, limit, total)


@router.patch("/users/{user_id}/role", summary="Admin: change a user's role")
async def admin_update_role(
    user_id: str, body: UserRoleUpdate, admin: Admin, data: DataAccess
) -> dict:
    user = await UserService.update_role(
        data.session, admin.company_id, admin.id, user_id, body.role
    )
    return success(UserRead.model_validate(user), "Role updated")


@router.patch("/users/{user_id}/status", summary="Admin: activate or deactivate a user")
async def admin_update_status(
    user_id: str, body: UserStatusUpdate, admin: Admin, data: DataAccess
) -> dict:
    user = await UserService.update_status(
        data.session, admin.company_id, admin.id, user_id, body.is_active
    )
    return success(UserRead.model_validate(user), "Status updated")


# ── Invitations ───────────────────────────────────────────────────────────────

@router.post(
    "/invitations",
    status_code=status.HTTP_201_CREATED,
    summary="Admin: invite someone to the company",
)
async def admin_create_invitation(body: InvitationCreate, admin: Admin, data: DataAccess) -> dict:
    """
    Mail delivery is best-effort; `email_sent` reports it and the link is
    returned either way so it can be shared by hand.
    """
    invitation, invite_url, email_sent = await InvitationService.create(
        data.session, admin.company_id, admin.id, body
    )
    payload = InvitationIssued(
        invitation=InvitationRead.model_validate(invitation),
        invite_url=invite_url,
        email_sent=email_sent,
    )
    return success(payload, "Invitation sent")


@router.get("/invitations", summary="Admin: list invitations")
async def admin_list_invitations(
    admin: Admin,
    data: DataAccess,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
) -> dict:
    total, invitations = await InvitationService.list_invitations(
        data.session, admin.company_id, page, limit
    )
    return paginated([InvitationRead.model_validate(i) for i in invitations], page, limit, total)


@router.delete("/invitations/{invitation_id}", summary="Admin: revoke an invitation")
async def admin_revoke_invitation(invitation_id: str, admin: Admin, data: DataAccess) -> dict:
    await InvitationService.revoke(data.session, admin.company_id, invitation_id)
    return success(None, "Invitation revoked")
