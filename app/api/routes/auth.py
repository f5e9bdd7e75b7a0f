"""
api/routes/auth.py
------------------
Authentication endpoints.

POST /auth/register-admin        — Create a company together with its first ADMIN.
POST /auth/login                 — Exchange credentials for access + refresh tokens.
POST /auth/refresh               — Rotate a refresh token; the old one stops working.
POST /auth/logout                — Revoke the caller's refresh token.
GET  /auth/me                    — Return the authenticated user's profile.
POST /auth/invitations/verify    — Check an invitation link, return the prefill data.
POST /auth/invitations/accept    — Sign up through an invitation.
"""

from datetime import timedelta

from fastapi import APIRouter, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.responses import success
from app.core.security import create_access_token
from app.dependencies import CurrentPrincipal, DataAccess
from app.models.user import User
from app.schemas.company import AdminRegister, CompanyRead, RegisterResponse
from app.schemas.invitation import InvitationAccept, InvitationPublic, InvitationVerify
from app.schemas.user import LoginRequest, RefreshRequest, TokenResponse, UserRead
from app.services.company_service import CompanyService
from app.services.invitation_service import InvitationService
from app.services.user_service import UserService

router = APIRouter(prefix="/auth", tags=["Authentication"])


def _issue_token(user: User) -> tuple[str, int]:
    expires = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    token = create_access_token(
        subject=user.id,
        company_id=user.company_id,
        email=user.email,
        role=user.role,
        expires_delta=expires,
    )
    return token, int(expires.total_seconds())


async def _token_response(db: AsyncSession, user: User) -> TokenResponse:
    token, expires_in = _issue_token(user)
    refresh_token = await UserService.issue_refresh_token(db, user)
    return TokenResponse(
        access_token=token,
        refresh_token=refresh_token,
        expires_in=expires_in,
        user=UserRead.model_validate(user),
    )


@router.post(
    "/register-admin",
    status_code=status.HTTP_201_CREATED,
    summary="Register a company and its first admin",
)
async def register_admin(body: AdminRegister, data: DataAccess) -> dict:
    company, user = await CompanyService.register_admin(data.session, body)
    token, _ = _issue_token(user)
    payload = RegisterResponse(
        company=CompanyRead.model_validate(company),
        user=UserRead.model_validate(user),
        access_token=token,
        refresh_token=await UserService.issue_refresh_token(data.session, user),
    )
    return success(payload, "Company registered")


@router.post("/login", summary="Login and receive a JWT access token")
async def login(body: LoginRequest, data: DataAccess) -> dict:
    """
    Authenticate with email + password and receive a signed JWT plus a
    refresh token.

        curl -X POST /auth/login -H "Content-Type: application/json" \\
          -d '{"email": "you@acme.io", "password": "yourpassword"}'
    """
    user = await UserService.authenticate(data.session, body.email, body.password)
    return success(await _token_response(data.session, user), "Logged in")


@router.post("/refresh", summary="Exchange a refresh token for new tokens")
async def refresh(body: RefreshRequest, data: DataAccess) -> dict:
    user, refresh_token = await UserService.rotate_refresh_token(data.session, body.refresh_token)
    token, expires_in = _issue_token(user)
    return success(
        TokenResponse(
            access_token=token,
            refresh_token=refresh_token,
            expires_in=expires_in,
            user=UserRead.model_validate(user),
        ),
        "Token refreshed",
    )


@router.post("/logout", summary="Revoke the current refresh token")
async def logout(principal: CurrentPrincipal, data: DataAccess) -> dict:
    await UserService.revoke_refresh_token(data.session, principal.company_id, principal.id)
    return success(None, "Logged out")


@router.get("/me", summary="Get the currently authenticated user")
async def get_me(principal: CurrentPrincipal, data: DataAccess) -> dict:
    user = await UserService.get_user(data.session, principal.company_id, principal.id)
    return success(UserRead.model_validate(user))


# ── Invitations (public) ──────────────────────────────────────────────────────

@router.post("/invitations/verify", summary="Check an invitation link")
async def verify_invitation(body: InvitationVerify, data: DataAccess) -> dict:
    token = InvitationService.token_from_url(body.invite_url)
    invitation = await InvitationService.verify(data.session, token)
    return success(InvitationPublic.model_validate(invitation), "Invitation is valid")


@router.post(
    "/invitations/accept",
    status_code=status.HTTP_201_CREATED,
    summary="Sign up through an invitation",
)
async def accept_invitation(body: InvitationAccept, data: DataAccess) -> dict:
    user = await InvitationService.accept(data.session, body.token, body.password)
    return success(await _token_response(data.session, user), "Welcome aboard")
