"""
services/invitation_service.py
------------------------------
Admin-issued invitations and the signup they unlock.

Flow:
  1. An ADMIN invites an email address. A random token is generated, its
     SHA-256 is stored, and the raw token goes out only inside the link
     (mailed best-effort, and returned to the admin).
  2. The invitee opens the link; verify() resolves the token to the name,
     email and role to prefill.
  3. accept() claims the invitation with a conditional UPDATE and creates
     the user in the inviting company, in one transaction.

Re-inviting an address refreshes its row in place. An address holding a
live invitation from another company cannot be invited.
"""

from datetime import timedelta
from urllib.parse import parse_qs, urlsplit

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import Conflict, InvalidInput, NotFound, Unauthenticated
from app.core.logging import get_logger
from app.core.security import generate_opaque_token, hash_password, hash_token
from app.db.base import utcnow
from app.db.session import atomic
from app.db.tenant_access import TenantAwareDataAccess
from app.models.invitation import Invitation
from app.models.user import User
from app.schemas.invitation import InvitationCreate
from app.services.company_service import CompanyService
from app.services.email_service import email_service
from app.services.user_service import UserService

logger = get_logger(__name__)


def _live() -> list:
    return [
        Invitation.is_valid.is_(True),
        Invitation.is_used.is_(False),
        Invitation.expires_at > utcnow(),
    ]


class InvitationService:

    # ── Links ────────────────────────────────────────────────────────────────

    @staticmethod
    def invite_url(raw_token: str) -> str:
        return f"{settings.FRONTEND_URL.rstrip('/')}/signup?token={raw_token}"

    @staticmethod
    def token_from_url(invite_url: str) -> str:
        """Token from `?token=...`, or from a `#token=...` fragment."""
        parts = urlsplit(invite_url.strip())
        token = parse_qs(parts.query).get("token", [""])[0]
        if not token and parts.fragment.startswith("token="):
            token = parts.fragment[len("token="):]
        if not token:
            raise InvalidInput(
                "The invitation link carries no token", code="INVITATION_TOKEN_MISSING"
            )
        return token

    # ── Admin side ───────────────────────────────────────────────────────────

    @staticmethod
    async def create(
        db: AsyncSession, company_id: str, inviter_id: str, body: InvitationCreate
    ) -> tuple[Invitation, str, bool]:
        """Returns (invitation, invite_url, email_sent)."""
        email = body.email.strip().lower()
        if await UserService.email_taken(db, email):
            raise Conflict(f"Email '{email}' is already registered", code="USER_EMAIL_TAKEN")

        # Keyed by email across companies.
        invitations = TenantAwareDataAccess(db).unscoped_table(Invitation)
        pending_elsewhere = await invitations.count(
            {"email": email}, criteria=[Invitation.company_id != company_id, *_live()]
        )
        if pending_elsewhere:
            raise Conflict(
                "Email already has a pending invitation from another company",
                code="INVITATION_PENDING_ELSEWHERE",
            )

        raw = generate_opaque_token()
        values = {
            "company_id": company_id,
            "invited_by_id": inviter_id,
            "name": body.name,
            "role": body.role.value,
            "token_hash": hash_token(raw),
            "expires_at": utcnow() + timedelta(hours=settings.INVITATION_EXPIRE_HOURS),
            "is_used": False,
            "is_valid": True,
        }
        async with atomic(db):
            invitation, created = await invitations.upsert(
                {"email": email}, create=values, update_values=values
            )

        company = await CompanyService.get_company(db, company_id)
        link = InvitationService.invite_url(raw)
        sent = await email_service.send_invitation(email, body.name, company.name, link)
        logger.info(
            "Invitation issued",
            invitation_id=invitation.id,
            role=invitation.role,
            reissued=not created,
            email_sent=sent,
        )
        return invitation, link, sent

    @staticmethod
    async def list_invitations(
        db: AsyncSession, company_id: str, page: int, limit: int
    ) -> tuple[int, list[Invitation]]:
        invitations = TenantAwareDataAccess(db).table(Invitation)
        where = {"company_id": company_id}
        total = await invitations.count(where)
        rows = await invitations.find_many(
            where,
            order_by=[Invitation.created_at.desc(), Invitation.id],
            offset=(page - 1) * limit,
            limit=limit,
        )
        return total, rows

    @staticmethod
    async def revoke(db: AsyncSession, company_id: str, invitation_id: str) -> None:
        invitations = TenantAwareDataAccess(db).table(Invitation)
        async with atomic(db):
            revoked = await invitations.update_many(
                {"id": invitation_id, "company_id": company_id, "is_used": False},
                {"is_valid": False, "updated_at": utcnow()},
            )
            if revoked == 0:
                raise NotFound("Invitation not found", code="INVITATION_NOT_FOUND")
        logger.info("Invitation revoked", invitation_id=invitation_id)

    # ── Invitee side ─────────────────────────────────────────────────────────

    @staticmethod
    async def verify(db: AsyncSession, raw_token: str) -> Invitation:
        """Resolve a link token; 401 unless the invitation is still usable."""
        invitations = TenantAwareDataAccess(db).table(Invitation)
        invitation = await invitations.find_one(
            {"token_hash": hash_token(raw_token)}, refresh=True
        )
        if invitation is None:
            raise Unauthenticated("Invalid invitation token", code="AUTH_INVALID_TOKEN")
        if not invitation.is_valid:
            raise Unauthenticated("Invitation has been revoked", code="AUTH_INVALID_TOKEN")
        if invitation.is_used:
            raise Unauthenticated("Invitation has already been used", code="AUTH_INVALID_TOKEN")
        unexpired = await invitations.count(
            {"id": invitation.id}, criteria=[Invitation.expires_at > utcnow()]
        )
        if not unexpired:
            raise Unauthenticated("Invitation has expired", code="AUTH_TOKEN_EXPIRED")
        return invitation

    @staticmethod
    async def accept(db: AsyncSession, raw_token: str, password: str) -> User:
        invitation = await InvitationService.verify(db, raw_token)
        if await UserService.email_taken(db, invitation.email):
            raise Conflict(
                f"Email '{invitation.email}' is already registered", code="USER_EMAIL_TAKEN"
            )

        data = TenantAwareDataAccess(db)
        async with atomic(db):
            claimed = await data.table(Invitation).update_many(
                {"id": invitation.id, "token_hash": hash_token(raw_token)},
                {"is_used": True, "updated_at": utcnow()},
                criteria=_live(),
            )
            if claimed == 0:
                raise Unauthenticated(
                    "Invitation has already been used", code="AUTH_INVALID_TOKEN"
                )
            user = await data.table(User).create(
                {
                    "email": invitation.email,
                    "name": invitation.name,
                    "hashed_password": hash_password(password),
                    "role": invitation.role,
                    "company_id": invitation.company_id,
                }
            )
        logger.info("Invitation accepted", invitation_id=invitation.id, user_id=user.id)
        return user
