"""
services/user_service.py
------------------------
Business logic for authentication and user management.

Users are tenant-scoped; every query below also names the company
explicitly because authentication runs before the tenant gate.

Refresh tokens: one live token per user, stored as a SHA-256 digest with an
expiry. Rotation is a conditional UPDATE on the old digest, so a refresh
token can be exchanged once.
"""

from datetime import timedelta

from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import Conflict, Forbidden, InvalidInput, NotFound, Unauthenticated
from app.core.logging import get_logger
from app.core.security import generate_opaque_token, hash_password, hash_token, verify_password
from app.db.base import utcnow
from app.db.session import atomic
from app.db.tenant_access import TenantAwareDataAccess
from app.models.user import User, UserRole
from app.schemas.user import UserCreate

logger = get_logger(__name__)


class UserService:

    @staticmethod
    async def email_taken(db: AsyncSession, email: str) -> bool:
        # Emails are unique across companies.
        users = TenantAwareDataAccess(db).unscoped_table(User)
        return await users.count({"email": email.strip().lower()}) > 0

    @staticmethod
    async def create_user_by_admin(
        db: AsyncSession,
        data: UserCreate,
        company_id: str,
    ) -> User:
        """
        Admin-initiated user creation within their own company.
        Admins can assign any role.
        """
        if await UserService.email_taken(db, data.email):
            raise Conflict(f"Email '{data.email}' is already registered", code="USER_EMAIL_TAKEN")
        users = TenantAwareDataAccess(db).table(User)
        async with atomic(db):
            user = await users.create(
                {
                    "email": data.email.lower(),
                    "name": data.name,
                    "hashed_password": hash_password(data.password),
                    "role": data.role.value,
                    "company_id": company_id,
                }
            )
        logger.info("Admin created user", new_user_id=user.id, role=user.role)
        return user

    @staticmethod
    async def authenticate(db: AsyncSession, email: str, password: str) -> User:
        """
        Verify credentials. Email lookup is case-insensitive.
        Raises Unauthenticated for bad credentials or a deactivated account.
        """
        user = await TenantAwareDataAccess(db).table(User).find_one({"email": email.lower()})
        if user is None or not verify_password(password, user.hashed_password):
            logger.info("Login failed", email=email.lower())
            raise Unauthenticated("Invalid email or password", code="AUTH_INVALID_CREDENTIALS")
        if not user.is_active:
            raise Unauthenticated("Account is deactivated", code="AUTH_INACTIVE_USER")
        return user

    @staticmethod
    async def get_user(db: AsyncSession, company_id: str, user_id: str) -> User:
        user = await TenantAwareDataAccess(db).table(User).find_one(
            {"id": user_id, "company_id": company_id}
        )
        if user is None:
            raise NotFound("User not found", code="USER_NOT_FOUND")
        return user

    @staticmethod
    async def list_users(
        db: AsyncSession,
        company_id: str,
        page: int,
        limit: int,
        role: UserRole | None = None,
        is_active: bool | None = None,
        q: str | None = None,
    ) -> tuple[int, list[User]]:
        users = TenantAwareDataAccess(db).table(User)
        where: dict = {"company_id": company_id}
        if role is not None:
            where["role"] = role.value
        if is_active is not None:
            where["is_active"] = is_active
        criteria = []
        if q:
            pattern = f"%{q.strip()}%"
            criteria.append(or_(User.email.ilike(pattern), User.name.ilike(pattern)))

        total = await users.count(where, criteria=criteria)
        rows = await users.find_many(
            where,
            criteria=criteria,
            order_by=[User.created_at.desc(), User.id],
            offset=(page - 1) * limit,
            limit=limit,
        )
        return total, rows

    @staticmethod
    async def update_role(
        db: AsyncSession, company_id: str, actor_id: str, user_id: str, role: UserRole
    ) -> User:
        if user_id == actor_id and role != UserRole.ADMIN:
            raise Forbidden("Admins cannot remove their own ADMIN role", code="USER_SELF_DEMOTION")
        user = await UserService.get_user(db, company_id, user_id)
        async with atomic(db):
            user.role = role.value
        logger.info("User role changed", target_user_id=user_id, role=role.value)
        return user

    @staticmethod
    async def update_status(
        db: AsyncSession, company_id: str, actor_id: str, user_id: str, is_active: bool
    ) -> User:
        if user_id == actor_id:
            raise Forbidden("Admins cannot change their own status", code="USER_SELF_STATUS")
        user = await UserService.get_user(db, company_id, user_id)
        async with atomic(db):
            user.is_active = is_active
        logger.info("User status changed", target_user_id=user_id, is_active=is_active)
        return user

    @staticmethod
    def check_password(user: User, current_password: str) -> None:
        if not verify_password(current_password, user.hashed_password):
            raise InvalidInput("Current password is incorrect", code="USER_WRONG_PASSWORD")

    @staticmethod
    async def change_password(
        db: AsyncSession,
        company_id: str,
        user_id: str,
        current_password: str,
        new_password: str,
    ) -> None:
        user = await UserService.get_user(db, company_id, user_id)
        UserService.check_password(user, current_password)
        async with atomic(db):
            user.hashed_password = hash_password(new_password)
        logger.info("Password changed")

    # ── Refresh tokens ───────────────────────────────────────────────────────

    @staticmethod
    async def issue_refresh_token(db: AsyncSession, user: User) -> str:
        """Replace the user's refresh token; returns the raw value."""
        raw = generate_opaque_token()
        users = TenantAwareDataAccess(db).table(User)
        async with atomic(db):
            await users.update_many(
                {"id": user.id, "company_id": user.company_id},
                {
                    "refresh_token_hash": hash_token(raw),
                    "refresh_token_expires_at": utcnow()
                    + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
                },
            )
        return raw

    @staticmethod
    async def rotate_refresh_token(db: AsyncSession, raw: str) -> tuple[User, str]:
        """Exchange a live refresh token for a new one. The old one stops working."""
        users = TenantAwareDataAccess(db).table(User)
        old_hash = hash_token(raw)
        user = await users.find_one({"refresh_token_hash": old_hash})
        if user is None:
            raise Unauthenticated("Invalid refresh token", code="AUTH_INVALID_TOKEN")
        if not user.is_active:
            raise Unauthenticated("Account is deactivated", code="AUTH_INACTIVE_USER")

        new_raw = generate_opaque_token()
        async with atomic(db):
            rotated = await users.update_many(
                {"id": user.id, "refresh_token_hash": old_hash},
                {
                    "refresh_token_hash": hash_token(new_raw),
                    "refresh_token_expires_at": utcnow()
                    + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
                },
                criteria=[User.refresh_token_expires_at > utcnow()],
            )
        if rotated == 0:
            if await users.count({"id": user.id, "refresh_token_hash": old_hash}):
                raise Unauthenticated("Refresh token expired", code="AUTH_TOKEN_EXPIRED")
            raise Unauthenticated("Invalid refresh token", code="AUTH_INVALID_TOKEN")
        logger.info("Refresh token rotated", user_id=user.id)
        return user, new_raw

    @staticmethod
    async def revoke_refresh_token(db: AsyncSession, company_id: str, user_id: str) -> None:
        users = TenantAwareDataAccess(db).table(User)
        async with atomic(db):
            await users.update_many(
                {"id": user_id, "company_id": company_id},
                {"refresh_token_hash": None, "refresh_token_expires_at": None},
            )
        logger.info("Refresh token revoked", user_id=user_id)
