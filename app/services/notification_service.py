"""
services/notification_service.py
--------------------------------
Notification fan-out: durable record first, live push second.

Rows are committed before anything is pushed, so a live event always
refers to a persisted notification. Push failures are logged and ignored;
the stored row is still there for history and the unread count.
"""

from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFound
from app.core.logging import get_logger
from app.db.base import utcnow
from app.db.session import atomic
from app.db.tenant_access import TenantAwareDataAccess
from app.models.notification import Notification, NotificationTargetType
from app.models.user import User, UserRole
from app.schemas.notification import NotificationRead
from app.services.notification_stream import NotificationStream, notification_stream

logger = get_logger(__name__)

APPROVER_ROLES = [UserRole.MANAGER.value, UserRole.ADMIN.value]
BROADCAST_ROLES = [UserRole.USER.value, UserRole.MANAGER.value]


class NotificationService:

    def __init__(self, stream: NotificationStream = notification_stream) -> None:
        self.stream = stream

    async def _persist_and_push(
        self,
        db: AsyncSession,
        receiver_ids: list[str],
        content: str,
        target_type: NotificationTargetType,
        target_id: str,
    ) -> tuple[list[NotificationRead], int]:
        if not receiver_ids:
            return [], 0

        data = TenantAwareDataAccess(db)
        async with atomic(db):
            created = await data.table(Notification).create_many(
                {
                    "receiver_id": receiver_id,
                    "content": content,
                    "target_type": target_type.value,
                    "target_id": target_id,
                }
                for receiver_id in receiver_ids
            )

        payloads = [NotificationRead.model_validate(n) for n in created]
        delivered = 0
        for payload in payloads:
            if self.stream.send(payload.receiver_id, payload.model_dump()):
                delivered += 1
            else:
                logger.info(
                    "Realtime send skipped",
                    receiver_id=payload.receiver_id,
                    notification_id=payload.id,
                )
        return payloads, delivered

    async def create_and_push(
        self,
        db: AsyncSession,
        receiver_id: str,
        content: str,
        target_type: NotificationTargetType,
        target_id: str,
    ) -> NotificationRead:
        payloads, _ = await self._persist_and_push(
            db, [receiver_id], content, target_type, target_id
        )
        return payloads[0]

    async def _active_members(
        self, db: AsyncSession, company_id: str, roles: list[str]
    ) -> list[User]:
        return await TenantAwareDataAccess(db).table(User).find_many(
            {"company_id": company_id, "role": roles, "is_active": True}
        )

    async def notify_purchase_requested(
        self,
        db: AsyncSession,
        company_id: str,
        requester_id: str,
        purchase_request_id: str,
    ) -> int:
        """Fan a new request out to every active MANAGER / ADMIN."""
        data = TenantAwareDataAccess(db)
        requester = await data.table(User).find_one({"id": requester_id})
        recipients = await self._active_members(db, company_id, APPROVER_ROLES)
        requester_name = requester.name if requester else "User"
        payloads, _ = await self._persist_and_push(
            db,
            [r.id for r in recipients],
            f"{requester_name} sent a purchase request.",
            NotificationTargetType.PURCHASE_REQUEST,
            purchase_request_id,
        )
        return len(payloads)

    async def notify_purchase_approved(
        self, db: AsyncSession, requester_id: str, purchase_request_id: str
    ) -> NotificationRead:
        return await self.create_and_push(
            db,
            requester_id,
            "Your purchase request was approved.",
            NotificationTargetType.APPROVAL_NOTICE,
            purchase_request_id,
        )

    async def notify_purchase_denied(
        self, db: AsyncSession, requester_id: str, purchase_request_id: str
    ) -> NotificationRead:
        return await self.create_and_push(
            db,
            requester_id,
            "Your purchase request was rejected.",
            NotificationTargetType.DENIAL_NOTICE,
            purchase_request_id,
        )

    async def broadcast_company_message(
        self, db: AsyncSession, company_id: str, content: str
    ) -> dict:
        recipients = await self._active_members(db, company_id, BROADCAST_ROLES)
        payloads, delivered = await self._persist_and_push(
            db,
            [r.id for r in recipients],
            content,
            NotificationTargetType.ADMIN_MESSAGE,
            company_id,
        )
        return {"created_count": len(payloads), "delivered_count": delivered}

    # ── Reads ────────────────────────────────────────────────────────────────

    @staticmethod
    async def list_notifications(
        db: AsyncSession, receiver_id: str, page: int, limit: int
    ) -> tuple[int, list[Notification]]:
        table = TenantAwareDataAccess(db).table(Notification)
        total = await table.count({"receiver_id": receiver_id})
        rows = await table.find_many(
            {"receiver_id": receiver_id},
            order_by=[Notification.created_at.desc(), Notification.id.desc()],
            offset=(page - 1) * limit,
            limit=limit,
        )
        return total, rows

    @staticmethod
    async def count_unread(db: AsyncSession, receiver_id: str) -> int:
        return await TenantAwareDataAccess(db).table(Notification).count(
            {"receiver_id": receiver_id, "is_read": False}
        )

    @staticmethod
    async def mark_read(db: AsyncSession, receiver_id: str, notification_id: int) -> Notification:
        table = TenantAwareDataAccess(db).table(Notification)
        async with atomic(db):
            updated = await table.update_many(
                {"id": notification_id, "receiver_id": receiver_id}, {"is_read": True}
            )
            if updated == 0:
                raise NotFound("Notification not found", code="NOTIFICATION_NOT_FOUND")
        notification = await table.find_one({"id": notification_id}, refresh=True)
        return notification

    # ── Maintenance ──────────────────────────────────────────────────────────

    @staticmethod
    async def cleanup_old_notifications(db: AsyncSession, retention_days: int) -> int:
        cutoff = utcnow() - timedelta(days=retention_days)
        table = TenantAwareDataAccess(db).table(Notification)
        async with atomic(db):
            deleted = await table.delete_many(
                None, criteria=[Notification.created_at < cutoff]
            )
        logger.info("Old notifications removed", deleted=deleted, retention_days=retention_days)
        return deleted


notification_service = NotificationService()
