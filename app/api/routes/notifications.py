"""
api/routes/notifications.py
---------------------------
Notification history and the live channel.

GET   /notifications/stream        — Server-Sent Events, one connection per user.
GET   /notifications               — Paginated history, newest first.
GET   /notifications/unread-count  — Unread total.
PATCH /notifications/{id}/read     — Mark one of the caller's notifications read.
POST  /notifications/broadcast     — ADMIN message to active USER / MANAGER members.
"""

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import StreamingResponse

from app.core.responses import paginated, success
from app.dependencies import Admin, AnyMember, DataAccess, require_tenant
from app.schemas.notification import BroadcastCreate, BroadcastResult, NotificationRead
from app.services.notification_service import NotificationService, notification_service
from app.services.notification_stream import notification_stream

router = APIRouter(
    prefix="/notifications", tags=["Notifications"], dependencies=[Depends(require_tenant)]
)


@router.get(
    "/stream",
    summary="Live notifications (Server-Sent Events)",
    response_class=StreamingResponse,
)
async def stream_notifications(principal: AnyMember) -> StreamingResponse:
    """
    Each notification arrives as:   data: <json>\\n\\n
    Idle keep-alive:                : keep-alive\\n\\n

    Opening a second stream for the same user closes the first one.
    """
    connection = notification_stream.register(principal.id)
    return StreamingResponse(
        notification_stream.events(connection),
        media_type="text/event-stream",
        headers={
            # Prevent proxy/browser buffering, required for streaming
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
            "Connection": "keep-alive",
        },
    )


@router.get("", summary="List own notifications")
async def list_notifications(
    principal: AnyMember,
    data: DataAccess,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
) -> dict:
    total, rows = await NotificationService.list_notifications(
        data.session, principal.id, page, limit
    )
    return paginated([NotificationRead.model_validate(n) for n in rows], page, limit, total)


@router.get("/unread-count", summary="Count unread notifications")
async def unread_count(principal: AnyMember, data: DataAccess) -> dict:
    count = await NotificationService.count_unread(data.session, principal.id)
    return success({"count": count})


@router.patch("/{notification_id}/read", summary="Mark a notification read")
async def mark_read(notification_id: int, principal: AnyMember, data: DataAccess) -> dict:
    notification = await NotificationService.mark_read(
        data.session, principal.id, notification_id
    )
    return success(NotificationRead.model_validate(notification), "Marked as read")


@router.post(
    "/broadcast",
    status_code=status.HTTP_201_CREATED,
    summary="Admin: message every active member",
)
async def broadcast(body: BroadcastCreate, admin: Admin, data: DataAccess) -> dict:
    result = await notification_service.broadcast_company_message(
        data.session, admin.company_id, body.content
    )
    return success(BroadcastResult(**result), "Broadcast sent")
