"""NotificationFanout: live registry and persisted notifications."""

import json
from datetime import timedelta

import pytest

from app.core.exceptions import NotFound
from app.db.base import utcnow
from app.db.tenant_access import TenantAwareDataAccess
from app.models import Notification, NotificationTargetType, UserRole
from app.services.notification_service import NotificationService
from app.services.notification_stream import KEEP_ALIVE_FRAME, NotificationStream


def _decode(frame: str) -> dict:
    assert frame.startswith("data: ") and frame.endswith("\n\n")
    return json.loads(frame[len("data: "):])


# ── Live registry ───────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_send_to_offline_user_returns_false():
    stream = NotificationStream()
    assert stream.send("nobody", {"x": 1}) is False


@pytest.mark.asyncio
async def test_events_yields_pushed_frames():
    stream = NotificationStream(keep_alive_seconds=5)
    connection = stream.register("u1")
    events = stream.events(connection)

    assert await events.__anext__() == ": connected\n\n"
    assert stream.send("u1", {"content": "hello"}) is True
    assert _decode(await events.__anext__()) == {"content": "hello"}
    await events.aclose()


@pytest.mark.asyncio
async def test_idle_channel_emits_keep_alive():
    stream = NotificationStream(keep_alive_seconds=0.01)
    events = stream.events(stream.register("u1"))

    await events.__anext__()
    assert await events.__anext__() == KEEP_ALIVE_FRAME
    await events.aclose()


@pytest.mark.asyncio
async def test_second_registration_closes_the_first():
    stream = NotificationStream()
    first = stream.register("u1")
    second = stream.register("u1")

    assert first.closed
    assert not second.closed
    stream.send("u1", {"n": 1})
    assert second.queue.qsize() == 1
    # Only the sentinel is queued on the stale connection.
    assert first.queue.get_nowait() is None


@pytest.mark.asyncio
async def test_stale_unregister_keeps_the_new_connection():
    stream = NotificationStream()
    first = stream.register("u1")
    second = stream.register("u1")

    stream.unregister("u1", first)
    assert stream.is_connected("u1")

    stream.unregister("u1", second)
    assert not stream.is_connected("u1")


@pytest.mark.asyncio
async def test_slow_reader_is_dropped_when_buffer_fills():
    stream = NotificationStream(queue_size=1)
    stream.register("u1")

    assert stream.send("u1", {"n": 1}) is True
    assert stream.send("u1", {"n": 2}) is False
    assert not stream.is_connected("u1")


@pytest.mark.asyncio
async def test_closing_the_stream_unregisters():
    stream = NotificationStream()
    events = stream.events(stream.register("u1"))
    await events.__anext__()

    await events.aclose()

    assert not stream.is_connected("u1")
    assert stream.send("u1", {"n": 1}) is False


# ── Persisted fan-out ───────────────────────────────────────────────────────

@pytest.fixture
def service():
    return NotificationService(stream=NotificationStream())


@pytest.mark.asyncio
async def test_new_request_reaches_active_approvers_only(db, factory, service):
    company = await factory.company()
    admin = await factory.user(company, UserRole.ADMIN)
    manager = await factory.user(company, UserRole.MANAGER)
    await factory.user(company, UserRole.MANAGER, is_active=False)
    requester = await factory.user(company, UserRole.USER, name="Kim")
    other = await factory.company("Other")
    await factory.user(other, UserRole.ADMIN)

    connection = service.stream.register(manager.id)
    count = await service.notify_purchase_requested(db, company.id, requester.id, "req-1")

    assert count == 2
    rows = await TenantAwareDataAccess(db).table(Notification).find_many()
    assert {r.receiver_id for r in rows} == {admin.id, manager.id}
    assert all(r.target_id == "req-1" for r in rows)
    assert all(r.content == "Kim sent a purchase request." for r in rows)

    event = _decode(connection.queue.get_nowait())
    assert event["receiver_id"] == manager.id
    assert event["target_type"] == NotificationTargetType.PURCHASE_REQUEST.value
    assert event["is_read"] is False


@pytest.mark.asyncio
async def test_offline_recipient_still_gets_a_stored_row(db, factory, service):
    company = await factory.company()
    user = await factory.user(company)

    payload = await service.notify_purchase_denied(db, user.id, "req-9")

    assert payload.target_type == NotificationTargetType.DENIAL_NOTICE
    assert await NotificationService.count_unread(db, user.id) == 1


@pytest.mark.asyncio
async def test_mark_read_is_limited_to_the_receiver(db, factory, service):
    company = await factory.company()
    owner = await factory.user(company)
    intruder = await factory.user(company)
    payload = await service.notify_purchase_approved(db, owner.id, "req-2")

    with pytest.raises(NotFound) as exc_info:
        await NotificationService.mark_read(db, intruder.id, payload.id)
    assert exc_info.value.code == "NOTIFICATION_NOT_FOUND"

    notification = await NotificationService.mark_read(db, owner.id, payload.id)
    assert notification.is_read is True
    assert await NotificationService.count_unread(db, owner.id) == 0


@pytest.mark.asyncio
async def test_broadcast_counts_created_and_delivered(db, factory, service):
    company = await factory.company()
    await factory.user(company, UserRole.ADMIN)
    online = await factory.user(company, UserRole.USER)
    await factory.user(company, UserRole.USER)
    await factory.user(company, UserRole.MANAGER)
    await factory.user(company, UserRole.USER, is_active=False)
    service.stream.register(online.id)

    result = await service.broadcast_company_message(db, company.id, "Snacks arrive Friday")

    assert result == {"created_count": 3, "delivered_count": 1}


@pytest.mark.asyncio
async def test_list_notifications_newest_first(db, factory, service):
    company = await factory.company()
    user = await factory.user(company)
    for n in range(3):
        await service.create_and_push(
            db, user.id, f"notice {n}", NotificationTargetType.GENERAL_NOTICE, str(n)
        )

    total, rows = await NotificationService.list_notifications(db, user.id, page=1, limit=2)

    assert total == 3
    assert [r.content for r in rows] == ["notice 2", "notice 1"]


@pytest.mark.asyncio
async def test_cleanup_removes_only_expired_rows(db, factory, service):
    company = await factory.company()
    user = await factory.user(company)
    factory.session.add_all(
        [
            Notification(
                receiver_id=user.id,
                content="old",
                target_type=NotificationTargetType.GENERAL_NOTICE.value,
                target_id="x",
                created_at=utcnow() - timedelta(days=40),
            ),
            Notification(
                receiver_id=user.id,
                content="fresh",
                target_type=NotificationTargetType.GENERAL_NOTICE.value,
                target_id="y",
            ),
        ]
    )
    await factory.session.commit()

    deleted = await NotificationService.cleanup_old_notifications(db, retention_days=30)

    assert deleted == 1
    remaining = await TenantAwareDataAccess(db).table(Notification).find_many()
    assert [r.content for r in remaining] == ["fresh"]
