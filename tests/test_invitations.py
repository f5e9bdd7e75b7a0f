"""Invitations: issuance, link verification and signup."""

from datetime import timedelta

import pytest

from app.core.exceptions import Conflict, InvalidInput, Unauthenticated
from app.core.security import hash_token
from app.core.tenant_context import TenantContext, tenant_scope
from app.db.base import utcnow
from app.db.tenant_access import TenantAwareDataAccess
from app.models import Invitation, User, UserRole
from app.schemas.invitation import InvitationCreate
from app.services.email_service import email_service
from app.services.invitation_service import InvitationService


def scope(user):
    return tenant_scope(TenantContext(company_id=user.company_id, user_id=user.id))


@pytest.fixture
def outbox(monkeypatch):
    sent = []

    async def capture(to, name, company_name, invite_url):
        sent.append({"to": to, "company": company_name, "url": invite_url})
        return True

    monkeypatch.setattr(email_service, "send_invitation", capture)
    return sent


async def _invite(db, admin, email="new.hire@acme.io", role=UserRole.USER):
    body = InvitationCreate(email=email, name="New Hire", role=role)
    with scope(admin):
        return await InvitationService.create(db, admin.company_id, admin.id, body)


# ── Issuance ────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_invitation_stores_only_the_token_hash(db, factory, outbox):
    company = await factory.company("Acme")
    admin = await factory.user(company, UserRole.ADMIN)

    invitation, link, sent = await _invite(db, admin, email="New.Hire@Acme.io")

    assert sent is True
    assert invitation.email == "new.hire@acme.io"
    assert invitation.company_id == company.id
    token = InvitationService.token_from_url(link)
    assert invitation.token_hash == hash_token(token) != token
    assert outbox == [{"to": "new.hire@acme.io", "company": "Acme", "url": link}]


@pytest.mark.asyncio
async def test_reinvite_refreshes_the_same_row(db, factory, outbox):
    company = await factory.company()
    admin = await factory.user(company, UserRole.ADMIN)

    first, first_link, _ = await _invite(db, admin)
    second, second_link, _ = await _invite(db, admin, role=UserRole.MANAGER)

    assert second.id == first.id
    assert second.role == UserRole.MANAGER.value
    assert await TenantAwareDataAccess(db).table(Invitation).count() == 1
    with pytest.raises(Unauthenticated):
        await InvitationService.verify(db, InvitationService.token_from_url(first_link))
    info = await InvitationService.verify(db, InvitationService.token_from_url(second_link))
    assert info.role == UserRole.MANAGER.value


@pytest.mark.asyncio
async def test_cannot_invite_registered_or_elsewhere_pending_email(db, factory, outbox):
    acme = await factory.company("Acme")
    globex = await factory.company("Globex")
    acme_admin = await factory.user(acme, UserRole.ADMIN)
    globex_admin = await factory.user(globex, UserRole.ADMIN)
    member = await factory.user(globex)

    with pytest.raises(Conflict) as exc_info:
        await _invite(db, acme_admin, email=member.email)
    assert exc_info.value.code == "USER_EMAIL_TAKEN"

    await _invite(db, globex_admin)
    with pytest.raises(Conflict) as exc_info:
        await _invite(db, acme_admin)
    assert exc_info.value.code == "INVITATION_PENDING_ELSEWHERE"


@pytest.mark.asyncio
async def test_failed_mail_still_issues_the_invitation(db, factory, monkeypatch):
    company = await factory.company()
    admin = await factory.user(company, UserRole.ADMIN)

    async def bounce(to, name, company_name, invite_url):
        return False

    monkeypatch.setattr(email_service, "send_invitation", bounce)
    invitation, link, sent = await _invite(db, admin)

    assert sent is False
    assert (await InvitationService.verify(db, InvitationService.token_from_url(link))).id == invitation.id


# ── Links ───────────────────────────────────────────────────────────────────

def test_token_is_read_from_query_or_fragment():
    assert InvitationService.token_from_url("https://app.io/signup?token=abc&x=1") == "abc"
    assert InvitationService.token_from_url("/signup#token=xyz") == "xyz"
    with pytest.raises(InvalidInput):
        InvitationService.token_from_url("https://app.io/signup")


# ── Signup ──────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_accept_creates_user_once(db, factory, session_factory, outbox):
    company = await factory.company()
    admin = await factory.user(company, UserRole.ADMIN)
    _, link, _ = await _invite(db, admin, role=UserRole.MANAGER)
    token = InvitationService.token_from_url(link)

    user = await InvitationService.accept(db, token, "invited-pass1")

    assert (user.email, user.role, user.company_id) == (
        "new.hire@acme.io",
        UserRole.MANAGER.value,
        company.id,
    )
    with pytest.raises(Unauthenticated) as exc_info:
        await InvitationService.accept(db, token, "invited-pass1")
    assert exc_info.value.code == "AUTH_INVALID_TOKEN"

    async with session_factory() as check:
        users = TenantAwareDataAccess(check).table(User)
        assert await users.count({"email": "new.hire@acme.io"}) == 1


@pytest.mark.asyncio
async def test_expired_and_revoked_invitations_are_refused(db, factory, outbox):
    company = await factory.company()
    admin = await factory.user(company, UserRole.ADMIN)
    invitation, link, _ = await _invite(db, admin)
    token = InvitationService.token_from_url(link)
    invitations = TenantAwareDataAccess(db).table(Invitation)

    await invitations.update_many(
        {"id": invitation.id}, {"expires_at": utcnow() - timedelta(hours=1)}
    )
    await db.commit()
    with pytest.raises(Unauthenticated) as exc_info:
        await InvitationService.verify(db, token)
    assert exc_info.value.code == "AUTH_TOKEN_EXPIRED"

    _, link, _ = await _invite(db, admin)
    with scope(admin):
        await InvitationService.revoke(db, company.id, invitation.id)
    with pytest.raises(Unauthenticated) as exc_info:
        await InvitationService.accept(db, InvitationService.token_from_url(link), "invited-pass1")
    assert exc_info.value.code == "AUTH_INVALID_TOKEN"
    with pytest.raises(Unauthenticated):
        await InvitationService.verify(db, "made-up-token")


# ── HTTP ────────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_invitation_endpoints(client, factory, auth, outbox):
    company = await factory.company()
    admin = await factory.user(company, UserRole.ADMIN)
    manager = await factory.user(company, UserRole.MANAGER)

    refused = await client.post(
        "/admin/invitations",
        json={"email": "hire@acme.io", "name": "Hire"},
        headers=auth(manager),
    )
    assert refused.status_code == 403

    issued = await client.post(
        "/admin/invitations",
        json={"email": "hire@acme.io", "name": "Hire"},
        headers=auth(admin),
    )
    assert issued.status_code == 201
    invite_url = issued.json()["data"]["invite_url"]
    assert issued.json()["data"]["email_sent"] is True

    listed = await client.get("/admin/invitations", headers=auth(admin))
    assert [i["email"] for i in listed.json()["data"]] == ["hire@acme.io"]

    verified = await client.post("/auth/invitations/verify", json={"invite_url": invite_url})
    assert verified.status_code == 200
    assert verified.json()["data"] == {"email": "hire@acme.io", "name": "Hire", "role": "USER"}

    token = InvitationService.token_from_url(invite_url)
    accepted = await client.post(
        "/auth/invitations/accept", json={"token": token, "password": "hirepass12"}
    )
    assert accepted.status_code == 201
    assert accepted.json()["data"]["user"]["company_id"] == company.id
    assert accepted.json()["data"]["refresh_token"]

    reused = await client.post("/auth/invitations/verify", json={"invite_url": invite_url})
    assert reused.status_code == 401
    assert reused.json()["error"]["code"] == "AUTH_INVALID_TOKEN"
