"""Authentication, tenant and role gates."""

from datetime import timedelta

import pytest
from fastapi.routing import APIRoute
from jose import jwt

from app.core.config import settings
from app.core.exceptions import Forbidden, Unauthenticated
from app.core.security import decode_access_token
from app.core.tenant_context import get_tenant_context
from app.dependencies import (
    Principal,
    extract_bearer_token,
    get_current_principal,
    require_tenant,
)
from app.models import UserRole
from main import app


@pytest.mark.parametrize(
    "header, expected",
    [
        ("Bearer abc.def.ghi", "abc.def.ghi"),
        ("bearer    abc.def.ghi", "abc.def.ghi"),
        ("Bearer\tabc.def.ghi  ", "abc.def.ghi"),
    ],
)
def test_bearer_accepted(header, expected):
    assert extract_bearer_token(header) == expected


@pytest.mark.parametrize(
    "header",
    [None, "", "   ", "Bearer", "Bearer   ", "Bearerabc.def", "Basic abc", "Bearer abc def"],
)
def test_bearer_rejected(header):
    with pytest.raises(Unauthenticated):
        extract_bearer_token(header)


def test_token_with_unexpected_shape_rejected():
    forged = jwt.encode(
        {"sub": "u", "company_id": "c", "role": "ADMIN", "admin": True, "iat": 1, "exp": 4102444800},
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM,
    )
    with pytest.raises(Unauthenticated) as exc_info:
        decode_access_token(forged)
    assert exc_info.value.code == "AUTH_INVALID_TOKEN"


def test_expired_token_rejected(token):
    class _User:
        id = "u"
        company_id = "c"
        email = "u@acme.io"
        role = "USER"

    expired = token(_User(), expires_delta=timedelta(seconds=-5))
    with pytest.raises(Unauthenticated) as exc_info:
        decode_access_token(expired)
    assert exc_info.value.code == "AUTH_TOKEN_EXPIRED"


@pytest.mark.asyncio
async def test_tenant_gate_requires_company():
    principal = Principal(
        id="u", company_id="", email="u@acme.io", role=UserRole.ADMIN, iat=0, exp=0
    )
    gate = require_tenant(principal)
    with pytest.raises(Forbidden):
        await gate.__anext__()


@pytest.mark.asyncio
async def test_tenant_gate_installs_and_clears_context():
    principal = Principal(
        id="u1", company_id="c1", email="u@acme.io", role=UserRole.USER, iat=0, exp=0
    )
    gate = require_tenant(principal)
    context = await gate.__anext__()
    assert get_tenant_context() == context
    assert context.company_id == "c1"
    with pytest.raises(StopAsyncIteration):
        await gate.__anext__()
    assert get_tenant_context() is None


def _dependency_calls(dependant) -> set:
    calls = set()
    for sub in dependant.dependencies:
        calls.add(sub.call)
        calls |= _dependency_calls(sub)
    return calls


def test_every_authenticated_route_passes_the_tenant_gate():
    for route in app.routes:
        if not isinstance(route, APIRoute) or route.path.startswith("/auth"):
            continue
        calls = _dependency_calls(route.dependant)
        if get_current_principal in calls:
            assert require_tenant in calls, route.path


@pytest.mark.asyncio
async def test_http_gate_errors(client, factory, auth):
    company = await factory.company()
    user = await factory.user(company)
    inactive = await factory.user(company, is_active=False)

    missing = await client.get("/companies/me")
    assert missing.status_code == 401
    assert missing.json()["success"] is False

    malformed = await client.get("/companies/me", headers={"Authorization": "Bearerxyz"})
    assert malformed.status_code == 401
    assert malformed.json()["error"]["code"] == "INVALID_AUTH_HEADER"

    rejected = await client.get("/companies/me", headers=auth(inactive))
    assert rejected.status_code == 401
    assert rejected.json()["error"]["code"] == "AUTH_INACTIVE_USER"

    ok = await client.get("/companies/me", headers=auth(user))
    assert ok.status_code == 200
    assert ok.json()["data"]["id"] == company.id

    forbidden = await client.get("/purchases/statistics", headers=auth(user))
    assert forbidden.status_code == 403
    assert forbidden.json()["error"]["code"] == "AUTH_FORBIDDEN"
