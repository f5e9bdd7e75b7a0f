"""
dependencies.py
---------------
FastAPI dependency injection functions: the request gate chain.

Flow:
  1. get_current_principal (authentication gate) parses the Authorization
     header strictly ("Bearer" <ws>+ <token>, no whitespace inside the
     token), validates the JWT and its payload shape, then re-checks the
     user row so deactivated accounts are rejected even with a live token.
  2. require_tenant (tenant gate) installs the TenantContext for the rest
     of the request. Routers that touch tenant-scoped tables declare it in
     their `dependencies=[...]`.
  3. require_min_role / require_roles (role gate) compare the principal's
     role; they know nothing about tenancy.
"""

from dataclasses import dataclass
from typing import Annotated, AsyncIterator, Callable

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import Forbidden, Unauthenticated
from app.core.logging import get_logger
from app.core.security import decode_access_token
from app.core.tenant_context import TenantContext, tenant_scope
from app.db.session import get_db
from app.db.tenant_access import TenantAwareDataAccess
from app.models.user import User, UserRole

logger = get_logger(__name__)

_WHITESPACE = (" ", "\t")


@dataclass(frozen=True)
class Principal:
    id: str
    company_id: str
    email: str
    role: UserRole
    iat: int
    exp: int


def extract_bearer_token(header: str | None) -> str:
    """
    Accepts:  "Bearer <token>", "bearer    <token>"
    Rejects:  missing header, "Bearer", "Bearer<token>", other schemes,
              tokens with embedded whitespace.
    """
    if header is None or not header.strip():
        raise Unauthenticated("Authorization header is missing")

    value = header.strip()
    if value[:6].lower() != "bearer":
        raise Unauthenticated(
            "Invalid Authorization header format", code="INVALID_AUTH_HEADER"
        )

    rest = value[6:]
    if not rest:
        raise Unauthenticated("Bearer token is missing")
    if rest[0] not in _WHITESPACE:
        raise Unauthenticated(
            "Invalid Authorization header format", code="INVALID_AUTH_HEADER"
        )

    token = rest.strip()
    if not token:
        raise Unauthenticated("Bearer token is missing")
    if any(ch.isspace() for ch in token):
        raise Unauthenticated(
            "Bearer token must not contain whitespace", code="INVALID_AUTH_HEADER"
        )
    return token


async def get_data_access(
    db: Annotated[AsyncSession, Depends(get_db)],
) -> TenantAwareDataAccess:
    return TenantAwareDataAccess(db)


async def get_current_principal(
    request: Request,
    data: Annotated[TenantAwareDataAccess, Depends(get_data_access)],
) -> Principal:
    """
    Decode the JWT, then confirm the user still exists, still belongs to
    the token's company, and is active. Raises 401 otherwise.
    """
    token = extract_bearer_token(request.headers.get("Authorization"))
    payload = decode_access_token(token)

    # Runs before the tenant gate, so the lookup is filtered explicitly.
    user = await data.table(User).find_one(
        {"id": payload.sub, "company_id": payload.company_id}
    )
    if user is None:
        logger.warning("User from valid JWT not found in DB", user_id=payload.sub)
        raise Unauthenticated("Could not validate credentials", code="AUTH_INVALID_TOKEN")
    if not user.is_active:
        logger.warning("Inactive user rejected", user_id=user.id)
        raise Unauthenticated("Account is deactivated", code="AUTH_INACTIVE_USER")

    principal = Principal(
        id=user.id,
        company_id=user.company_id,
        email=user.email,
        role=UserRole(user.role),
        iat=payload.iat,
        exp=payload.exp,
    )
    request.state.principal = principal
    return principal


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]


async def require_tenant(principal: CurrentPrincipal) -> AsyncIterator[TenantContext]:
    """
    Tenant gate. Every tenant-scoped query issued while serving the
    request is filtered by the context installed here.
    """
    if principal is None:
        raise Unauthenticated()
    if not principal.company_id:
        raise Forbidden("User is not affiliated with a company")

    with tenant_scope(
        TenantContext(company_id=principal.company_id, user_id=principal.id)
    ) as context:
        yield context


def require_min_role(min_role: UserRole) -> Callable:
    """Role gate: USER < MANAGER < ADMIN."""

    async def _check(principal: CurrentPrincipal) -> Principal:
        if not principal.role.at_least(min_role):
            raise Forbidden(f"{min_role.value} role or higher required")
        return principal

    return _check


def require_roles(*allowed: UserRole) -> Callable:
    """Role gate: principal's role must be one of `allowed`."""
    allowed_set = frozenset(allowed)

    async def _check(principal: CurrentPrincipal) -> Principal:
        if principal.role not in allowed_set:
            raise Forbidden()
        return principal

    return _check


AnyMember = Annotated[Principal, Depends(require_min_role(UserRole.USER))]
Manager = Annotated[Principal, Depends(require_min_role(UserRole.MANAGER))]
Admin = Annotated[Principal, Depends(require_roles(UserRole.ADMIN))]
DataAccess = Annotated[TenantAwareDataAccess, Depends(get_data_access)]
