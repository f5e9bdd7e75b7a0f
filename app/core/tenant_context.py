"""
core/tenant_context.py
----------------------
Ambient, request-scoped tenant context.

The context lives in a ContextVar, so it follows the request through every
await and into tasks spawned from it (asyncio copies the current context on
task creation), but never into tasks started by other requests.

No context (scheduled jobs, startup code) is a legal state:
get_tenant_context() returns None instead of raising.
"""

from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterator, TypeVar

import structlog

T = TypeVar("T")


@dataclass(frozen=True)
class TenantContext:
    company_id: str
    user_id: str


_tenant_context: ContextVar[TenantContext | None] = ContextVar(
    "tenant_context", default=None
)


def get_tenant_context() -> TenantContext | None:
    return _tenant_context.get()


@contextmanager
def tenant_scope(context: TenantContext) -> Iterator[TenantContext]:
    """
    Install `context` for the duration of the block.
    Nested scopes shadow the outer one and restore it on exit.
    """
    if not context.company_id:
        raise ValueError("TenantContext.company_id must be non-empty")
    token = _tenant_context.set(context)
    log_tokens = structlog.contextvars.bind_contextvars(
        company_id=context.company_id, user_id=context.user_id
    )
    try:
        yield context
    finally:
        structlog.contextvars.reset_contextvars(**log_tokens)
        _tenant_context.reset(token)


async def run_with_tenant_context(
    context: TenantContext,
    fn: Callable[..., Awaitable[T]],
    *args: Any,
    **kwargs: Any,
) -> T:
    """Await fn(*args, **kwargs) with `context` installed."""
    with tenant_scope(context):
        return await fn(*args, **kwargs)
