"""
db/tenant_access.py
-------------------
Tenant-aware data access.

Every read or write against a tenant-scoped table goes through a
ScopedTable, which consults the ambient TenantContext:

  reads  (find_many / find_one / count / aggregate / sum / group_by)
      → `company_id = <context company>` is merged into the filter.
        A caller-supplied company_id is overwritten.
  create / create_many
      → company_id is stamped from the context.
  update_many / delete_many
      → same filter merge as reads, so guessing a primary key from another
        tenant matches zero rows.
  upsert
      → filter merge on the lookup, company_id stamped on the insert.
        Runs as INSERT ... ON CONFLICT DO UPDATE, so two callers racing on
        the same key both succeed.

Update values naming company_id are overwritten with the context company,
so a row can never be moved into another tenant.

Reads return identity-mapped objects as they are. Pass refresh=True after a
bulk UPDATE in the same session to reload the changed columns.

With no context (scheduled jobs) filters pass through unchanged. Request
handlers reach tenant-scoped tables only behind the tenant gate
(dependencies.require_tenant), which always establishes a context.
unscoped_table() skips the filter explicitly, for the few cross-tenant
lookups (email uniqueness).

Filters are plain `{attribute: value}` mappings; a list/tuple/set value
becomes an IN clause. Extra SQLAlchemy expressions go in `criteria` and are
ANDed with the tenant filter.
"""

from typing import Any, Generic, Iterable, Mapping, Sequence, TypeVar

from sqlalchemy import Select, delete, func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.tenant_context import get_tenant_context
from app.db.base import Base, utcnow

M = TypeVar("M", bound=Base)

TENANT_COLUMN = "company_id"

# Tables carrying company_id. carts / purchase_items / notifications are
# owned through user or parent rows; companies and categories are global.
TENANT_SCOPED_TABLES: frozenset[str] = frozenset(
    {
        "products",
        "purchase_requests",
        "budgets",
        "budget_criteria",
        "users",
        "uploads",
        "wishlists",
        "invitations",
    }
)

# ON CONFLICT support per dialect, used by upsert.
_DIALECT_INSERTS = {"postgresql": postgresql.insert, "sqlite": sqlite.insert}


class ScopedTable(Generic[M]):
    """Query helper for one model, bound to a session."""

    def __init__(self, session: AsyncSession, model: type[M], tenant_scoped: bool) -> None:
        self.session = session
        self.model = model
        self.tenant_scoped = tenant_scoped

    # ── Filter merging ────────────────────────────────────────────────────────

    def _tenant_id(self) -> str | None:
        if not self.tenant_scoped:
            return None
        context = get_tenant_context()
        return context.company_id if context else None

    def scope_where(self, where: Mapping[str, Any] | None) -> dict[str, Any]:
        merged = dict(where or {})
        tenant_id = self._tenant_id()
        if tenant_id is not None:
            merged[TENANT_COLUMN] = tenant_id
        return merged

    def scope_payload(self, data: Mapping[str, Any]) -> dict[str, Any]:
        payload = dict(data)
        tenant_id = self._tenant_id()
        if tenant_id is not None:
            payload[TENANT_COLUMN] = tenant_id
        return payload

    def scope_values(self, values: Mapping[str, Any]) -> dict[str, Any]:
        """SET clause with any company_id pinned to the context company."""
        scoped = dict(values)
        tenant_id = self._tenant_id()
        if tenant_id is not None and TENANT_COLUMN in scoped:
            scoped[TENANT_COLUMN] = tenant_id
        return scoped

    def conditions(
        self,
        where: Mapping[str, Any] | None = None,
        criteria: Iterable[Any] = (),
    ) -> list[Any]:
        clauses = []
        for key, value in self.scope_where(where).items():
            column = getattr(self.model, key)
            if isinstance(value, (list, tuple, set, frozenset)):
                clauses.append(column.in_(list(value)))
            elif value is None:
                clauses.append(column.is_(None))
            else:
                clauses.append(column == value)
        clauses.extend(criteria)
        return clauses

    def select(
        self,
        where: Mapping[str, Any] | None = None,
        *,
        criteria: Iterable[Any] = (),
    ) -> Select:
        """Tenant-filtered SELECT of the model, for callers that need to chain."""
        return select(self.model).where(*self.conditions(where, criteria))

    # ── Reads ────────────────────────────────────────────────────────────────

    async def find_many(
        self,
        where: Mapping[str, Any] | None = None,
        *,
        criteria: Iterable[Any] = (),
        order_by: Sequence[Any] = (),
        offset: int | None = None,
        limit: int | None = None,
        options: Sequence[Any] = (),
        for_update: bool = False,
        refresh: bool = False,
    ) -> list[M]:
        stmt = self.select(where, criteria=criteria)
        if order_by:
            stmt = stmt.order_by(*order_by)
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        if options:
            stmt = stmt.options(*options)
        if for_update:
            stmt = stmt.with_for_update()
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return list(result.scalars().unique().all())

    async def find_one(
        self,
        where: Mapping[str, Any] | None = None,
        *,
        criteria: Iterable[Any] = (),
        order_by: Sequence[Any] = (),
        options: Sequence[Any] = (),
        for_update: bool = False,
        refresh: bool = False,
    ) -> M | None:
        rows = await self.find_many(
            where,
            criteria=criteria,
            order_by=order_by,
            limit=1,
            options=options,
            for_update=for_update,
            refresh=refresh,
        )
        return rows[0] if rows else None

    async def count(
        self,
        where: Mapping[str, Any] | None = None,
        *,
        criteria: Iterable[Any] = (),
    ) -> int:
        stmt = (
            select(func.count())
            .select_from(self.model)
            .where(*self.conditions(where, criteria))
        )
        return (await self.session.execute(stmt)).scalar_one()

    async def aggregate(
        self,
        *columns: Any,
        where: Mapping[str, Any] | None = None,
        criteria: Iterable[Any] = (),
        joins: Sequence[Any] = (),
    ):
        """Single-row aggregate, e.g. aggregate(func.sum(Budget.amount))."""
        stmt = select(*columns).select_from(self.model)
        for target in joins:
            stmt = stmt.join(target)
        stmt = stmt.where(*self.conditions(where, criteria))
        return (await self.session.execute(stmt)).one()

    async def sum(
        self,
        column: Any,
        where: Mapping[str, Any] | None = None,
        *,
        criteria: Iterable[Any] = (),
    ) -> int:
        row = await self.aggregate(
            func.coalesce(func.sum(column), 0), where=where, criteria=criteria
        )
        return int(row[0])

    async def group_by(
        self,
        group_columns: Sequence[Any],
        aggregates: Sequence[Any],
        where: Mapping[str, Any] | None = None,
        *,
        criteria: Iterable[Any] = (),
        joins: Sequence[Any] = (),
        order_by: Sequence[Any] = (),
        limit: int | None = None,
    ) -> list:
        stmt = select(*group_columns, *aggregates).select_from(self.model)
        for target in joins:
            stmt = stmt.join(target)
        stmt = stmt.where(*self.conditions(where, criteria)).group_by(*group_columns)
        if order_by:
            stmt = stmt.order_by(*order_by)
        if limit is not None:
            stmt = stmt.limit(limit)
        return list((await self.session.execute(stmt)).all())

    # ── Writes ───────────────────────────────────────────────────────────────

    async def create(self, data: Mapping[str, Any]) -> M:
        instance = self.model(**self.scope_payload(data))
        self.session.add(instance)
        await self.session.flush()
        return instance

    async def create_many(self, rows: Iterable[Mapping[str, Any]]) -> list[M]:
        instances = [self.model(**self.scope_payload(row)) for row in rows]
        self.session.add_all(instances)
        await self.session.flush()
        return instances

    async def update_many(
        self,
        where: Mapping[str, Any] | None,
        values: Mapping[str, Any],
        *,
        criteria: Iterable[Any] = (),
    ) -> int:
        """Conditional UPDATE; returns the number of rows affected."""
        stmt = (
            update(self.model)
            .where(*self.conditions(where, criteria))
            .values(**self.scope_values(values))
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def delete_many(
        self,
        where: Mapping[str, Any] | None,
        *,
        criteria: Iterable[Any] = (),
    ) -> int:
        stmt = (
            delete(self.model)
            .where(*self.conditions(where, criteria))
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def upsert(
        self,
        where: Mapping[str, Any],
        create: Mapping[str, Any],
        update_values: Mapping[str, Any],
    ) -> tuple[M, bool]:
        """
        Insert `create`, or apply `update_values` to the row matching `where`.
        The columns named in `where` must form a unique constraint; they are
        the ON CONFLICT target.

        Returns (instance, created). `created` is judged from a read taken
        just before the statement, so a racing caller may also see True.
        """
        lookup = self.scope_where(where)
        existing = await self.find_one(lookup)

        values = self.scope_values(update_values)
        if "updated_at" in self.model.__table__.c:
            values.setdefault("updated_at", utcnow())

        insert = _DIALECT_INSERTS[self.session.bind.dialect.name]
        stmt = (
            insert(self.model)
            .values(**{**self.scope_payload(create), **lookup})
            .on_conflict_do_update(index_elements=list(lookup), set_=values)
        )
        await self.session.execute(stmt)

        row = await self.find_one(lookup, refresh=True)
        return row, existing is None


class TenantAwareDataAccess:
    """
    Entry point services use instead of raw session queries:

        data = TenantAwareDataAccess(db)
        products = await data.table(Product).find_many({"is_active": True})
    """

    def __init__(
        self,
        session: AsyncSession,
        tenant_tables: frozenset[str] = TENANT_SCOPED_TABLES,
    ) -> None:
        self.session = session
        self.tenant_tables = tenant_tables

    def table(self, model: type[M]) -> ScopedTable[M]:
        return ScopedTable(
            self.session, model, model.__tablename__ in self.tenant_tables
        )

    def unscoped_table(self, model: type[M]) -> ScopedTable[M]:
        """
        Unfiltered access for lookups that span tenants by nature: global
        email uniqueness, and links resolved before anyone is logged in.
        """
        return ScopedTable(self.session, model, tenant_scoped=False)
