"""
create_tables.py
----------------
One-shot script to create all database tables and seed the shared
product categories. Use this for quick setup. For production migrations,
use Alembic instead.

Usage:
    python create_tables.py
"""

import asyncio

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from app.core.config import settings
from app.models import Base, Category  # Imports all models so metadata is populated

DEFAULT_CATEGORIES = [
    (1, "Snacks", None),
    (2, "Drinks", None),
    (3, "Water", None),
    (4, "Simple meals", None),
    (5, "Fresh food", None),
    (6, "Coffee & tea", None),
    (7, "Supplies", None),
    (101, "Chips", 1),
    (102, "Cookies", 1),
    (103, "Crackers", 1),
    (104, "Candy & jelly", 1),
    (201, "Soft drinks", 2),
    (202, "Juice", 2),
    (203, "Energy drinks", 2),
    (601, "Coffee beans", 6),
    (602, "Tea bags", 6),
]


async def seed_categories(engine: AsyncEngine) -> int:
    async with engine.begin() as conn:
        existing = (await conn.execute(select(func.count()).select_from(Category))).scalar_one()
        if existing:
            return 0
        await conn.execute(
            Category.__table__.insert(),
            [{"id": cid, "name": name, "parent_id": parent} for cid, name, parent in DEFAULT_CATEGORIES],
        )
    return len(DEFAULT_CATEGORIES)


async def create_all_tables(url: str | None = None, echo: bool = True) -> None:
    engine = create_async_engine(url or settings.DATABASE_URL, echo=echo)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    seeded = await seed_categories(engine)
    await engine.dispose()
    print(f"All tables created successfully ({seeded} categories seeded).")


if __name__ == "__main__":
    asyncio.run(create_all_tables())
