"""Query helpers shared by the services."""
from typing import Any, List, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

MAX_PAGE_SIZE = 100


def clamp_page(page: int, page_size: int) -> Tuple[int, int]:
    return max(1, page), max(1, min(page_size, MAX_PAGE_SIZE))


async def paginate(
    db: AsyncSession,
    stmt: Select,
    page: int = 1,
    page_size: int = 20,
    scalars: bool = True,
) -> Tuple[List[Any], int]:
    """Run ``stmt`` for one page and count the full result set.

    Returns:
        (items, total)
    """
    page, page_size = clamp_page(page, page_size)
    total = await db.scalar(select(func.count()).select_from(stmt.order_by(None).subquery()))

    result = await db.execute(stmt.offset((page - 1) * page_size).limit(page_size))
    items = list(result.scalars().all()) if scalars else list(result.all())
    return items, total or 0


async def get_or_none(db: AsyncSession, model: Any, ident: Any):
    if ident is None:
        return None
    return await db.get(model, ident)
