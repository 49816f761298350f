# app/repository/event_repo.py

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from app.models.orm.event import Event


async def get_concurrency_limit(
    db: AsyncSession,
    app_id: str,
    tenant_id: str,
    event_id: int,
) -> int | None:
    result = await db.execute(
        select(Event.max_concurrent_viewers_per_link).where(
            Event.app_id == app_id,
            Event.tenant_id == tenant_id,
            Event.id == event_id,
        )
    )
    return result.scalar_one_or_none()
