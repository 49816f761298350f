# app/repository/order_repo.py

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from app.models.orm.order import Order


async def get_order_for_user(
    db: AsyncSession,
    app_id: str,
    tenant_id: str,
    user_id: str,
    order_id: int,
) -> Order | None:
    """Order `order_id` if it exists in this tenant and was placed by `user_id`."""
    result = await db.execute(
        select(Order).where(
            Order.app_id == app_id,
            Order.tenant_id == tenant_id,
            Order.user_id == user_id,
            Order.id == order_id,
        )
    )
    return result.scalar_one_or_none()
