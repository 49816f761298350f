# app/repository/streaming_repo.py

import secrets
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import and_, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.orm.streaming_session import SessionStatus, StreamingSession

ACTIVE = SessionStatus.ACTIVE.value


def generate_session_token() -> str:
    return secrets.token_hex(32)


def _scoped(app_id: str, tenant_id: str, *criteria):
    return and_(
        StreamingSession.app_id == app_id,
        StreamingSession.tenant_id == tenant_id,
        *criteria,
    )


def _select_sessions():
    # Bulk UPDATEs below skip session synchronization, so reads always
    # refresh identity-map objects from the row.
    return select(StreamingSession).execution_options(populate_existing=True)


async def create_session(
    db: AsyncSession,
    app_id: str,
    tenant_id: str,
    now: datetime,
    order_id: int,
    ticket_id: int,
    user_id: str,
    ip_address: str,
    user_agent: str,
    event_id: Optional[int] = None,
    user_email: Optional[str] = None,
    user_name: Optional[str] = None,
) -> StreamingSession:
    session = StreamingSession(
        app_id=app_id,
        tenant_id=tenant_id,
        session_token=generate_session_token(),
        order_id=order_id,
        ticket_id=ticket_id,
        event_id=event_id,
        user_id=user_id,
        user_email=user_email,
        user_name=user_name,
        ip_address=ip_address,
        user_agent=user_agent,
        status=ACTIVE,
        started_at=now,
        last_activity_at=now,
    )

    db.add(session)
    await db.commit()
    await db.refresh(session)

    return session


async def get_session_by_token(
    db: AsyncSession,
    session_token: str,
) -> StreamingSession | None:
    result = await db.execute(
        _select_sessions().where(StreamingSession.session_token == session_token)
    )
    return result.scalar_one_or_none()


async def get_active_sessions_by_order(
    db: AsyncSession,
    app_id: str,
    tenant_id: str,
    order_id: int,
) -> list[StreamingSession]:
    result = await db.execute(
        _select_sessions()
        .where(
            _scoped(
                app_id,
                tenant_id,
                StreamingSession.order_id == order_id,
                StreamingSession.status == ACTIVE,
            )
        )
        .order_by(StreamingSession.started_at.desc())
    )
    return list(result.scalars().all())


async def count_active_sessions_by_order(
    db: AsyncSession,
    app_id: str,
    tenant_id: str,
    order_id: int,
) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(StreamingSession)
        .where(
            _scoped(
                app_id,
                tenant_id,
                StreamingSession.order_id == order_id,
                StreamingSession.status == ACTIVE,
            )
        )
    )
    return result.scalar_one() or 0


async def get_previous_session_by_browser(
    db: AsyncSession,
    app_id: str,
    tenant_id: str,
    order_id: int,
    ip_address: str,
    user_agent: str,
) -> StreamingSession | None:
    """Most recently started active session opened from the same browser."""
    result = await db.execute(
        _select_sessions()
        .where(
            _scoped(
                app_id,
                tenant_id,
                StreamingSession.order_id == order_id,
                StreamingSession.ip_address == ip_address,
                StreamingSession.user_agent == user_agent,
                StreamingSession.status == ACTIVE,
            )
        )
        .order_by(StreamingSession.started_at.desc(), StreamingSession.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def list_sessions(
    db: AsyncSession,
    app_id: str,
    tenant_id: str,
    limit: int,
    offset: int,
    order_id: Optional[int] = None,
    ticket_id: Optional[int] = None,
    event_id: Optional[int] = None,
    user_id: Optional[str] = None,
    status: Optional[str] = None,
    active_only: bool = False,
) -> tuple[list[StreamingSession], int]:
    """Filtered page of sessions, newest first, plus the unpaged total."""
    conditions = []
    if order_id:
        conditions.append(StreamingSession.order_id == order_id)
    if ticket_id:
        conditions.append(StreamingSession.ticket_id == ticket_id)
    if event_id:
        conditions.append(StreamingSession.event_id == event_id)
    if user_id:
        conditions.append(StreamingSession.user_id == user_id)
    if status:
        conditions.append(StreamingSession.status == status)
    if active_only:
        conditions.append(StreamingSession.status == ACTIVE)

    where = _scoped(app_id, tenant_id, *conditions)

    total = (
        await db.execute(select(func.count()).select_from(StreamingSession).where(where))
    ).scalar_one() or 0

    result = await db.execute(
        _select_sessions()
        .where(where)
        .order_by(StreamingSession.started_at.desc(), StreamingSession.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all()), total


async def get_user_active_sessions(
    db: AsyncSession,
    app_id: str,
    tenant_id: str,
    user_id: str,
) -> list[StreamingSession]:
    result = await db.execute(
        _select_sessions()
        .where(
            _scoped(
                app_id,
                tenant_id,
                StreamingSession.user_id == user_id,
                StreamingSession.status == ACTIVE,
            )
        )
        .order_by(StreamingSession.started_at.desc())
    )
    return list(result.scalars().all())


async def expire_stale_sessions_for_order(
    db: AsyncSession,
    app_id: str,
    tenant_id: str,
    order_id: int,
    now: datetime,
    heartbeat_timeout_seconds: int,
) -> int:
    """Move active sessions with no heartbeat inside the timeout to expired."""
    cutoff = now - timedelta(seconds=heartbeat_timeout_seconds)

    result = await db.execute(
        update(StreamingSession)
        .where(
            _scoped(
                app_id,
                tenant_id,
                StreamingSession.order_id == order_id,
                StreamingSession.status == ACTIVE,
                StreamingSession.last_activity_at < cutoff,
            )
        )
        .values(status=SessionStatus.EXPIRED.value, ended_at=now)
        .execution_options(synchronize_session=False)
    )
    await db.commit()

    return result.rowcount or 0


async def close_session(
    db: AsyncSession,
    session_id: int,
    status: SessionStatus,
    now: datetime,
) -> bool:
    """
    Transition an active session to a terminal status.
    Returns False when the session had already left `active`, in which case
    nothing is written and the first `ended_at` is kept.
    """
    result = await db.execute(
        update(StreamingSession)
        .where(
            and_(
                StreamingSession.id == session_id,
                StreamingSession.status == ACTIVE,
            )
        )
        .values(status=status.value, ended_at=now)
        .execution_options(synchronize_session=False)
    )
    await db.commit()

    return (result.rowcount or 0) > 0


async def update_heartbeat(
    db: AsyncSession,
    session_id: int,
    now: datetime,
) -> bool:
    result = await db.execute(
        update(StreamingSession)
        .where(
            and_(
                StreamingSession.id == session_id,
                StreamingSession.status == ACTIVE,
            )
        )
        .values(last_activity_at=now)
        .execution_options(synchronize_session=False)
    )
    await db.commit()

    return (result.rowcount or 0) > 0
