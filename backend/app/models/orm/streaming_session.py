# app/models/orm/streaming_session.py
"""
Viewer streaming session model.

One row per browser holding a viewing slot on a purchased order link.
Rows are never deleted; a session leaves `active` exactly once, either
`ended` (viewer or admin closed it) or `expired` (heartbeat went silent).
"""
import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.models.orm.base import Base, IntegerMixin


class SessionStatus(str, enum.Enum):
    ACTIVE = "active"
    ENDED = "ended"
    EXPIRED = "expired"


class StreamingSession(Base, IntegerMixin):
    __tablename__ = "streaming_sessions"
    __table_args__ = (
        # Reaping, counting and reclaim all filter on this triple
        Index("ix_streaming_sessions_order_status", "tenant_id", "order_id", "status"),
    )

    app_id: Mapped[str] = mapped_column(String(255))
    tenant_id: Mapped[str] = mapped_column(String(255))

    order_id: Mapped[int] = mapped_column(Integer)
    ticket_id: Mapped[int] = mapped_column(Integer)
    event_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    user_id: Mapped[str] = mapped_column(String(255), index=True)
    user_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    user_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Bearer credential for heartbeat / end
    session_token: Mapped[str] = mapped_column(String(255), unique=True, index=True)

    # Browser fingerprint, only used to let a reopened tab reclaim its slot
    ip_address: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(
        String(50), default=SessionStatus.ACTIVE.value, index=True
    )

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    last_activity_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    ended_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
