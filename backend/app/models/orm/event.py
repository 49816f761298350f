# app/models/orm/event.py
from typing import Optional

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.orm.base import Base, IntegerMixin, TimestampMixin


class Event(Base, IntegerMixin, TimestampMixin):
    __tablename__ = "events"

    app_id: Mapped[str] = mapped_column(String(255))
    tenant_id: Mapped[str] = mapped_column(String(255), index=True)
    title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Per-link viewer cap set by the producer; <= 0 means "use platform default"
    max_concurrent_viewers_per_link: Mapped[Optional[int]] = mapped_column(
        Integer, nullable=True, default=1
    )
