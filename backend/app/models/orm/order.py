# app/models/orm/order.py
"""
Read-only mapping of the orders table.
Orders are written by the checkout/billing service; only the columns needed
to decide whether a buyer may start streaming are mapped here.
"""
from typing import Optional

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.orm.base import Base, IntegerMixin, TimestampMixin


class OrderStatus:
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class Order(Base, IntegerMixin, TimestampMixin):
    __tablename__ = "orders"

    app_id: Mapped[str] = mapped_column(String(255))
    tenant_id: Mapped[str] = mapped_column(String(255), index=True)
    user_id: Mapped[str] = mapped_column(String(255), index=True)
    order_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    event_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(String(50), default=OrderStatus.PENDING)
