# app/models/orm/__init__.py
from .streaming_session import StreamingSession, SessionStatus
from .order import Order, OrderStatus
from .event import Event
from .base import Base
