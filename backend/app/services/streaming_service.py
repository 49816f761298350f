"""
Viewer streaming session admission.

Each purchased order link may be watched by a limited number of browsers at
once. A browser asks for a session, keeps it alive with heartbeats, and ends
it when the player closes. Sessions whose heartbeat goes silent are expired
lazily: the next admission or stats call on the same order reaps them, and
point-in-time validation expires a single session after a longer grace
window.

There is no in-process locking. Admission counts active rows and inserts in
two steps, so two simultaneous requests on a nearly full order can both be
admitted; the next reap/admission cycle restores the cap.

A browser reopening the link (same IP address and user agent as one of the
order's active sessions) is admitted even when the order is full, so a tab
refresh cannot lock its own viewer out before the old heartbeat times out.
The old session is ended once the new one exists, leaving the active count
where it was. The fingerprint is trivially spoofable and is not an
authorization check.
"""

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Configs
from app.core.exceptions import (
    CapacityError,
    NotFoundError,
    PreconditionFailedError,
    ValidationError,
)
from app.models.orm.order import OrderStatus
from app.models.orm.streaming_session import SessionStatus, StreamingSession
from app.repository import event_repo, order_repo, streaming_repo
from app.schemas.auth_schema import TenantScope
from app.schemas.streaming_schema import (
    CreateSessionResponse,
    NewStreamingSession,
    PaginationParams,
    StreamingSessionFilter,
    StreamingSessionListResponse,
    StreamingSessionResponse,
    StreamingStats,
    ValidateSessionResult,
)

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT = "unknown"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Stores without timezone support hand back naive UTC datetimes."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def to_epoch_ms(value: datetime) -> int:
    return int(as_utc(value).timestamp() * 1000)


def extract_client_info(ip: Optional[str], user_agent: Optional[str]) -> tuple[str, str]:
    return ip or UNKNOWN_CLIENT, user_agent or UNKNOWN_CLIENT


class StreamingPolicy(BaseModel):
    default_max_concurrent: int = 2
    heartbeat_timeout_seconds: int = 15
    validation_grace_factor: int = 2
    session_expiry_minutes: int = 30
    default_page_size: int = 10
    max_page_size: int = 100

    class Config:
        frozen = True

    @property
    def validation_grace_seconds(self) -> int:
        return self.heartbeat_timeout_seconds * self.validation_grace_factor

    @classmethod
    def from_configs(cls, configs: Configs) -> "StreamingPolicy":
        return cls(
            default_max_concurrent=configs.STREAMING_DEFAULT_MAX_CONCURRENT,
            heartbeat_timeout_seconds=configs.STREAMING_HEARTBEAT_TIMEOUT_SECONDS,
            validation_grace_factor=configs.STREAMING_VALIDATION_GRACE_FACTOR,
            session_expiry_minutes=configs.STREAMING_SESSION_EXPIRY_MINUTES,
            default_page_size=configs.PAGE_SIZE,
            max_page_size=configs.MAX_PAGE_SIZE,
        )


class StreamingService:
    def __init__(
        self,
        db: AsyncSession,
        policy: StreamingPolicy,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.db = db
        self.policy = policy
        self.clock = clock

    # ── Admission ────────────────────────────────────────────────────

    async def create_session(
        self,
        scope: TenantScope,
        data: NewStreamingSession,
    ) -> CreateSessionResponse:
        if not data.order_id:
            raise ValidationError("Order ID is required")
        if not data.ticket_id:
            raise ValidationError("Ticket ID is required")
        if not data.user_id:
            raise ValidationError("User ID is required")

        order = await order_repo.get_order_for_user(
            self.db, scope.app_id, scope.tenant_id, data.user_id, data.order_id
        )
        if not order:
            raise NotFoundError("Order")
        if order.status != OrderStatus.COMPLETED:
            raise PreconditionFailedError("Order is not completed")

        now = self.clock()
        ip_address, user_agent = extract_client_info(data.ip_address, data.user_agent)

        # Reap must commit before the count below reads
        await self._reap(scope, data.order_id, now)

        previous = await streaming_repo.get_previous_session_by_browser(
            self.db,
            scope.app_id,
            scope.tenant_id,
            data.order_id,
            ip_address,
            user_agent,
        )

        active_count = await streaming_repo.count_active_sessions_by_order(
            self.db, scope.app_id, scope.tenant_id, data.order_id
        )
        max_concurrent = await self.resolve_max_concurrent(scope, data.event_id)

        if active_count >= max_concurrent and not previous:
            logger.warning(
                f"[STREAMING] Order {data.order_id} rejected new viewer: "
                f"{active_count}/{max_concurrent} active"
            )
            raise CapacityError(
                f"Maximum concurrent viewers ({max_concurrent}) reached for this link"
            )

        session = await streaming_repo.create_session(
            self.db,
            scope.app_id,
            scope.tenant_id,
            now,
            order_id=data.order_id,
            ticket_id=data.ticket_id,
            event_id=data.event_id,
            user_id=data.user_id,
            user_email=data.user_email,
            user_name=data.user_name,
            ip_address=ip_address,
            user_agent=user_agent,
        )

        if previous:
            # The reopened tab takes over the old tab's slot. Ending the superseded
            # session here is what keeps a reconnect from raising the active count.
            await streaming_repo.close_session(self.db, previous.id, SessionStatus.ENDED, now)
            logger.info(
                f"[STREAMING] Session {session.id} reclaimed browser slot of "
                f"session {previous.id} on order {data.order_id}"
            )
        else:
            logger.info(f"[STREAMING] Created session {session.id} for order {data.order_id}")

        expires_at = now + timedelta(minutes=self.policy.session_expiry_minutes)
        return CreateSessionResponse(
            session_token=session.session_token,
            expires_at=to_epoch_ms(expires_at),
        )

    async def resolve_max_concurrent(
        self,
        scope: TenantScope,
        event_id: Optional[int] = None,
    ) -> int:
        if event_id:
            limit = await event_repo.get_concurrency_limit(
                self.db, scope.app_id, scope.tenant_id, event_id
            )
            if limit is not None and limit > 0:
                return limit
        return self.policy.default_max_concurrent

    async def _reap(self, scope: TenantScope, order_id: int, now: datetime) -> int:
        expired = await streaming_repo.expire_stale_sessions_for_order(
            self.db,
            scope.app_id,
            scope.tenant_id,
            order_id,
            now,
            self.policy.heartbeat_timeout_seconds,
        )
        if expired:
            logger.info(f"[STREAMING] Expired {expired} stale sessions for order {order_id}")
        return expired

    # ── Session lifecycle ────────────────────────────────────────────

    async def validate_session(self, session_token: str) -> ValidateSessionResult:
        session = await streaming_repo.get_session_by_token(self.db, session_token)

        if not session:
            return ValidateSessionResult(valid=False, error="Session not found")

        if session.status != SessionStatus.ACTIVE.value:
            return ValidateSessionResult(valid=False, error="Session is not active")

        now = self.clock()
        silent_for = (now - as_utc(session.last_activity_at)).total_seconds()

        if silent_for > self.policy.validation_grace_seconds:
            await streaming_repo.close_session(self.db, session.id, SessionStatus.EXPIRED, now)
            logger.info(f"[STREAMING] Session {session.id} expired after {silent_for:.0f}s of inactivity")
            return ValidateSessionResult(valid=False, error="Session expired due to inactivity")

        return ValidateSessionResult(
            valid=True,
            session=StreamingSessionResponse.model_validate(session),
        )

    async def get_session_by_token(self, session_token: str) -> StreamingSession:
        session = await streaming_repo.get_session_by_token(self.db, session_token)
        if not session:
            raise NotFoundError("Session")
        return session

    async def heartbeat(self, session_token: str) -> bool:
        session = await self.get_session_by_token(session_token)

        if session.status != SessionStatus.ACTIVE.value:
            raise PreconditionFailedError("Session is not active")

        # False when the session left `active` between the lookup and the update
        return await streaming_repo.update_heartbeat(self.db, session.id, self.clock())

    async def end_session(self, session_token: str) -> StreamingSession:
        session = await self.get_session_by_token(session_token)

        ended = await streaming_repo.close_session(
            self.db, session.id, SessionStatus.ENDED, self.clock()
        )
        if ended:
            logger.info(f"[STREAMING] Ended session {session.id}")

        return await self.get_session_by_token(session_token)

    async def force_end_order_sessions(self, scope: TenantScope, order_id: int) -> int:
        sessions = await streaming_repo.get_active_sessions_by_order(
            self.db, scope.app_id, scope.tenant_id, order_id
        )
        ended_count = 0

        for session in sessions:
            if await streaming_repo.close_session(
                self.db, session.id, SessionStatus.ENDED, self.clock()
            ):
                ended_count += 1

        logger.info(f"[STREAMING] Force ended {ended_count} sessions for order {order_id}")
        return ended_count

    # ── Read paths ───────────────────────────────────────────────────

    async def get_streaming_stats(
        self,
        scope: TenantScope,
        order_id: int,
        ticket_id: int,
        event_id: Optional[int] = None,
    ) -> StreamingStats:
        await self._reap(scope, order_id, self.clock())

        active_viewers = await streaming_repo.count_active_sessions_by_order(
            self.db, scope.app_id, scope.tenant_id, order_id
        )
        max_concurrent = await self.resolve_max_concurrent(scope, event_id)

        return StreamingStats(
            order_id=order_id,
            ticket_id=ticket_id,
            event_id=event_id,
            active_viewers=active_viewers,
            max_concurrent=max_concurrent,
            available_slots=max(0, max_concurrent - active_viewers),
        )

    async def list_sessions(
        self,
        scope: TenantScope,
        filters: Optional[StreamingSessionFilter] = None,
        pagination: Optional[PaginationParams] = None,
    ) -> StreamingSessionListResponse:
        filters = filters or StreamingSessionFilter()
        pagination = pagination or PaginationParams()

        page = max(1, pagination.page or 1)
        page_size = max(
            1,
            min(self.policy.max_page_size, pagination.page_size or self.policy.default_page_size),
        )

        sessions, total = await streaming_repo.list_sessions(
            self.db,
            scope.app_id,
            scope.tenant_id,
            limit=page_size,
            offset=(page - 1) * page_size,
            order_id=filters.order_id,
            ticket_id=filters.ticket_id,
            event_id=filters.event_id,
            user_id=filters.user_id,
            status=filters.status,
            active_only=filters.active_only,
        )

        return StreamingSessionListResponse(
            data=[StreamingSessionResponse.model_validate(s) for s in sessions],
            total=total,
            page=page,
            page_size=page_size,
            total_pages=math.ceil(total / page_size),
        )

    async def get_user_active_sessions(
        self,
        scope: TenantScope,
        user_id: str,
    ) -> list[StreamingSession]:
        return await streaming_repo.get_user_active_sessions(
            self.db, scope.app_id, scope.tenant_id, user_id
        )

    async def get_order_active_sessions(
        self,
        scope: TenantScope,
        order_id: int,
    ) -> list[StreamingSession]:
        return await streaming_repo.get_active_sessions_by_order(
            self.db, scope.app_id, scope.tenant_id, order_id
        )
