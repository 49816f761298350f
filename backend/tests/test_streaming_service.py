"""
Admission engine tests against a real (in-memory SQLite) session store.

Time is driven by FakeClock so heartbeat timeouts are deterministic.
"""
import pytest

from app.core.exceptions import (
    CapacityError,
    NotFoundError,
    PreconditionFailedError,
    ValidationError,
)
from app.models.orm.streaming_session import SessionStatus
from app.repository import streaming_repo
from app.schemas.streaming_schema import (
    NewStreamingSession,
    PaginationParams,
    StreamingSessionFilter,
)
from app.services.streaming_service import StreamingPolicy, StreamingService, as_utc

from conftest import (
    APP_ID,
    COMPLETED_ORDER,
    EVENT_LIMIT_0,
    EVENT_LIMIT_3,
    OTHER_SCOPE,
    OTHER_USERS_ORDER,
    PENDING_ORDER,
    SCOPE,
    TENANT_ID,
)


def viewer(browser="browser-x", ip="10.0.0.1", order_id=COMPLETED_ORDER, event_id=None, **overrides):
    data = dict(
        order_id=order_id,
        ticket_id=17,
        event_id=event_id,
        user_id="user-1",
        user_email="user-1@example.com",
        user_name="Asha",
        ip_address=ip,
        user_agent=browser,
    )
    data.update(overrides)
    return NewStreamingSession(**data)


async def active_count(db, order_id=COMPLETED_ORDER):
    return await streaming_repo.count_active_sessions_by_order(db, APP_ID, TENANT_ID, order_id)


async def load(db, token):
    return await streaming_repo.get_session_by_token(db, token)


class TestAdmission:

    async def test_scenario_a_third_browser_is_rejected(self, service, db):
        a = await service.create_session(SCOPE, viewer("browser-x"))
        assert await active_count(db) == 1

        b = await service.create_session(SCOPE, viewer("browser-y"))
        assert await active_count(db) == 2
        assert a.session_token != b.session_token

        with pytest.raises(CapacityError) as exc:
            await service.create_session(SCOPE, viewer("browser-z"))

        assert exc.value.status_code == 403
        assert "(2)" in exc.value.detail
        assert exc.value.detail == "Maximum concurrent viewers (2) reached for this link"
        assert await active_count(db) == 2

    async def test_scenario_b_same_browser_reclaims_its_slot(self, service, db):
        a = await service.create_session(SCOPE, viewer("browser-x"))
        await service.create_session(SCOPE, viewer("browser-y"))

        again = await service.create_session(SCOPE, viewer("browser-x"))

        assert again.session_token != a.session_token
        assert await active_count(db) == 2

        old = await load(db, a.session_token)
        assert old.status == SessionStatus.ENDED.value
        assert old.ended_at is not None

        new = await load(db, again.session_token)
        assert new.status == SessionStatus.ACTIVE.value

    async def test_reclaim_requires_matching_ip_and_user_agent(self, service):
        await service.create_session(SCOPE, viewer("browser-x", ip="10.0.0.1"))
        await service.create_session(SCOPE, viewer("browser-y", ip="10.0.0.1"))

        with pytest.raises(CapacityError):
            await service.create_session(SCOPE, viewer("browser-x", ip="10.0.0.2"))

    async def test_reclaim_is_idempotent_for_repeated_reopens(self, service, db):
        first = await service.create_session(SCOPE, viewer("browser-x"))
        second = await service.create_session(SCOPE, viewer("browser-x"))
        third = await service.create_session(SCOPE, viewer("browser-x"))

        assert await active_count(db) == 1
        assert len({first.session_token, second.session_token, third.session_token}) == 3

        result = await service.validate_session(third.session_token)
        assert result.valid is True

    async def test_limit_never_exceeded_by_sequential_admissions(self, service, db):
        admitted = 0
        for i in range(10):
            try:
                await service.create_session(SCOPE, viewer(f"browser-{i}", event_id=EVENT_LIMIT_3))
                admitted += 1
            except CapacityError:
                pass
            assert await active_count(db) <= 3

        assert admitted == 3

    async def test_event_limit_overrides_default(self, service):
        for browser in ("a", "b", "c"):
            await service.create_session(SCOPE, viewer(browser, event_id=EVENT_LIMIT_3))

        with pytest.raises(CapacityError) as exc:
            await service.create_session(SCOPE, viewer("d", event_id=EVENT_LIMIT_3))
        assert "(3)" in exc.value.detail

    async def test_non_positive_event_limit_falls_back_to_default(self, service):
        assert await service.resolve_max_concurrent(SCOPE, EVENT_LIMIT_0) == 2
        assert await service.resolve_max_concurrent(SCOPE, 999) == 2
        assert await service.resolve_max_concurrent(SCOPE, None) == 2

    async def test_default_limit_is_configurable(self, db, clock):
        service = StreamingService(db, StreamingPolicy(default_max_concurrent=1), clock)

        await service.create_session(SCOPE, viewer("browser-x"))
        with pytest.raises(CapacityError) as exc:
            await service.create_session(SCOPE, viewer("browser-y"))
        assert "(1)" in exc.value.detail

    async def test_response_carries_advisory_expiry(self, service, clock):
        result = await service.create_session(SCOPE, viewer())

        expected = int(clock.now.timestamp() * 1000) + 30 * 60 * 1000
        assert result.expires_at == expected
        assert len(result.session_token) == 64

    async def test_new_session_fields(self, service, db, clock):
        result = await service.create_session(SCOPE, viewer(event_id=EVENT_LIMIT_3))
        session = await load(db, result.session_token)

        assert session.app_id == APP_ID
        assert session.tenant_id == TENANT_ID
        assert session.order_id == COMPLETED_ORDER
        assert session.ticket_id == 17
        assert session.event_id == EVENT_LIMIT_3
        assert session.user_id == "user-1"
        assert session.ip_address == "10.0.0.1"
        assert session.user_agent == "browser-x"
        assert session.status == SessionStatus.ACTIVE.value
        assert as_utc(session.started_at) == clock.now
        assert as_utc(session.last_activity_at) == clock.now
        assert session.ended_at is None

    async def test_missing_client_info_is_recorded_as_unknown(self, service, db):
        result = await service.create_session(SCOPE, viewer(browser="", ip=""))
        session = await load(db, result.session_token)

        assert session.ip_address == "unknown"
        assert session.user_agent == "unknown"


class TestAdmissionPreconditions:

    @pytest.mark.parametrize(
        "field, message",
        [
            ("order_id", "Order ID is required"),
            ("ticket_id", "Ticket ID is required"),
            ("user_id", "User ID is required"),
        ],
    )
    async def test_required_fields(self, service, field, message):
        with pytest.raises(ValidationError) as exc:
            await service.create_session(SCOPE, viewer(**{field: None}))
        assert exc.value.detail == message

    async def test_order_of_another_user_is_not_found(self, service):
        with pytest.raises(NotFoundError) as exc:
            await service.create_session(SCOPE, viewer(order_id=OTHER_USERS_ORDER))
        assert exc.value.detail == "Order not found"

    async def test_order_outside_tenant_is_not_found(self, service):
        with pytest.raises(NotFoundError):
            await service.create_session(OTHER_SCOPE, viewer())

    async def test_scenario_c_pending_order_writes_nothing(self, service, db):
        with pytest.raises(PreconditionFailedError) as exc:
            await service.create_session(SCOPE, viewer(order_id=PENDING_ORDER))

        assert exc.value.detail == "Order is not completed"
        listing = await service.list_sessions(SCOPE)
        assert listing.total == 0


class TestReaping:

    async def test_scenario_d_silent_session_is_reaped_by_next_admission(self, service, db, clock):
        a = await service.create_session(SCOPE, viewer("browser-x"))
        clock.advance(16)
        reap_time = clock.now

        await service.create_session(SCOPE, viewer("browser-y"))

        reaped = await load(db, a.session_token)
        assert reaped.status == SessionStatus.EXPIRED.value
        assert as_utc(reaped.ended_at) == reap_time
        assert await active_count(db) == 1

    async def test_stats_reap_stale_sessions(self, service, clock):
        await service.create_session(SCOPE, viewer("browser-x"))
        await service.create_session(SCOPE, viewer("browser-y"))
        clock.advance(16)

        stats = await service.get_streaming_stats(SCOPE, COMPLETED_ORDER, 17)

        assert stats.active_viewers == 0
        assert stats.available_slots == 2

    async def test_session_within_timeout_is_not_reaped(self, service, clock):
        await service.create_session(SCOPE, viewer("browser-x"))
        clock.advance(15)

        stats = await service.get_streaming_stats(SCOPE, COMPLETED_ORDER, 17)
        assert stats.active_viewers == 1

    async def test_heartbeat_keeps_session_alive(self, service, db, clock):
        result = await service.create_session(SCOPE, viewer("browser-x"))

        for _ in range(12):
            clock.advance(5)
            assert await service.heartbeat(result.session_token) is True
            stats = await service.get_streaming_stats(SCOPE, COMPLETED_ORDER, 17)
            assert stats.active_viewers == 1

        session = await load(db, result.session_token)
        assert session.status == SessionStatus.ACTIVE.value
        assert as_utc(session.last_activity_at) == clock.now

    async def test_reaped_slot_admits_a_new_browser(self, service, clock):
        await service.create_session(SCOPE, viewer("browser-x"))
        await service.create_session(SCOPE, viewer("browser-y"))
        clock.advance(20)

        await service.create_session(SCOPE, viewer("browser-z"))

    async def test_reaping_is_scoped_to_the_order(self, service, db, clock):
        await service.create_session(SCOPE, viewer("browser-x"))
        clock.advance(16)

        await service.get_streaming_stats(SCOPE, OTHER_USERS_ORDER, 17)

        assert await active_count(db) == 1


class TestValidation:

    async def test_unknown_token(self, service):
        result = await service.validate_session("nope")
        assert result.valid is False
        assert result.error == "Session not found"

    async def test_grace_window(self, service, db, clock):
        result = await service.create_session(SCOPE, viewer())

        clock.advance(20)
        ok = await service.validate_session(result.session_token)
        assert ok.valid is True
        assert ok.session.session_token == result.session_token

        clock.advance(15)
        expired = await service.validate_session(result.session_token)
        assert expired.valid is False
        assert expired.error == "Session expired due to inactivity"

        session = await load(db, result.session_token)
        assert session.status == SessionStatus.EXPIRED.value
        assert as_utc(session.ended_at) == clock.now

    async def test_ended_session_is_not_active(self, service):
        result = await service.create_session(SCOPE, viewer())
        await service.end_session(result.session_token)

        check = await service.validate_session(result.session_token)
        assert check.valid is False
        assert check.error == "Session is not active"


class TestHeartbeatAndEnd:

    async def test_heartbeat_unknown_token(self, service):
        with pytest.raises(NotFoundError) as exc:
            await service.heartbeat("nope")
        assert exc.value.detail == "Session not found"

    async def test_heartbeat_on_ended_session(self, service):
        result = await service.create_session(SCOPE, viewer())
        await service.end_session(result.session_token)

        with pytest.raises(PreconditionFailedError) as exc:
            await service.heartbeat(result.session_token)
        assert exc.value.detail == "Session is not active"

    async def test_heartbeat_write_skips_session_closed_after_lookup(self, service, db, clock):
        result = await service.create_session(SCOPE, viewer())
        session = await load(db, result.session_token)
        started = as_utc(session.last_activity_at)

        clock.advance(5)
        await streaming_repo.close_session(db, session.id, SessionStatus.EXPIRED, clock.now)

        clock.advance(1)
        assert await streaming_repo.update_heartbeat(db, session.id, clock.now) is False

        session = await load(db, result.session_token)
        assert session.status == SessionStatus.EXPIRED.value
        assert as_utc(session.last_activity_at) == started

    async def test_end_is_idempotent(self, service, db, clock):
        result = await service.create_session(SCOPE, viewer())

        clock.advance(3)
        first_end = clock.now
        await service.end_session(result.session_token)

        clock.advance(3)
        session = await service.end_session(result.session_token)

        assert session.status == SessionStatus.ENDED.value
        assert as_utc(session.ended_at) == first_end

    async def test_end_does_not_revive_or_relabel_expired_session(self, service, db, clock):
        result = await service.create_session(SCOPE, viewer())
        clock.advance(40)
        await service.validate_session(result.session_token)
        expired_at = clock.now

        clock.advance(5)
        session = await service.end_session(result.session_token)

        assert session.status == SessionStatus.EXPIRED.value
        assert as_utc(session.ended_at) == expired_at

    async def test_end_unknown_token(self, service):
        with pytest.raises(NotFoundError):
            await service.end_session("nope")

    async def test_ended_session_frees_its_slot(self, service):
        a = await service.create_session(SCOPE, viewer("browser-x"))
        await service.create_session(SCOPE, viewer("browser-y"))

        await service.end_session(a.session_token)

        await service.create_session(SCOPE, viewer("browser-z"))

    async def test_force_end_order_sessions(self, service, db):
        await service.create_session(SCOPE, viewer("browser-x"))
        await service.create_session(SCOPE, viewer("browser-y"))

        assert await service.force_end_order_sessions(SCOPE, COMPLETED_ORDER) == 2
        assert await active_count(db) == 0
        assert await service.force_end_order_sessions(SCOPE, COMPLETED_ORDER) == 0

    async def test_force_end_ignores_other_tenants(self, service, db):
        await service.create_session(SCOPE, viewer("browser-x"))

        assert await service.force_end_order_sessions(OTHER_SCOPE, COMPLETED_ORDER) == 0
        assert await active_count(db) == 1


class TestReadPaths:

    async def test_stats(self, service):
        await service.create_session(SCOPE, viewer("a", event_id=EVENT_LIMIT_3))

        stats = await service.get_streaming_stats(SCOPE, COMPLETED_ORDER, 17, EVENT_LIMIT_3)

        assert stats.order_id == COMPLETED_ORDER
        assert stats.ticket_id == 17
        assert stats.event_id == EVENT_LIMIT_3
        assert stats.active_viewers == 1
        assert stats.max_concurrent == 3
        assert stats.available_slots == 2

    async def test_stats_available_slots_never_negative(self, db, clock):
        roomy = StreamingService(db, StreamingPolicy(default_max_concurrent=3), clock)
        for browser in ("a", "b", "c"):
            await roomy.create_session(SCOPE, viewer(browser))

        tight = StreamingService(db, StreamingPolicy(default_max_concurrent=1), clock)
        stats = await tight.get_streaming_stats(SCOPE, COMPLETED_ORDER, 17)

        assert stats.active_viewers == 3
        assert stats.available_slots == 0

    async def test_list_sessions_filters_and_paginates(self, service, clock):
        tokens = []
        for browser in ("a", "b", "c"):
            result = await service.create_session(SCOPE, viewer(browser, event_id=EVENT_LIMIT_3))
            tokens.append(result.session_token)
            clock.advance(1)
        await service.end_session(tokens[0])

        page = await service.list_sessions(SCOPE, pagination=PaginationParams(page=1, page_size=2))
        assert page.total == 3
        assert page.total_pages == 2
        assert [s.session_token for s in page.data] == [tokens[2], tokens[1]]

        active = await service.list_sessions(SCOPE, StreamingSessionFilter(active_only=True))
        assert active.total == 2

        ended = await service.list_sessions(SCOPE, StreamingSessionFilter(status="ended"))
        assert [s.session_token for s in ended.data] == [tokens[0]]

        other = await service.list_sessions(OTHER_SCOPE)
        assert other.total == 0

    async def test_list_sessions_clamps_pagination(self, service):
        listing = await service.list_sessions(SCOPE, pagination=PaginationParams(page=0, page_size=1000))
        assert listing.page == 1
        assert listing.page_size == 100
        assert listing.total_pages == 0

    async def test_user_and_order_active_sessions(self, service):
        a = await service.create_session(SCOPE, viewer("browser-x"))
        await service.create_session(SCOPE, viewer("browser-y"))
        await service.end_session(a.session_token)

        mine = await service.get_user_active_sessions(SCOPE, "user-1")
        order = await service.get_order_active_sessions(SCOPE, COMPLETED_ORDER)

        assert [s.user_agent for s in mine] == ["browser-y"]
        assert [s.user_agent for s in order] == ["browser-y"]
        assert await service.get_user_active_sessions(SCOPE, "user-2") == []

    async def test_ended_at_set_only_outside_active(self, service, clock):
        a = await service.create_session(SCOPE, viewer("a"))
        b = await service.create_session(SCOPE, viewer("b"))
        await service.end_session(a.session_token)
        clock.advance(16)
        await service.get_streaming_stats(SCOPE, COMPLETED_ORDER, 17)
        await service.create_session(SCOPE, viewer("c"))

        listing = await service.list_sessions(SCOPE)
        assert listing.total == 3
        for session in listing.data:
            assert (session.ended_at is None) == (session.status == SessionStatus.ACTIVE.value)
        assert b.session_token in {s.session_token for s in listing.data if s.status == "expired"}
