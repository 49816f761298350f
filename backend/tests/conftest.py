from datetime import datetime, timedelta, timezone

import httpx
import pytest
import pytest_asyncio
from dependency_injector import providers
from sqlalchemy.pool import StaticPool

from app.core.config import TestConfigs
from app.core.container import Container
from app.core.database import Database
from app.main import create_app
from app.models.orm import Event, Order, OrderStatus
from app.schemas.auth_schema import TenantScope
from app.services.streaming_service import StreamingPolicy, StreamingService
from app.utils.jwt import create_access_token

APP_ID = "app-1"
TENANT_ID = "tenant-1"
OTHER_TENANT_ID = "tenant-2"
SECRET = "test-secret"

SCOPE = TenantScope(app_id=APP_ID, tenant_id=TENANT_ID)
OTHER_SCOPE = TenantScope(app_id=APP_ID, tenant_id=OTHER_TENANT_ID)

COMPLETED_ORDER = 1
PENDING_ORDER = 2
OTHER_USERS_ORDER = 3

EVENT_LIMIT_3 = 5
EVENT_LIMIT_0 = 6


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 10, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest_asyncio.fixture
async def database():
    database = Database(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await database.create_database()

    async with database.session() as session:
        session.add_all([
            Event(id=EVENT_LIMIT_3, app_id=APP_ID, tenant_id=TENANT_ID, max_concurrent_viewers_per_link=3),
            Event(id=EVENT_LIMIT_0, app_id=APP_ID, tenant_id=TENANT_ID, max_concurrent_viewers_per_link=0),
            Order(id=COMPLETED_ORDER, app_id=APP_ID, tenant_id=TENANT_ID, user_id="user-1",
                  order_number="ORD-1", status=OrderStatus.COMPLETED),
            Order(id=PENDING_ORDER, app_id=APP_ID, tenant_id=TENANT_ID, user_id="user-1",
                  order_number="ORD-2", status=OrderStatus.PENDING),
            Order(id=OTHER_USERS_ORDER, app_id=APP_ID, tenant_id=TENANT_ID, user_id="user-2",
                  order_number="ORD-3", status=OrderStatus.COMPLETED),
        ])
        await session.commit()

    yield database
    await database.dispose()


@pytest_asyncio.fixture
async def db(database):
    async with database.session() as session:
        yield session


@pytest.fixture
def policy():
    return StreamingPolicy()


@pytest.fixture
def service(db, policy, clock):
    return StreamingService(db=db, policy=policy, clock=clock)


@pytest.fixture
def container(database, clock):
    container = Container()
    container.configs.override(providers.Object(TestConfigs(SECRET_KEY=SECRET)))
    container.db.override(providers.Object(database))
    container.clock.override(providers.Object(clock))
    return container


@pytest_asyncio.fixture
async def client(container):
    app = create_app(container)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def auth_headers(user_id="user-1", tenant_id=TENANT_ID, role=None, user_agent="browser-x"):
    token = create_access_token(
        user_id,
        app_id=APP_ID,
        tenant_id=tenant_id,
        email=f"{user_id}@example.com",
        role=role,
        secret_key=SECRET,
        algorithm="HS256",
    )
    return {"Authorization": f"Bearer {token}", "User-Agent": user_agent}
