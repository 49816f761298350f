import ssl
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.models.orm.base import Base


def prepare_database_url(url: str) -> tuple[str, dict]:
    """
    Prepare database URL for asyncpg compatibility.
    asyncpg doesn't support 'sslmode' parameter, need to convert to 'ssl' context.
    URLs without 'sslmode' are returned untouched.
    """
    if not url:
        return url, {}

    parsed = make_url(url)
    sslmode = parsed.query.get("sslmode")
    if sslmode is None:
        return url, {}

    if isinstance(sslmode, tuple):
        sslmode = sslmode[0]

    connect_args = {}

    if sslmode == "require":
        # SSL on, certificate not verified
        ssl_context = ssl.create_default_context()
        ssl_context.check_hostname = False
        ssl_context.verify_mode = ssl.CERT_NONE
        connect_args["ssl"] = ssl_context
    elif sslmode == "verify-ca" or sslmode == "verify-full":
        connect_args["ssl"] = ssl.create_default_context()
    elif sslmode == "disable":
        connect_args["ssl"] = False

    cleaned = parsed.difference_update_query(["sslmode"])
    return cleaned.render_as_string(hide_password=False), connect_args


class Database:
    """Owns the async engine and session factory for one process."""

    def __init__(self, db_url: str, echo: bool = False, **engine_kwargs) -> None:
        cleaned_url, connect_args = prepare_database_url(db_url)
        connect_args.update(engine_kwargs.pop("connect_args", {}))

        if not cleaned_url.startswith("sqlite"):
            engine_kwargs.setdefault("pool_pre_ping", True)

        self._engine = create_async_engine(
            cleaned_url,
            echo=echo,
            connect_args=connect_args,
            **engine_kwargs,
        )
        self._session_factory = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @property
    def engine(self):
        return self._engine

    async def create_database(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        async with self._session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    async def dispose(self) -> None:
        await self._engine.dispose()
