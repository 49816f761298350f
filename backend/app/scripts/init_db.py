"""Create all mapped tables directly, for local development databases."""
import asyncio

from app.core.config import configs
from app.core.database import Database

# Import all models to register them with SQLAlchemy
from app.models.orm import StreamingSession, Order, Event  # noqa: F401


async def init():
    database = Database(configs.DATABASE_URI)
    try:
        await database.create_database()
    finally:
        await database.dispose()


if __name__ == "__main__":
    asyncio.run(init())
