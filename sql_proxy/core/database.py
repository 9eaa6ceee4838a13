from psycopg import AsyncRawCursor
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from sql_proxy.core.config import settings

# One pool for the whole process, connections are checked out per statement
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DB_ECHO,
    pool_size=settings.DB_POOL_SIZE,
    pool_timeout=settings.DB_POOL_TIMEOUT,
    pool_pre_ping=True,
)


# This is the "Bridge" that gives the routes access to postgres
async def get_engine() -> AsyncEngine:
    return engine


# Statements bypass SQLAlchemy's paramstyle and run on psycopg's `$1` cursor
async def get_cursor_factory():
    return AsyncRawCursor
