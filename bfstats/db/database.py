# bfstats/db/database.py
import os
from typing import Optional

from dotenv import load_dotenv
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession

load_dotenv()


def async_database_url(url: Optional[str]) -> Optional[str]:
    """Point a Postgres URL at the asyncpg driver; other URLs pass through."""
    if not url or "+asyncpg" in url:
        return url
    if "+psycopg" in url:
        return url.replace("+psycopg", "+asyncpg")
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def sync_database_url(url: Optional[str]) -> Optional[str]:
    """Counterpart used by Alembic, which runs on the blocking psycopg driver."""
    if url and "+asyncpg" in url:
        return url.replace("+asyncpg", "+psycopg")
    return url


DATABASE_URL = async_database_url(os.getenv("DB_URL"))

if not DATABASE_URL:
    raise RuntimeError("DB_URL is not set in environment variables")

engine: AsyncEngine = create_async_engine(DATABASE_URL)

async_session_factory = sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


async def get_session():
    async with async_session_factory() as session:
        yield session


def get_session_factory():
    """Session factory for work that outlives the request, e.g. background tasks."""
    return async_session_factory
