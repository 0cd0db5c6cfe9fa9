import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from podclip.models.base import Base

logger = logging.getLogger(__name__)


def create_engine_for(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create the async engine. Pool limits apply to server databases only."""
    if database_url.startswith("postgresql"):
        return create_async_engine(
            database_url,
            echo=echo,
            pool_size=5,
            max_overflow=0,
            pool_pre_ping=True,  # Check connection health before use
            pool_recycle=300,
            pool_timeout=30,
        )
    return create_async_engine(database_url, echo=echo)


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db(engine: AsyncEngine, max_retries: int = 5, retry_delay: float = 2) -> None:
    """Create tables, retrying connection failures with exponential backoff."""
    for attempt in range(max_retries):
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            return
        except Exception as e:
            if attempt < max_retries - 1:
                logger.warning(
                    f"DB connection attempt {attempt + 1}/{max_retries} failed: {e}. "
                    f"Retrying in {retry_delay} seconds..."
                )
                await asyncio.sleep(retry_delay)
                retry_delay *= 2
            else:
                logger.error(f"Failed to connect to database after {max_retries} attempts")
                raise
