from typing import Optional
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession, AsyncEngine
from core.config import settings
from core.logger import logger


def build_engine(url: Optional[str] = None, **overrides) -> AsyncEngine:
    """Async engine for ``url`` (defaults to DATABASE_URL); keyword overrides win."""
    url = url or settings.DATABASE_URL
    options = {"echo": settings.DB_ECHO, "pool_pre_ping": True}
    if not url.startswith("sqlite"):
        # PostgreSQL driver for async operations is asyncpg
        options.update(
            pool_recycle=3600,
            pool_size=settings.DB_POOL_SIZE,       # Base connections
            max_overflow=settings.DB_MAX_OVERFLOW, # Burst connections
        )
    options.update(overrides)
    return create_async_engine(url, **options)


engine = build_engine()

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def init_models(bind: Optional[AsyncEngine] = None):
    """Create every table directly. Development and tests only; deployments run alembic."""
    from models.base import Base
    from models import user, content, preference, history, session, stats, badge  # noqa: F401

    bind = bind or engine
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created", tables=len(Base.metadata.tables))


async def get_db():
    async with AsyncSessionLocal() as db:
        try:
            yield db
        finally:
            await db.close()


async def get_redis():
    """Redis client for the per-user session creation lock."""
    from redis.asyncio import Redis
    redis = Redis.from_url(settings.REDIS_URL, decode_responses=True)
    try:
        yield redis
    finally:
        await redis.aclose()
