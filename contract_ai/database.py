"""
Database engine and session management.

One async engine per process.  Request handlers receive a session through
``get_db``; the session commits when the handler returns and rolls back
when it raises, so routers only ``flush`` to obtain generated ids.
"""
import logging
from typing import Any, AsyncGenerator, Dict

from fastapi import HTTPException
from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool

from contract_ai.config import settings

logger = logging.getLogger(__name__)


def _engine_options(database_url: str) -> Dict[str, Any]:
    options: Dict[str, Any] = {
        "echo": settings.is_development,
        "poolclass": NullPool,
    }
    # SQLite (tests, local demos) has no server to ping
    if not make_url(database_url).get_backend_name().startswith("sqlite"):
        options["pool_pre_ping"] = True
    return options


engine = create_async_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

# Base class for ORM models
Base = declarative_base()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Request-scoped session dependency.

    Example:
        @router.get("/{contract_id}")
        async def get_contract(contract_id: str, db: AsyncSession = Depends(get_db)):
            return await db.get(Contract, contract_id)
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except HTTPException:
            # Client-facing errors (404, 403, ...) are not database faults
            await session.rollback()
            raise
        except Exception as exc:
            await session.rollback()
            logger.error("Database session error: %s", exc)
            raise


async def init_db() -> None:
    """Create every table registered on ``Base`` that does not exist yet."""
    try:
        async with engine.begin() as conn:
            # Registers the models on Base.metadata
            from contract_ai.models import database_models  # noqa: F401

            await conn.run_sync(Base.metadata.create_all)
            logger.info("Database tables created/verified")

    except Exception as exc:
        logger.error("Error initializing database: %s", exc)
        raise


async def close_db() -> None:
    """Dispose of the engine's connections."""
    try:
        await engine.dispose()
        logger.info("Database connections closed")
    except Exception as exc:
        logger.error("Error closing database: %s", exc)
        raise


async def check_database_health(db: AsyncSession) -> Dict[str, str]:
    """Run ``SELECT 1`` and report ``healthy`` or ``unhealthy`` with the error."""
    try:
        await db.execute(text("SELECT 1"))
        return {"status": "healthy"}
    except Exception as exc:
        logger.error("Database health check failed: %s", exc)
        return {"status": "unhealthy", "error": str(exc)}
