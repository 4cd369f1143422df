"""Engine and session lifecycle of the resource store.

One engine per process. The SQL adapters receive the session factory and
open their own sessions (or share the one of a running transaction).
Callers that bootstrap the SQL backend dispose the engine with
`close_database()` before their event loop ends.
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .config import DatabaseConfig
from .models import Base

logger = logging.getLogger(__name__)

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


async def init_database(config: Optional[DatabaseConfig] = None) -> async_sessionmaker[AsyncSession]:
    """
    Create the engine (once) and return the session factory.

    Tables are created when `config.create_schema` is set; existing tables
    are left untouched.
    """
    global _engine, _session_factory

    if _session_factory is not None:
        logger.debug("Resource store database already initialized")
        return _session_factory

    config = config or DatabaseConfig.from_env()
    logger.info(f"Connecting resource store to {config.safe_url()}")

    engine = create_async_engine(config.get_url(), **config.engine_options())
    if config.create_schema:
        await create_schema(engine)

    _engine = engine
    # Resources are read back after commit (annotation linking), so
    # attributes must survive the commit.
    _session_factory = async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)
    return _session_factory


async def create_schema(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Resource store tables ready: {', '.join(sorted(Base.metadata.tables))}")


async def close_database() -> None:
    global _engine, _session_factory

    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    _session_factory = None
    logger.info("Resource store connection closed")
