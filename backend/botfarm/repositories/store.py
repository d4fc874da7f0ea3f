"""
Store handle - one asyncpg pool, every repository

Constructed explicitly and passed to the runner; there is no module-level
connection singleton.
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import asyncpg

from ..config.database import PostgresConfig, create_postgres_pool
from .content_repository import ContentRepository
from .work_queue_repository import WorkQueueRepository
from .bot_state_repository import BotStateRepository
from .run_repository import RunRepository
from .ledger_repository import LedgerRepository
from .schema import ensure_schema

logger = logging.getLogger(__name__)


class Store:
    """Repositories sharing one connection pool."""

    def __init__(self, db_pool: asyncpg.Pool):
        self.db_pool = db_pool
        self.content = ContentRepository(db_pool)
        self.queue = WorkQueueRepository(db_pool)
        self.states = BotStateRepository(db_pool)
        self.runs = RunRepository(db_pool)
        self.ledger = LedgerRepository(db_pool)

    async def ensure_schema(self) -> None:
        await ensure_schema(self.db_pool)

    async def close(self) -> None:
        await self.db_pool.close()
        logger.info("✓ Store connection pool closed")


@asynccontextmanager
async def open_store(config: Optional[PostgresConfig] = None) -> AsyncIterator[Store]:
    """
    Open a pool for the lifetime of one bot invocation.

    Usage:
        async with open_store(get_postgres_config(settings)) as store:
            await run_bot(behavior, store, ...)
    """
    config = config or PostgresConfig.from_env()
    db_pool = await create_postgres_pool(config)
    logger.info(f"✓ Connected to PostgreSQL at {config.host}:{config.port}/{config.database}")

    store = Store(db_pool)
    try:
        yield store
    finally:
        await store.close()
