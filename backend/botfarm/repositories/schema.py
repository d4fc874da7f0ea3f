"""
Schema bootstrap for the shared bot tables

Every bot calls ensure_schema() before touching the store. Statements are
idempotent: tables are created if missing and field-group columns are added
additively, so an older database is upgraded in place and existing data is
preserved. "Already exists" outcomes are tolerated; any other failure is
fatal for the run.
"""
import logging
from typing import List, Tuple

import asyncpg

logger = logging.getLogger(__name__)


class SchemaBootstrapError(RuntimeError):
    """The shared tables could not be created or upgraded."""


TABLES: List[Tuple[str, str]] = [
    ('content_items', """
        CREATE TABLE IF NOT EXISTS content_items (
            id TEXT PRIMARY KEY,
            question TEXT NOT NULL,
            answer TEXT NOT NULL DEFAULT '',
            explanation TEXT NOT NULL DEFAULT '',
            channel TEXT NOT NULL DEFAULT '',
            sub_channel TEXT NOT NULL DEFAULT '',
            difficulty TEXT NOT NULL DEFAULT '',
            tags JSONB NOT NULL DEFAULT '[]'::jsonb,
            companies JSONB NOT NULL DEFAULT '[]'::jsonb,
            diagram TEXT,
            last_updated TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """),
    ('work_queue', """
        CREATE TABLE IF NOT EXISTS work_queue (
            id BIGSERIAL PRIMARY KEY,
            item_type TEXT NOT NULL,
            item_id TEXT NOT NULL,
            action TEXT NOT NULL,
            priority INTEGER NOT NULL DEFAULT 5,
            status TEXT NOT NULL DEFAULT 'pending'
                CHECK (status IN ('pending', 'in_progress', 'completed', 'failed')),
            reason TEXT,
            created_by TEXT,
            assigned_to TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT clock_timestamp(),
            started_at TIMESTAMPTZ,
            processed_at TIMESTAMPTZ,
            result JSONB
        )
    """),
    ('bot_state', """
        CREATE TABLE IF NOT EXISTS bot_state (
            bot_name TEXT PRIMARY KEY,
            cursor_index INTEGER NOT NULL DEFAULT 0,
            last_run_date TIMESTAMPTZ,
            total_processed INTEGER NOT NULL DEFAULT 0,
            total_created INTEGER NOT NULL DEFAULT 0,
            total_updated INTEGER NOT NULL DEFAULT 0,
            total_failed INTEGER NOT NULL DEFAULT 0,
            extra JSONB NOT NULL DEFAULT '{}'::jsonb,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """),
    ('bot_runs', """
        CREATE TABLE IF NOT EXISTS bot_runs (
            id BIGSERIAL PRIMARY KEY,
            bot_name TEXT NOT NULL,
            started_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            completed_at TIMESTAMPTZ,
            status TEXT NOT NULL DEFAULT 'running',
            items_processed INTEGER NOT NULL DEFAULT 0,
            items_created INTEGER NOT NULL DEFAULT 0,
            items_updated INTEGER NOT NULL DEFAULT 0,
            items_failed INTEGER NOT NULL DEFAULT 0,
            summary JSONB
        )
    """),
    ('bot_ledger', """
        CREATE TABLE IF NOT EXISTS bot_ledger (
            id BIGSERIAL PRIMARY KEY,
            bot_name TEXT NOT NULL,
            action TEXT NOT NULL,
            item_type TEXT NOT NULL,
            item_id TEXT NOT NULL,
            before_state JSONB,
            after_state JSONB,
            reason TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """),
]

# Field-group columns added after the first release of content_items
CONTENT_COLUMNS: List[Tuple[str, str]] = [
    ('tldr', 'TEXT'),
    ('relevance_score', 'INTEGER'),
    ('relevance_details', 'JSONB'),
    ('review_status', 'TEXT'),
    ('improvement_suggestions', 'JSONB'),
    ('reviewed_at', 'TIMESTAMPTZ'),
    ('status', "TEXT NOT NULL DEFAULT 'active'"),
    ('duplicate_of', 'TEXT'),
]

INDEXES: List[str] = [
    # At most one unresolved row per (item_type, item_id)
    """
    CREATE UNIQUE INDEX IF NOT EXISTS uq_work_queue_unresolved
        ON work_queue (item_type, item_id)
        WHERE status IN ('pending', 'in_progress')
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_work_queue_claim
        ON work_queue (item_type, status, priority, created_at DESC)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_bot_ledger_bot
        ON bot_ledger (bot_name, created_at DESC)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_content_items_review_status
        ON content_items (review_status)
    """,
]

_ALREADY_EXISTS = (
    asyncpg.exceptions.DuplicateColumnError,
    asyncpg.exceptions.DuplicateTableError,
    asyncpg.exceptions.DuplicateObjectError,
    asyncpg.exceptions.UniqueViolationError,  # concurrent CREATE ... IF NOT EXISTS
)


async def _execute_tolerant(conn, sql: str, label: str) -> bool:
    """Execute one DDL statement. Returns False if the object already existed."""
    try:
        await conn.execute(sql)
        return True
    except _ALREADY_EXISTS:
        logger.debug(f"ℹ️ {label} already exists")
        return False


async def ensure_schema(db_pool: asyncpg.Pool) -> None:
    """
    Create shared tables and add missing field-group columns.

    Raises:
        SchemaBootstrapError: on any failure other than "already exists"
    """
    try:
        async with db_pool.acquire() as conn:
            for name, ddl in TABLES:
                await _execute_tolerant(conn, ddl, f"table {name}")

            for column, column_type in CONTENT_COLUMNS:
                await _execute_tolerant(
                    conn,
                    f"ALTER TABLE content_items ADD COLUMN IF NOT EXISTS {column} {column_type}",
                    f"column content_items.{column}",
                )

            for ddl in INDEXES:
                await _execute_tolerant(conn, ddl, "index")
    except Exception as e:
        logger.error(f"❌ Schema bootstrap failed: {e}")
        raise SchemaBootstrapError(str(e)) from e

    logger.info("✓ Bot tables initialized")
