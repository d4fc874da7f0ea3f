"""
Run Repository - bot run history (bot_runs table)
"""
import logging
from typing import Optional, List, Dict, Any

import asyncpg

from ..models.bot_state import BotRun, RunStatus
from .rows import dump_json, load_json

logger = logging.getLogger(__name__)


class RunRepository:
    """
    One row per bot invocation: started as 'running', finished as
    'completed' or 'failed' with final counters and a summary payload.
    """

    def __init__(self, db_pool: asyncpg.Pool):
        self.db_pool = db_pool

    async def start_run(self, bot_name: str) -> int:
        async with self.db_pool.acquire() as conn:
            run_id = await conn.fetchval("""
                INSERT INTO bot_runs (bot_name, status)
                VALUES ($1, 'running')
                RETURNING id
            """, bot_name)

        logger.info(f"🚀 Started run #{run_id} for {bot_name}")
        return run_id

    async def update_run_stats(
        self,
        run_id: int,
        processed: int,
        created: int,
        updated: int,
        failed: int,
    ) -> None:
        async with self.db_pool.acquire() as conn:
            await conn.execute("""
                UPDATE bot_runs
                SET items_processed = $2,
                    items_created = $3,
                    items_updated = $4,
                    items_failed = $5
                WHERE id = $1
            """, run_id, processed, created, updated, failed)

    async def complete_run(self, run_id: int, summary: Optional[Dict[str, Any]] = None) -> None:
        async with self.db_pool.acquire() as conn:
            await conn.execute("""
                UPDATE bot_runs
                SET status = 'completed',
                    completed_at = NOW(),
                    summary = $2::jsonb
                WHERE id = $1
            """, run_id, dump_json(summary))

    async def fail_run(self, run_id: int, error: str) -> None:
        async with self.db_pool.acquire() as conn:
            await conn.execute("""
                UPDATE bot_runs
                SET status = 'failed',
                    completed_at = NOW(),
                    summary = $2::jsonb
                WHERE id = $1
            """, run_id, dump_json({'error': error}))

        logger.error(f"❌ Run #{run_id} failed: {error}")

    async def recent_runs(self, bot_name: Optional[str] = None, limit: int = 20) -> List[BotRun]:
        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch("""
                SELECT * FROM bot_runs
                WHERE ($1::text IS NULL OR bot_name = $1)
                ORDER BY started_at DESC, id DESC
                LIMIT $2
            """, bot_name, limit)

        return [
            BotRun(
                id=r['id'],
                bot_name=r['bot_name'],
                started_at=r['started_at'],
                completed_at=r['completed_at'],
                status=RunStatus(r['status']),
                items_processed=r['items_processed'],
                items_created=r['items_created'],
                items_updated=r['items_updated'],
                items_failed=r['items_failed'],
                summary=load_json(r['summary']),
            )
            for r in rows
        ]

    async def bot_stats(self) -> List[Dict[str, Any]]:
        """Aggregate totals per bot across all runs."""
        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch("""
                SELECT bot_name,
                       COUNT(*) AS total_runs,
                       COALESCE(SUM(items_processed), 0) AS total_processed,
                       COALESCE(SUM(items_created), 0) AS total_created,
                       COALESCE(SUM(items_updated), 0) AS total_updated,
                       COALESCE(SUM(items_failed), 0) AS total_failed,
                       MAX(started_at) AS last_run
                FROM bot_runs
                GROUP BY bot_name
                ORDER BY bot_name
            """)

        return [dict(r) for r in rows]
