"""
Bot State Repository - resumable cursor and cumulative counters

One row per bot, written only by that bot. The runner saves after every
item so a crash resumes from the last processed position.
"""
import logging
from typing import Optional, Dict, Any

import asyncpg

from ..models.bot_state import BotRunState
from .rows import dump_json, load_json

logger = logging.getLogger(__name__)


class BotStateRepository:

    def __init__(self, db_pool: asyncpg.Pool):
        self.db_pool = db_pool

    async def load(self, bot_name: str, default_extra: Optional[Dict[str, Any]] = None) -> BotRunState:
        """
        Load persisted state, or a fresh state seeded with default_extra.

        Keys missing from a stored extra are filled from default_extra so a
        bot can add counters without resetting its cursor.
        """
        defaults = dict(default_extra or {})

        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow("SELECT * FROM bot_state WHERE bot_name = $1", bot_name)

        if not row:
            logger.info(f"📊 No saved state for {bot_name}, starting at 0")
            return BotRunState(bot_name=bot_name, extra=defaults)

        extra = {**defaults, **load_json(row['extra'], {})}
        return BotRunState(
            bot_name=bot_name,
            cursor_index=row['cursor_index'],
            last_run_date=row['last_run_date'],
            total_processed=row['total_processed'],
            total_created=row['total_created'],
            total_updated=row['total_updated'],
            total_failed=row['total_failed'],
            extra=extra,
        )

    async def save(self, state: BotRunState) -> None:
        async with self.db_pool.acquire() as conn:
            await conn.execute("""
                INSERT INTO bot_state (
                    bot_name, cursor_index, last_run_date,
                    total_processed, total_created, total_updated, total_failed,
                    extra, updated_at
                )
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8::jsonb, NOW())
                ON CONFLICT (bot_name) DO UPDATE SET
                    cursor_index = EXCLUDED.cursor_index,
                    last_run_date = EXCLUDED.last_run_date,
                    total_processed = EXCLUDED.total_processed,
                    total_created = EXCLUDED.total_created,
                    total_updated = EXCLUDED.total_updated,
                    total_failed = EXCLUDED.total_failed,
                    extra = EXCLUDED.extra,
                    updated_at = NOW()
            """,
                state.bot_name,
                state.cursor_index,
                state.last_run_date,
                state.total_processed,
                state.total_created,
                state.total_updated,
                state.total_failed,
                dump_json(state.extra or {}),
            )
