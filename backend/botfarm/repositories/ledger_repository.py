"""
Ledger Repository - audit trail of bot actions (bot_ledger table)

Every write a bot makes to a content item is logged with the field group's
values before and after, so an operator can trace or revert it.
"""
import logging
from typing import Optional, List, Dict, Any

import asyncpg

from ..models.bot_state import LedgerEntry
from .rows import dump_json, load_json

logger = logging.getLogger(__name__)


class LedgerRepository:

    def __init__(self, db_pool: asyncpg.Pool):
        self.db_pool = db_pool

    async def log_action(
        self,
        bot_name: str,
        action: str,
        item_type: str,
        item_id: str,
        before_state: Optional[Dict[str, Any]] = None,
        after_state: Optional[Dict[str, Any]] = None,
        reason: Optional[str] = None,
    ) -> int:
        async with self.db_pool.acquire() as conn:
            return await conn.fetchval("""
                INSERT INTO bot_ledger (
                    bot_name, action, item_type, item_id,
                    before_state, after_state, reason
                )
                VALUES ($1, $2, $3, $4, $5::jsonb, $6::jsonb, $7)
                RETURNING id
            """,
                bot_name,
                action,
                item_type,
                item_id,
                dump_json(before_state),
                dump_json(after_state),
                reason,
            )

    async def entries(
        self,
        bot_name: Optional[str] = None,
        item_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[LedgerEntry]:
        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch("""
                SELECT * FROM bot_ledger
                WHERE ($1::text IS NULL OR bot_name = $1)
                  AND ($2::text IS NULL OR item_id = $2)
                ORDER BY created_at DESC, id DESC
                LIMIT $3
            """, bot_name, item_id, limit)

        return [
            LedgerEntry(
                id=r['id'],
                bot_name=r['bot_name'],
                action=r['action'],
                item_type=r['item_type'],
                item_id=r['item_id'],
                before_state=load_json(r['before_state']),
                after_state=load_json(r['after_state']),
                reason=r['reason'],
                created_at=r['created_at'],
            )
            for r in rows
        ]

    async def stats(self) -> Dict[str, Dict[str, int]]:
        """Action counts per bot: {bot_name: {action: count}}"""
        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch("""
                SELECT bot_name, action, COUNT(*) AS count
                FROM bot_ledger
                GROUP BY bot_name, action
            """)

        stats: Dict[str, Dict[str, int]] = {}
        for r in rows:
            stats.setdefault(r['bot_name'], {})[r['action']] = r['count']
        return stats
