"""
Work Queue Repository - PostgreSQL-backed claim protocol

Storage strategy:
- PostgreSQL: work_queue table
- One unresolved (pending/in_progress) row per (item_type, item_id), enforced
  by the partial unique index uq_work_queue_unresolved

State machine:
    enqueue  -> pending
    claim    pending -> in_progress   (single conditional UPDATE)
    complete in_progress -> completed
    fail     in_progress -> failed    (terminal)

Every transition is one conditional UPDATE. Zero affected rows means another
runner got there first; callers treat that as "already claimed", not an error.
"""
import logging
from typing import Optional, List, Dict, Any

import asyncpg

from ..models.work_item import (
    WorkItem,
    WorkStatus,
    EnqueueResult,
    QueueStats,
    DEFAULT_PRIORITY,
)
from .rows import dump_json, load_json, affected_rows

logger = logging.getLogger(__name__)


def _claim_order_key(item: WorkItem):
    """priority ascending, then freshest first"""
    created = item.created_at.timestamp() if item.created_at else 0.0
    return (item.priority, -created, -item.id)


class WorkQueueRepository:
    """
    Repository for WorkItem management

    Producers enqueue; consumers claim batches and resolve each claimed
    item exactly once.
    """

    def __init__(self, db_pool: asyncpg.Pool):
        self.db_pool = db_pool

    # =========================================================================
    # PRODUCER SIDE
    # =========================================================================

    async def enqueue(
        self,
        item_id: str,
        item_type: str,
        action: str,
        reason: Optional[str] = None,
        created_by: Optional[str] = None,
        priority: int = DEFAULT_PRIORITY,
        assigned_to: Optional[str] = None,
    ) -> EnqueueResult:
        """
        Add a work item unless an unresolved one already exists.

        Idempotent from the producer's perspective: a second call while the
        first row is pending or in progress returns that row's id.

        Returns:
            EnqueueResult(id, is_new)
        """
        async with self.db_pool.acquire() as conn:
            # Two passes: the unresolved row may be resolved between the
            # conflicting insert and the lookup.
            for _ in range(2):
                work_id = await conn.fetchval("""
                    INSERT INTO work_queue (
                        item_type, item_id, action, priority,
                        reason, created_by, assigned_to
                    )
                    VALUES ($1, $2, $3, $4, $5, $6, $7)
                    ON CONFLICT (item_type, item_id)
                        WHERE status IN ('pending', 'in_progress')
                        DO NOTHING
                    RETURNING id
                """, item_type, item_id, action, priority, reason, created_by, assigned_to)

                if work_id is not None:
                    logger.debug(f"➕ Enqueued {item_type}:{item_id} ({action}) as #{work_id}")
                    return EnqueueResult(id=work_id, is_new=True)

                existing = await conn.fetchval("""
                    SELECT id FROM work_queue
                    WHERE item_type = $1 AND item_id = $2
                      AND status IN ('pending', 'in_progress')
                """, item_type, item_id)

                if existing is not None:
                    return EnqueueResult(id=existing, is_new=False)

        raise RuntimeError(f"Could not enqueue {item_type}:{item_id}")

    # =========================================================================
    # CONSUMER SIDE
    # =========================================================================

    async def claim_batch(
        self,
        item_type: str,
        limit: int,
        assigned_to: Optional[str] = None,
    ) -> List[WorkItem]:
        """
        Claim up to `limit` pending items of one type and mark them in progress.

        Selection order: priority ascending, then created_at descending
        (freshest first within a priority tier). Selection and the status
        change happen in one statement; SKIP LOCKED keeps concurrent runners
        from claiming the same rows.

        Args:
            item_type: Work item type to claim
            limit: Maximum number of items
            assigned_to: Claiming bot; rows assigned to another bot are left alone

        Returns:
            Claimed WorkItems (status in_progress), in claim order
        """
        if limit <= 0:
            return []

        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch("""
                UPDATE work_queue
                SET status = 'in_progress',
                    started_at = NOW(),
                    assigned_to = COALESCE($3, assigned_to)
                WHERE id IN (
                    SELECT id FROM work_queue
                    WHERE status = 'pending'
                      AND item_type = $1
                      AND ($3::text IS NULL OR assigned_to IS NULL OR assigned_to = $3)
                    ORDER BY priority ASC, created_at DESC, id DESC
                    LIMIT $2
                    FOR UPDATE SKIP LOCKED
                )
                RETURNING *
            """, item_type, limit, assigned_to)

        items = sorted((self._row_to_work_item(r) for r in rows), key=_claim_order_key)
        if items:
            logger.info(f"📋 Claimed {len(items)} {item_type} work items")
        return items

    async def peek_pending(self, item_type: Optional[str] = None, limit: int = 50) -> List[WorkItem]:
        """List pending items in claim order without claiming them."""
        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch("""
                SELECT * FROM work_queue
                WHERE status = 'pending'
                  AND ($1::text IS NULL OR item_type = $1)
                ORDER BY priority ASC, created_at DESC, id DESC
                LIMIT $2
            """, item_type, limit)

        return [self._row_to_work_item(r) for r in rows]

    async def start(self, work_id: int, assigned_to: Optional[str] = None) -> bool:
        """
        Transition pending -> in_progress and stamp the start time.

        Returns:
            True if this call claimed the item, False if it was already
            claimed or resolved
        """
        async with self.db_pool.acquire() as conn:
            status = await conn.execute("""
                UPDATE work_queue
                SET status = 'in_progress',
                    started_at = NOW(),
                    assigned_to = COALESCE($2, assigned_to)
                WHERE id = $1 AND status = 'pending'
            """, work_id, assigned_to)

        claimed = affected_rows(status) == 1
        if not claimed:
            logger.info(f"ℹ️ Work item #{work_id} already claimed")
        return claimed

    async def complete(self, work_id: int, result: Optional[Dict[str, Any]] = None) -> bool:
        """
        Transition in_progress -> completed and store the result payload.

        Returns:
            False if the item was not in progress
        """
        async with self.db_pool.acquire() as conn:
            status = await conn.execute("""
                UPDATE work_queue
                SET status = 'completed',
                    processed_at = NOW(),
                    result = $2::jsonb
                WHERE id = $1 AND status = 'in_progress'
            """, work_id, dump_json(result))

        done = affected_rows(status) == 1
        if not done:
            logger.warning(f"⚠️ Work item #{work_id} was not in progress, not completed")
        return done

    async def fail(self, work_id: int, reason: str) -> bool:
        """
        Transition in_progress -> failed (terminal).

        Failed items are never retried automatically; a producer must
        enqueue a new item.
        """
        async with self.db_pool.acquire() as conn:
            status = await conn.execute("""
                UPDATE work_queue
                SET status = 'failed',
                    processed_at = NOW(),
                    result = $2::jsonb
                WHERE id = $1 AND status = 'in_progress'
            """, work_id, dump_json({'error': reason}))

        failed = affected_rows(status) == 1
        if failed:
            logger.error(f"❌ Marked work item #{work_id} as failed: {reason}")
        else:
            logger.warning(f"⚠️ Work item #{work_id} was not in progress, not failed")
        return failed

    # =========================================================================
    # OPERATOR / MONITORING
    # =========================================================================

    async def get(self, work_id: int) -> Optional[WorkItem]:
        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow("SELECT * FROM work_queue WHERE id = $1", work_id)
        return self._row_to_work_item(row) if row else None

    async def stats(self) -> QueueStats:
        """Counts grouped by status, action and item type."""
        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch("""
                SELECT status, action, item_type, COUNT(*) AS count
                FROM work_queue
                GROUP BY status, action, item_type
            """)

        stats = QueueStats()
        for row in rows:
            count = row['count']
            status = row['status']
            if hasattr(stats, status):
                setattr(stats, status, getattr(stats, status) + count)
            stats.by_action[row['action']] = stats.by_action.get(row['action'], 0) + count
            stats.by_type[row['item_type']] = stats.by_type.get(row['item_type'], 0) + count
        return stats

    async def fail_stale(self, hours: int = 6) -> int:
        """
        Fail items left in progress for more than `hours` (crashed runs).

        Returns:
            Number of items failed
        """
        async with self.db_pool.acquire() as conn:
            status = await conn.execute("""
                UPDATE work_queue
                SET status = 'failed',
                    processed_at = NOW(),
                    result = $2::jsonb
                WHERE status = 'in_progress'
                  AND started_at < NOW() - make_interval(hours => $1)
            """, hours, dump_json({'error': 'stale claim'}))

        count = affected_rows(status)
        if count > 0:
            logger.info(f"🔄 Failed {count} stale work items")
        return count

    def _row_to_work_item(self, row) -> WorkItem:
        return WorkItem(
            id=row['id'],
            item_type=row['item_type'],
            item_id=row['item_id'],
            action=row['action'],
            priority=row['priority'],
            status=WorkStatus(row['status']),
            reason=row.get('reason'),
            created_by=row.get('created_by'),
            assigned_to=row.get('assigned_to'),
            created_at=row.get('created_at'),
            started_at=row.get('started_at'),
            processed_at=row.get('processed_at'),
            result=load_json(row.get('result')),
        )
