"""
Content Repository - content_items access with field-group ownership

Each mutable field group has exactly one owning bot. The writers below take
the calling bot's name and refuse the write (FieldOwnershipError) unless it
owns the group, so two bots never write the same columns.
"""
import logging
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any, Sequence

import asyncpg

from ..models.content_item import ContentItem, check_owner
from .rows import dump_json, load_json, affected_rows

logger = logging.getLogger(__name__)


class ContentRepository:
    """
    Repository for ContentItem reads and owned-group writes
    """

    def __init__(self, db_pool: asyncpg.Pool):
        self.db_pool = db_pool

    # =========================================================================
    # READS
    # =========================================================================

    async def get(self, item_id: str) -> Optional[ContentItem]:
        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow("SELECT * FROM content_items WHERE id = $1", item_id)
        return self._row_to_item(row) if row else None

    async def list_all(self) -> List[ContentItem]:
        """
        Whole corpus in a stable order (id), used by sequential scans.

        The order must not change between runs or the resumable cursor
        would skip or repeat items.
        """
        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch("SELECT * FROM content_items ORDER BY id")
        return [self._row_to_item(r) for r in rows]

    async def count(self) -> int:
        async with self.db_pool.acquire() as conn:
            return await conn.fetchval("SELECT COUNT(*) FROM content_items")

    async def list_by_channel(self, channel: str, active_only: bool = True) -> List[ContentItem]:
        """Items of one channel, oldest first."""
        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch("""
                SELECT * FROM content_items
                WHERE channel = $1
                  AND ($2 = FALSE OR status = 'active')
                ORDER BY last_updated ASC NULLS FIRST, id
            """, channel, active_only)
        return [self._row_to_item(r) for r in rows]

    async def find_unscored(self, limit: int) -> List[ContentItem]:
        """Prioritized scan: active items that were never scored."""
        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch("""
                SELECT * FROM content_items
                WHERE relevance_score IS NULL
                  AND status = 'active'
                ORDER BY created_at DESC, id
                LIMIT $1
            """, limit)
        return [self._row_to_item(r) for r in rows]

    async def find_missing_tldr(self, limit: int, min_length: int = 20) -> List[ContentItem]:
        """Prioritized scan: active items with no TL;DR or one that is too short."""
        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch("""
                SELECT * FROM content_items
                WHERE (tldr IS NULL OR LENGTH(TRIM(tldr)) < $2)
                  AND status = 'active'
                ORDER BY created_at DESC, id
                LIMIT $1
            """, limit, min_length)
        return [self._row_to_item(r) for r in rows]

    # =========================================================================
    # OWNED FIELD-GROUP WRITES
    # =========================================================================

    async def save_quality_metadata(
        self,
        item_id: str,
        metadata: Dict[str, Any],
        bot_name: str,
    ) -> bool:
        """
        Rewrite the quality-metadata group as a whole.

        Args:
            item_id: Content item id
            metadata: relevance_score, relevance_details, review_status,
                improvement_suggestions (reviewed_at is stamped here)
            bot_name: Calling bot, must own the 'quality' group
        """
        check_owner('quality', bot_name)

        async with self.db_pool.acquire() as conn:
            status = await conn.execute("""
                UPDATE content_items
                SET relevance_score = $2,
                    relevance_details = $3::jsonb,
                    review_status = $4,
                    improvement_suggestions = $5::jsonb,
                    reviewed_at = NOW(),
                    last_updated = NOW()
                WHERE id = $1
            """,
                item_id,
                metadata.get('relevance_score'),
                dump_json(metadata.get('relevance_details')),
                metadata.get('review_status'),
                dump_json(metadata.get('improvement_suggestions')),
            )

        return affected_rows(status) == 1

    async def clear_quality_metadata(self, ids: Optional[Sequence[str]] = None) -> int:
        """
        Operator reset: clear quality metadata so items are scored again.

        Args:
            ids: Items to reset, or None for the whole corpus

        Returns:
            Number of items reset
        """
        async with self.db_pool.acquire() as conn:
            status = await conn.execute("""
                UPDATE content_items
                SET relevance_score = NULL,
                    relevance_details = NULL,
                    review_status = NULL,
                    improvement_suggestions = NULL,
                    reviewed_at = NULL,
                    last_updated = NOW()
                WHERE ($1::text[] IS NULL OR id = ANY($1::text[]))
            """, list(ids) if ids is not None else None)

        count = affected_rows(status)
        logger.info(f"🔄 Cleared quality metadata on {count} items")
        return count

    async def save_tldr(self, item_id: str, tldr: str, bot_name: str) -> bool:
        check_owner('summary', bot_name)

        async with self.db_pool.acquire() as conn:
            status = await conn.execute("""
                UPDATE content_items
                SET tldr = $2, last_updated = NOW()
                WHERE id = $1
            """, item_id, tldr)

        return affected_rows(status) == 1

    async def mark_duplicate(self, item_id: str, keeper_id: str, bot_name: str) -> bool:
        """Flag an item as a duplicate of the keeper. Content is never deleted."""
        check_owner('curation', bot_name)

        async with self.db_pool.acquire() as conn:
            status = await conn.execute("""
                UPDATE content_items
                SET status = 'duplicate', duplicate_of = $2, last_updated = NOW()
                WHERE id = $1
            """, item_id, keeper_id)

        return affected_rows(status) == 1

    # =========================================================================
    # SEEDING
    # =========================================================================

    async def upsert(self, item: ContentItem) -> None:
        """Insert or replace the scalar text fields of an item."""
        async with self.db_pool.acquire() as conn:
            await conn.execute("""
                INSERT INTO content_items (
                    id, question, answer, explanation, channel, sub_channel,
                    difficulty, tags, companies, diagram, last_updated, created_at
                )
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8::jsonb, $9::jsonb, $10, $11,
                        COALESCE($12, NOW()))
                ON CONFLICT (id) DO UPDATE SET
                    question = EXCLUDED.question,
                    answer = EXCLUDED.answer,
                    explanation = EXCLUDED.explanation,
                    channel = EXCLUDED.channel,
                    sub_channel = EXCLUDED.sub_channel,
                    difficulty = EXCLUDED.difficulty,
                    tags = EXCLUDED.tags,
                    companies = EXCLUDED.companies,
                    diagram = EXCLUDED.diagram,
                    last_updated = EXCLUDED.last_updated
            """,
                item.id,
                item.question,
                item.answer,
                item.explanation,
                item.channel,
                item.sub_channel,
                item.difficulty,
                dump_json(item.tags or []),
                dump_json(item.companies or []),
                item.diagram,
                item.last_updated or datetime.now(timezone.utc),
                item.created_at,
            )

    def _row_to_item(self, row) -> ContentItem:
        return ContentItem(
            id=row['id'],
            question=row['question'],
            answer=row.get('answer') or "",
            explanation=row.get('explanation') or "",
            channel=row.get('channel') or "",
            sub_channel=row.get('sub_channel') or "",
            difficulty=row.get('difficulty') or "",
            tags=load_json(row.get('tags'), []),
            companies=load_json(row.get('companies'), []),
            tldr=row.get('tldr'),
            diagram=row.get('diagram'),
            relevance_score=row.get('relevance_score'),
            relevance_details=load_json(row.get('relevance_details')),
            review_status=row.get('review_status'),
            improvement_suggestions=load_json(row.get('improvement_suggestions')),
            reviewed_at=row.get('reviewed_at'),
            status=row.get('status') or 'active',
            duplicate_of=row.get('duplicate_of'),
            last_updated=row.get('last_updated'),
            created_at=row.get('created_at'),
        )
