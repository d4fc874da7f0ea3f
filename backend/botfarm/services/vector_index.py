"""
Vector index boundary for semantic duplicate detection

SimilarityIndex is the interface the duplicate engine depends on.
PgVectorIndex stores OpenAI embeddings of each item's question in a
pgvector column and answers nearest-neighbour queries with cosine similarity:

    similarity = 1 - (embedding <=> query)

Scores are on the same [0, 1] scale as the lexical engine, so the same
thresholds apply.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Dict, Any, Protocol

import asyncpg
import numpy as np
from openai import AsyncOpenAI
from pgvector.asyncpg import register_vector

from ..models.content_item import ContentItem

logger = logging.getLogger(__name__)

EMBEDDING_DIMENSIONS = 1536
MAX_EMBED_CHARS = 8000


@dataclass
class IndexMatch:
    id: str
    score: float
    metadata: Optional[Dict[str, Any]] = None


class SimilarityIndex(Protocol):

    async def ensure_table(self) -> None:
        ...

    async def index(self, item: ContentItem) -> None:
        ...

    async def search(
        self,
        text: str,
        limit: int = 10,
        threshold: float = 0.7,
        filter: Optional[Dict[str, Any]] = None,
    ) -> List[IndexMatch]:
        ...

    async def remove(self, item_id: str) -> None:
        ...


class PgVectorIndex:
    """
    pgvector-backed SimilarityIndex.

    Storage: content_embeddings (item_id, channel, embedding vector(1536))
    """

    def __init__(
        self,
        db_pool: asyncpg.Pool,
        openai_client: AsyncOpenAI,
        model: str = "text-embedding-3-small",
    ):
        self.db_pool = db_pool
        self.openai_client = openai_client
        self.model = model

    async def ensure_table(self) -> None:
        async with self.db_pool.acquire() as conn:
            await conn.execute("CREATE EXTENSION IF NOT EXISTS vector")
            await conn.execute(f"""
                CREATE TABLE IF NOT EXISTS content_embeddings (
                    item_id TEXT PRIMARY KEY,
                    channel TEXT NOT NULL DEFAULT '',
                    embedding vector({EMBEDDING_DIMENSIONS}) NOT NULL,
                    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
                )
            """)

    async def embed(self, text: str) -> np.ndarray:
        if len(text) > MAX_EMBED_CHARS:
            text = text[:MAX_EMBED_CHARS]

        response = await self.openai_client.embeddings.create(
            model=self.model,
            input=text,
        )
        return np.array(response.data[0].embedding, dtype=np.float32)

    async def index(self, item: ContentItem) -> None:
        embedding = await self.embed(item.text())

        async with self.db_pool.acquire() as conn:
            await register_vector(conn)
            await conn.execute("""
                INSERT INTO content_embeddings (item_id, channel, embedding, updated_at)
                VALUES ($1, $2, $3, NOW())
                ON CONFLICT (item_id) DO UPDATE SET
                    channel = EXCLUDED.channel,
                    embedding = EXCLUDED.embedding,
                    updated_at = NOW()
            """, item.id, item.channel, embedding)

        logger.debug(f"✅ Indexed embedding for {item.id}")

    async def search(
        self,
        text: str,
        limit: int = 10,
        threshold: float = 0.7,
        filter: Optional[Dict[str, Any]] = None,
    ) -> List[IndexMatch]:
        """
        Nearest neighbours of text with cosine similarity >= threshold.

        filter: optional {'channel': ...} restriction
        """
        embedding = await self.embed(text)
        channel = (filter or {}).get('channel')

        async with self.db_pool.acquire() as conn:
            await register_vector(conn)
            # Cosine distance (1 - cosine_similarity): filter by similarity,
            # sort by distance ascending
            rows = await conn.fetch("""
                SELECT item_id, channel, 1 - (embedding <=> $1::vector) AS similarity
                FROM content_embeddings
                WHERE 1 - (embedding <=> $1::vector) >= $2
                  AND ($4::text IS NULL OR channel = $4)
                ORDER BY embedding <=> $1::vector ASC
                LIMIT $3
            """, embedding, threshold, limit, channel)

        if not rows:
            logger.debug(f"No semantic neighbours found (threshold={threshold})")

        return [
            IndexMatch(
                id=row['item_id'],
                score=float(row['similarity']),
                metadata={'channel': row['channel']},
            )
            for row in rows
        ]

    async def remove(self, item_id: str) -> None:
        async with self.db_pool.acquire() as conn:
            await conn.execute("DELETE FROM content_embeddings WHERE item_id = $1", item_id)
