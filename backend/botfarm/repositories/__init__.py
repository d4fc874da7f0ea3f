"""
Repositories - PostgreSQL data access

Each repository wraps an asyncpg pool and returns domain models.
"""

from .schema import ensure_schema, SchemaBootstrapError
from .content_repository import ContentRepository
from .work_queue_repository import WorkQueueRepository
from .bot_state_repository import BotStateRepository
from .run_repository import RunRepository
from .ledger_repository import LedgerRepository
from .store import Store, open_store

__all__ = [
    'ensure_schema',
    'SchemaBootstrapError',
    'ContentRepository',
    'WorkQueueRepository',
    'BotStateRepository',
    'RunRepository',
    'LedgerRepository',
    'Store',
    'open_store',
]
