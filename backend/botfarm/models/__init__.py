"""
Domain Models - Storage-agnostic data structures

These models represent the core domain entities independent of storage layer.
Bots and services operate on these models, not raw database rows.
"""

from .work_item import (
    WorkItem,
    WorkStatus,
    WorkItemType,
    EnqueueResult,
    QueueStats,
    DEFAULT_PRIORITY,
)
from .content_item import (
    ContentItem,
    FIELD_GROUPS,
    FIELD_OWNERS,
    FieldOwnershipError,
    check_owner,
)
from .bot_state import BotRunState, BotRun, RunStatus, LedgerEntry

__all__ = [
    'WorkItem',
    'WorkStatus',
    'WorkItemType',
    'EnqueueResult',
    'QueueStats',
    'DEFAULT_PRIORITY',
    'ContentItem',
    'FIELD_GROUPS',
    'FIELD_OWNERS',
    'FieldOwnershipError',
    'check_owner',
    'BotRunState',
    'BotRun',
    'RunStatus',
    'LedgerEntry',
]
