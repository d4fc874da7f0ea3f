"""
Work item domain model

A durable record of one deferred unit of work against one content item.

Storage: PostgreSQL (work_queue table)

Lifecycle:
    pending -> in_progress -> completed
                           -> failed     (terminal, never retried automatically)

Re-enqueueing a failed or completed item is an explicit producer action that
creates a new row.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any


class WorkStatus(Enum):
    """Lifecycle status of a work item."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_unresolved(self) -> bool:
        return self in (WorkStatus.PENDING, WorkStatus.IN_PROGRESS)


class WorkItemType(Enum):
    """Common work item types (the column is an open string set)."""
    DIAGRAM = "diagram"
    SUMMARY = "summary"
    METADATA = "metadata"
    SCORING = "scoring"
    IMPROVEMENT = "improvement"
    DEDUP = "dedup"


DEFAULT_PRIORITY = 5


@dataclass
class WorkItem:
    """
    One unit of deferred work.

    priority: lower = more urgent. Within a priority tier the freshest item
    is claimed first.
    result: opaque JSON payload written by the consumer on completion/failure.
    """
    id: int
    item_type: str
    item_id: str
    action: str
    priority: int = DEFAULT_PRIORITY
    status: WorkStatus = WorkStatus.PENDING
    reason: Optional[str] = None
    created_by: Optional[str] = None
    assigned_to: Optional[str] = None
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    result: Optional[Dict[str, Any]] = None

    @property
    def is_unresolved(self) -> bool:
        return self.status.is_unresolved


@dataclass
class EnqueueResult:
    """Outcome of an enqueue: the row id and whether it was newly inserted."""
    id: int
    is_new: bool


@dataclass
class QueueStats:
    """Work queue counts by status, action and item type."""
    pending: int = 0
    in_progress: int = 0
    completed: int = 0
    failed: int = 0
    by_action: Dict[str, int] = field(default_factory=dict)
    by_type: Dict[str, int] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return self.pending + self.in_progress + self.completed + self.failed
