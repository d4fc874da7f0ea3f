"""
Bot bookkeeping models

Storage: PostgreSQL (bot_state, bot_runs, bot_ledger tables)

- BotRunState: resumable cursor + cumulative counters, one row per bot
- BotRun: run history row (one per invocation)
- LedgerEntry: audit record of a single bot action
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any


@dataclass
class BotRunState:
    """
    Persisted per-bot state.

    cursor_index wraps modulo corpus size. Counters are cumulative across
    runs. extra holds behavior-specific counters seeded by default_state().
    """
    bot_name: str
    cursor_index: int = 0
    last_run_date: Optional[datetime] = None
    total_processed: int = 0
    total_created: int = 0
    total_updated: int = 0
    total_failed: int = 0
    extra: Dict[str, Any] = field(default_factory=dict)


class RunStatus(Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class BotRun:
    id: int
    bot_name: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    status: RunStatus = RunStatus.RUNNING
    items_processed: int = 0
    items_created: int = 0
    items_updated: int = 0
    items_failed: int = 0
    summary: Optional[Dict[str, Any]] = None


@dataclass
class LedgerEntry:
    id: int
    bot_name: str
    action: str
    item_type: str
    item_id: str
    before_state: Optional[Dict[str, Any]] = None
    after_state: Optional[Dict[str, Any]] = None
    reason: Optional[str] = None
    created_at: Optional[datetime] = None
