"""
Pytest configuration and in-memory fakes for the bot tests.

The fakes mirror the repositories' contracts (claim order, conditional
transitions, field ownership) so the runner and the bots can be exercised
without PostgreSQL. SQL itself is covered by the AsyncMock pool tests and
the integration tests (TEST_POSTGRES_DSN).
"""

import itertools
import json
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Optional, List, Dict, Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from botfarm.models import (
    ContentItem,
    WorkItem,
    WorkStatus,
    EnqueueResult,
    BotRunState,
    check_owner,
    DEFAULT_PRIORITY,
)

pytest_plugins = ('pytest_asyncio',)


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "asyncio: mark test as an async test."
    )
    config.addinivalue_line(
        "markers", "integration: mark test as integration test requiring PostgreSQL"
    )


BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_item(item_id: str, question: str = "", **kwargs) -> ContentItem:
    return ContentItem(id=item_id, question=question or f"What is {item_id}?", **kwargs)


# =============================================================================
# Mock asyncpg pool
# =============================================================================

def make_pool(conn):
    """Pool whose acquire() yields the given (mock) connection."""
    pool = MagicMock()
    acquire_cm = MagicMock()
    acquire_cm.__aenter__ = AsyncMock(return_value=conn)
    acquire_cm.__aexit__ = AsyncMock(return_value=False)
    pool.acquire.return_value = acquire_cm
    pool.close = AsyncMock()
    return pool


@pytest.fixture
def conn():
    conn = MagicMock()
    conn.execute = AsyncMock(return_value="UPDATE 1")
    conn.fetch = AsyncMock(return_value=[])
    conn.fetchrow = AsyncMock(return_value=None)
    conn.fetchval = AsyncMock(return_value=None)
    return conn


@pytest.fixture
def pool(conn):
    return make_pool(conn)


# =============================================================================
# In-memory repositories
# =============================================================================

class FakeContentRepository:

    def __init__(self, items: Optional[List[ContentItem]] = None):
        self.items: Dict[str, ContentItem] = {i.id: i for i in (items or [])}

    def add(self, *items: ContentItem):
        for item in items:
            self.items[item.id] = item

    async def get(self, item_id):
        return self.items.get(item_id)

    async def list_all(self):
        return [self.items[k] for k in sorted(self.items)]

    async def count(self):
        return len(self.items)

    async def list_by_channel(self, channel, active_only=True):
        items = [
            i for i in self.items.values()
            if i.channel == channel and (not active_only or i.status == 'active')
        ]
        items.sort(key=lambda i: (i.last_updated is not None, i.last_updated or BASE_TIME, i.id))
        return items

    async def find_unscored(self, limit):
        found = [i for i in await self.list_all() if i.relevance_score is None and i.status == 'active']
        return found[:limit]

    async def find_missing_tldr(self, limit, min_length=20):
        found = [
            i for i in await self.list_all()
            if (not i.tldr or len(i.tldr.strip()) < min_length) and i.status == 'active'
        ]
        return found[:limit]

    async def save_quality_metadata(self, item_id, metadata, bot_name):
        check_owner('quality', bot_name)
        item = self.items.get(item_id)
        if item is None:
            return False
        for key, value in metadata.items():
            setattr(item, key, value)
        item.reviewed_at = datetime.now(timezone.utc)
        return True

    async def clear_quality_metadata(self, ids=None):
        count = 0
        for item in self.items.values():
            if ids is None or item.id in ids:
                item.relevance_score = None
                item.relevance_details = None
                item.review_status = None
                item.improvement_suggestions = None
                item.reviewed_at = None
                count += 1
        return count

    async def save_tldr(self, item_id, tldr, bot_name):
        check_owner('summary', bot_name)
        if item_id not in self.items:
            return False
        self.items[item_id].tldr = tldr
        return True

    async def mark_duplicate(self, item_id, keeper_id, bot_name):
        check_owner('curation', bot_name)
        if item_id not in self.items:
            return False
        self.items[item_id].status = 'duplicate'
        self.items[item_id].duplicate_of = keeper_id
        return True


class FakeWorkQueueRepository:

    def __init__(self):
        self.rows: Dict[int, WorkItem] = {}
        self._ids = itertools.count(1)
        self._clock = itertools.count()

    async def enqueue(self, item_id, item_type, action, reason=None, created_by=None,
                      priority=DEFAULT_PRIORITY, assigned_to=None):
        for row in self.rows.values():
            if row.item_type == item_type and row.item_id == item_id and row.is_unresolved:
                return EnqueueResult(id=row.id, is_new=False)
        work_id = next(self._ids)
        self.rows[work_id] = WorkItem(
            id=work_id,
            item_type=item_type,
            item_id=item_id,
            action=action,
            priority=priority,
            reason=reason,
            created_by=created_by,
            assigned_to=assigned_to,
            created_at=BASE_TIME + timedelta(seconds=next(self._clock)),
        )
        return EnqueueResult(id=work_id, is_new=True)

    async def claim_batch(self, item_type, limit, assigned_to=None):
        pending = [
            r for r in self.rows.values()
            if r.status == WorkStatus.PENDING and r.item_type == item_type
            and (assigned_to is None or r.assigned_to in (None, assigned_to))
        ]
        pending.sort(key=lambda r: (r.priority, -r.created_at.timestamp(), -r.id))
        claimed = pending[:limit]
        for row in claimed:
            row.status = WorkStatus.IN_PROGRESS
            row.started_at = datetime.now(timezone.utc)
            row.assigned_to = assigned_to or row.assigned_to
        return [replace(r) for r in claimed]

    async def start(self, work_id, assigned_to=None):
        row = self.rows.get(work_id)
        if row is None or row.status != WorkStatus.PENDING:
            return False
        row.status = WorkStatus.IN_PROGRESS
        return True

    async def complete(self, work_id, result=None):
        row = self.rows.get(work_id)
        if row is None or row.status != WorkStatus.IN_PROGRESS:
            return False
        row.status = WorkStatus.COMPLETED
        row.result = result
        return True

    async def fail(self, work_id, reason):
        row = self.rows.get(work_id)
        if row is None or row.status != WorkStatus.IN_PROGRESS:
            return False
        row.status = WorkStatus.FAILED
        row.result = {'error': reason}
        return True

    async def get(self, work_id):
        return self.rows.get(work_id)

    def unresolved(self, item_type=None):
        return [
            r for r in self.rows.values()
            if r.is_unresolved and (item_type is None or r.item_type == item_type)
        ]


class FakeBotStateRepository:

    def __init__(self):
        self.states: Dict[str, BotRunState] = {}
        self.saves = 0

    async def load(self, bot_name, default_extra=None):
        if bot_name in self.states:
            stored = self.states[bot_name]
            return replace(stored, extra={**(default_extra or {}), **stored.extra})
        return BotRunState(bot_name=bot_name, extra=dict(default_extra or {}))

    async def save(self, state):
        self.saves += 1
        self.states[state.bot_name] = replace(state, extra=dict(state.extra))


class FakeRunRepository:

    def __init__(self):
        self.runs: Dict[int, Dict[str, Any]] = {}
        self._ids = itertools.count(1)

    async def start_run(self, bot_name):
        run_id = next(self._ids)
        self.runs[run_id] = {'bot_name': bot_name, 'status': 'running'}
        return run_id

    async def update_run_stats(self, run_id, processed, created, updated, failed):
        self.runs[run_id].update(
            processed=processed, created=created, updated=updated, failed=failed
        )

    async def complete_run(self, run_id, summary=None):
        self.runs[run_id].update(status='completed', summary=summary)

    async def fail_run(self, run_id, error):
        self.runs[run_id].update(status='failed', error=error)


class FakeLedgerRepository:

    def __init__(self):
        self.entries: List[Dict[str, Any]] = []

    async def log_action(self, bot_name, action, item_type, item_id,
                         before_state=None, after_state=None, reason=None):
        self.entries.append({
            'bot_name': bot_name,
            'action': action,
            'item_type': item_type,
            'item_id': item_id,
            'before_state': before_state,
            'after_state': after_state,
            'reason': reason,
        })
        return len(self.entries)


class FakeStore:

    def __init__(self, items: Optional[List[ContentItem]] = None):
        self.db_pool = None
        self.content = FakeContentRepository(items)
        self.queue = FakeWorkQueueRepository()
        self.states = FakeBotStateRepository()
        self.runs = FakeRunRepository()
        self.ledger = FakeLedgerRepository()
        self.schema_calls = 0

    async def ensure_schema(self):
        self.schema_calls += 1

    async def close(self):
        pass


@pytest.fixture
def store():
    return FakeStore()


# =============================================================================
# Oracle doubles
# =============================================================================

class ScriptedOracle:
    """OracleClient stand-in returning queued payloads (None = failure)."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    async def invoke(self, task, payload):
        self.calls.append((task.name, payload))
        if not self.responses:
            return None
        return self.responses.pop(0)


def chat_response(content: str):
    """Shape of an openai chat completion, enough for OracleClient."""
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))]
    )


def openai_client(*contents):
    """AsyncOpenAI double whose completions return the given contents in turn."""
    client = MagicMock()
    client.chat.completions.create = AsyncMock(
        side_effect=[chat_response(c) for c in contents]
    )
    return client


def judgment(value=7, **overrides) -> Dict[str, Any]:
    payload = {
        'interviewFrequency': value,
        'practicalRelevance': value,
        'conceptDepth': value,
        'industryDemand': value,
        'difficultyAppropriate': value,
        'questionClarity': value,
        'answerQuality': value,
        'reasoning': 'Commonly asked.',
        'recommendation': 'keep',
    }
    payload.update(overrides)
    return payload


def judgment_json(value=7, **overrides) -> str:
    return json.dumps(judgment(value, **overrides))


async def no_sleep(seconds):
    return None
