"""
Tests for the concrete bots, each driven through run_bot on the fake store.
"""

from datetime import datetime, timezone

import pytest

from botfarm.models import WorkStatus
from botfarm.services.quality_scoring import QualityScorer
from botfarm.services.vector_index import IndexMatch
from botfarm.workers.bot_runner import RunnerOptions, run_bot
from botfarm.workers.duplicate_bot import DuplicateBot
from botfarm.workers.gap_scanner import GapScanner, find_gaps
from botfarm.workers.relevance_bot import RelevanceBot
from botfarm.workers.summary_bot import SummaryBot, clamp_tldr, TLDR_MAX_LENGTH

from conftest import FakeStore, ScriptedOracle, judgment, make_item, no_sleep


def ts(day):
    return datetime(2024, 1, day, tzinfo=timezone.utc)


def options(**kwargs):
    return RunnerOptions(sleep=no_sleep, **kwargs)


# =============================================================================
# relevance-bot
# =============================================================================

@pytest.mark.asyncio
async def test_relevance_scores_unscored_items_once():
    store = FakeStore([
        make_item('q1'),
        make_item('q2', relevance_score=70),
    ])
    oracle = ScriptedOracle(judgment(10))
    bot = RelevanceBot(store, QualityScorer(oracle))

    summary = await run_bot(bot, store, options())

    # prioritized scan only picks the unscored item
    assert summary.mode == 'prioritized'
    assert summary.updated == 1
    item = store.content.items['q1']
    assert item.relevance_score == 100
    assert item.review_status == 'approved'
    assert store.content.items['q2'].relevance_score == 70
    assert len(oracle.calls) == 1
    assert store.ledger.entries[0]['action'] == 'score'
    assert store.ledger.entries[0]['before_state']['relevance_score'] is None


@pytest.mark.asyncio
async def test_relevance_skips_scored_queue_items():
    store = FakeStore([make_item('q1', relevance_score=55)])
    work = await store.queue.enqueue('q1', 'scoring', 'score')
    oracle = ScriptedOracle()
    bot = RelevanceBot(store, QualityScorer(oracle))

    summary = await run_bot(bot, store, options())

    assert summary.skipped == 1
    assert oracle.calls == []
    assert store.queue.rows[work.id].result['status'] == 'skipped'


@pytest.mark.asyncio
async def test_relevance_enqueues_improvement_with_guidance():
    store = FakeStore([make_item('q1')])
    oracle = ScriptedOracle(judgment(6, improvements={'answerIssues': ['no example']}))
    bot = RelevanceBot(store, QualityScorer(oracle))

    summary = await run_bot(bot, store, options())

    assert store.content.items['q1'].review_status == 'needs_improvement'
    improvements = store.queue.unresolved('improvement')
    assert len(improvements) == 1
    assert improvements[0].created_by == 'relevance-bot'
    assert 'no example' in improvements[0].reason
    assert summary.extra['improvements_enqueued'] == 1


@pytest.mark.asyncio
async def test_relevance_no_improvement_without_guidance():
    store = FakeStore([make_item('q1')])
    bot = RelevanceBot(store, QualityScorer(ScriptedOracle(judgment(6))))

    await run_bot(bot, store, options())

    assert store.queue.unresolved('improvement') == []


@pytest.mark.asyncio
async def test_relevance_oracle_failure_counts_as_failed():
    store = FakeStore([make_item('q1'), make_item('q2')])
    bot = RelevanceBot(store, QualityScorer(ScriptedOracle(None, judgment(3))))

    summary = await run_bot(bot, store, options())

    assert summary.failed == 1
    assert summary.updated == 1
    assert store.content.items['q1'].relevance_score is None
    assert store.content.items['q2'].review_status == 'retire'


@pytest.mark.asyncio
async def test_clear_then_rescore():
    store = FakeStore([make_item('q1', relevance_score=40)])
    bot = RelevanceBot(store, QualityScorer(ScriptedOracle(judgment(9))))

    await store.content.clear_quality_metadata(['q1'])
    await run_bot(bot, store, options())

    assert store.content.items['q1'].relevance_score == 90


# =============================================================================
# summary-bot
# =============================================================================

def test_clamp_tldr():
    assert clamp_tldr("  spaced   out  ") == "spaced out"
    long = clamp_tldr("x" * 200)
    assert len(long) == TLDR_MAX_LENGTH
    assert long.endswith("...")


@pytest.mark.asyncio
async def test_summary_adds_tldr():
    store = FakeStore([
        make_item('q1', 'How does TCP guarantee delivery?'),
        make_item('q2', tldr='Already has a perfectly fine summary.'),
    ])
    tldr = 'Sequence numbers, acks and retransmission make delivery reliable.'
    bot = SummaryBot(store, ScriptedOracle({'tldr': tldr}))

    summary = await run_bot(bot, store, options())

    assert summary.updated == 1
    assert store.content.items['q1'].tldr == tldr
    assert summary.extra['tldr_added'] == 1


@pytest.mark.asyncio
async def test_summary_rejects_restated_question():
    question = 'How does TCP guarantee delivery of packets?'
    store = FakeStore([make_item('q1', question)])
    bot = SummaryBot(store, ScriptedOracle({'tldr': 'How does TCP guarantee delivery of packets'}))

    summary = await run_bot(bot, store, options())

    assert summary.failed == 1
    assert store.content.items['q1'].tldr is None
    assert summary.extra['tldr_rejected'] == 1


# =============================================================================
# duplicate-bot
# =============================================================================

@pytest.mark.asyncio
async def test_newer_duplicate_is_flagged():
    a = make_item('A', 'What is a closure in JavaScript?', channel='js', last_updated=ts(1))
    b = make_item('B', 'what is a closure in javascript', channel='js', last_updated=ts(2))
    c = make_item('C', 'Explain event delegation', channel='js', last_updated=ts(3))
    store = FakeStore([a, b, c])

    summary = await run_bot(DuplicateBot(store), store, options())

    assert store.content.items['A'].status == 'active'
    assert store.content.items['B'].status == 'duplicate'
    assert store.content.items['B'].duplicate_of == 'A'
    assert store.content.items['C'].status == 'active'
    assert summary.updated == 1
    assert store.ledger.entries[0]['after_state'] == {'status': 'duplicate', 'duplicate_of': 'A'}


@pytest.mark.asyncio
async def test_duplicates_only_within_channel():
    a = make_item('A', 'What is a closure?', channel='js', last_updated=ts(1))
    b = make_item('B', 'What is a closure?', channel='python', last_updated=ts(2))
    store = FakeStore([a, b])

    await run_bot(DuplicateBot(store), store, options())

    assert store.content.items['B'].status == 'active'


class _Index:
    """In-memory index: search only sees items indexed so far."""

    def __init__(self, matches, fail=False, fail_setup=False):
        self.matches = matches
        self.fail = fail
        self.fail_setup = fail_setup
        self.indexed = []
        self.tables_ensured = 0

    async def ensure_table(self):
        if self.fail_setup:
            raise ConnectionError("extension missing")
        self.tables_ensured += 1

    async def search(self, text, limit=10, threshold=0.7, filter=None):
        if self.fail:
            raise ConnectionError("index down")
        return [
            IndexMatch(id=i, score=0.95)
            for i in self.matches.get(text, []) if i in self.indexed
        ]

    async def index(self, item):
        self.indexed.append(item.id)

    async def remove(self, item_id):
        pass


@pytest.mark.asyncio
async def test_duplicate_bot_uses_vector_index():
    a = make_item('A', 'Explain closures', channel='js', last_updated=ts(1))
    b = make_item('B', 'Describe lexical scoping captures', channel='js', last_updated=ts(2))
    store = FakeStore([a, b])
    index = _Index({'Describe lexical scoping captures': ['A']})

    await run_bot(DuplicateBot(store, index=index), store, options())

    assert store.content.items['B'].duplicate_of == 'A'
    assert index.indexed == ['A', 'B']
    assert index.tables_ensured == 1


@pytest.mark.asyncio
async def test_duplicate_bot_indexes_peers_before_searching():
    # only the older item's search reports the pair
    a = make_item('A', 'Explain closures', channel='js', last_updated=ts(1))
    b = make_item('B', 'Describe lexical scoping captures', channel='js', last_updated=ts(2))
    store = FakeStore([a, b])
    index = _Index({'Explain closures': ['B']})

    summary = await run_bot(DuplicateBot(store, index=index), store, options())

    assert store.content.items['B'].duplicate_of == 'A'
    assert summary.extra['duplicates_flagged'] == 1


@pytest.mark.asyncio
async def test_duplicate_bot_setup_failure_uses_lexical():
    a = make_item('A', 'What is a closure?', channel='js', last_updated=ts(1))
    b = make_item('B', 'What is a closure?', channel='js', last_updated=ts(2))
    store = FakeStore([a, b])
    index = _Index({}, fail_setup=True)
    bot = DuplicateBot(store, index=index)

    await run_bot(bot, store, options())

    assert bot.index is None
    assert index.indexed == []
    assert store.content.items['B'].status == 'duplicate'


@pytest.mark.asyncio
async def test_duplicate_bot_index_failure_falls_back():
    a = make_item('A', 'What is a closure?', channel='js', last_updated=ts(1))
    b = make_item('B', 'What is a closure?', channel='js', last_updated=ts(2))
    store = FakeStore([a, b])

    summary = await run_bot(DuplicateBot(store, index=_Index({}, fail=True)), store, options())

    assert store.content.items['B'].status == 'duplicate'
    assert summary.failed == 0


# =============================================================================
# gap-scanner
# =============================================================================

def test_find_gaps():
    complete = make_item('q1', relevance_score=80, tldr='A sufficiently long summary.', diagram='graph TD')
    assert find_gaps(complete) == []
    assert [g[0] for g in find_gaps(make_item('q2'))] == ['scoring', 'summary', 'diagram']


@pytest.mark.asyncio
async def test_gap_scanner_enqueues_missing_work_idempotently():
    store = FakeStore([
        make_item('q1'),
        make_item('q2', relevance_score=80, tldr='A sufficiently long summary.', diagram='graph TD'),
        make_item('q3', relevance_score=50),
    ])
    scanner = GapScanner(store)

    first = await run_bot(scanner, store, options())
    second = await run_bot(scanner, store, options())

    assert first.mode == 'sequential'
    assert first.created == 5
    assert first.skipped == 1
    assert second.created == 0
    assert len(store.queue.unresolved()) == 5
    assert {w.item_id for w in store.queue.unresolved('scoring')} == {'q1'}


@pytest.mark.asyncio
async def test_gap_scanner_feeds_consumers():
    store = FakeStore([make_item('q1')])
    await run_bot(GapScanner(store), store, options())

    bot = RelevanceBot(store, QualityScorer(ScriptedOracle(judgment(8))))
    summary = await run_bot(bot, store, options())

    assert summary.mode == 'queue'
    assert store.content.items['q1'].relevance_score == 80
    scoring = [w for w in store.queue.rows.values() if w.item_type == 'scoring']
    assert scoring[0].status == WorkStatus.COMPLETED


# =============================================================================
# registry
# =============================================================================

def test_registry_builds_each_bot():
    from botfarm.config import Settings
    from botfarm.workers.registry import BOTS, build_behavior

    settings = Settings(_env_file=None, openai_api_key='sk-test')
    store = FakeStore()

    for name in BOTS:
        behavior = build_behavior(name, store, settings, oracle=ScriptedOracle())
        assert behavior.name == name


def test_registry_unknown_bot():
    from botfarm.config import Settings
    from botfarm.workers.registry import build_behavior

    with pytest.raises(KeyError):
        build_behavior('nope-bot', FakeStore(), Settings(_env_file=None))
