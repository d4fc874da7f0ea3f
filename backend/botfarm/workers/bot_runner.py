"""
Bot runner - the shared control loop every bot plugs into

One invocation:
1. ensure shared tables exist (fatal on failure)
2. load resumable state (or the behavior's defaults)
3. start a run-history row
4. discover a batch:
     queue        claim pending work items of the bot's item type
     prioritized  behavior.find_candidates() when the queue is empty
     sequential   scan the whole corpus from the cursor, wrapping around
5. drive each item through needs_processing / process_item with a fixed
   delay between processing calls and a per-item error boundary
6. persist cursor and counters after every item (a failed save is logged and
   the next save carries the cumulative state)
7. complete the run row and emit the machine-readable summary

One item's failure never aborts the batch.

Summary counters: behavior counters in the summary are this run's deltas;
all-time totals are reported under a total_ prefix. Behaviors holding an
`oracle` with stats have them reported under an oracle_ prefix.

Cursor rule: a sequential batch of size k starting at cursor i over a corpus
of size N leaves the cursor at (i + k) mod N. Queue and prioritized batches
leave it unchanged.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import (
    Optional, List, Dict, Any, Union, Protocol, Callable, Awaitable,
)

from ..config.settings import Settings
from ..models.content_item import ContentItem
from ..models.work_item import WorkItem
from ..models.bot_state import BotRunState
from ..repositories.store import Store
from ..services.run_output import RunOutput

logger = logging.getLogger(__name__)

MODE_QUEUE = 'queue'
MODE_PRIORITIZED = 'prioritized'
MODE_SEQUENTIAL = 'sequential'


@dataclass
class ProcessingCheck:
    needs: bool
    reason: str = ""


@dataclass
class ItemOutcome:
    """
    Result of process_item.

    counters are added to the bot's state.extra (behavior-specific totals)
    and to this run's summary.
    result is stored on the resolved work item.
    """
    success: bool = True
    created: int = 0
    updated: int = 0
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    counters: Dict[str, int] = field(default_factory=dict)

    @classmethod
    def failure(cls, error: str) -> 'ItemOutcome':
        return cls(success=False, error=error)


class BotBehavior(Protocol):
    """
    Capability interface for a bot.

    item_type: work item type consumed from the queue, None for bots that
    only scan. A behavior may also define
        async find_candidates(limit) -> list[ContentItem]
    for the prioritized fallback scan, and
        async setup()
    which runs once after the shared tables are ensured.
    """
    name: str
    item_type: Optional[str]

    def default_state(self) -> Dict[str, Any]:
        ...

    async def needs_processing(self, item: ContentItem) -> ProcessingCheck:
        ...

    async def process_item(self, item: ContentItem) -> Union[ItemOutcome, bool]:
        ...


@dataclass
class RunnerOptions:
    batch_size: int = 100
    rate_limit_seconds: float = 2.0
    use_work_queue: bool = True
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    @classmethod
    def from_settings(cls, settings: Settings) -> 'RunnerOptions':
        return cls(
            batch_size=settings.batch_size,
            rate_limit_seconds=settings.rate_limit_seconds,
            use_work_queue=settings.use_work_queue,
        )


@dataclass
class BatchEntry:
    item: Optional[ContentItem]
    work_item: Optional[WorkItem] = None

    @property
    def item_id(self) -> str:
        if self.item is not None:
            return self.item.id
        return self.work_item.item_id


@dataclass
class Batch:
    mode: str
    entries: List[BatchEntry] = field(default_factory=list)
    start_cursor: int = 0
    corpus_size: int = 0


@dataclass
class RunSummary:
    bot_name: str
    run_id: Optional[int] = None
    mode: str = MODE_SEQUENTIAL
    batch_size: int = 0
    processed: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    cursor_index: int = 0
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_output(self) -> Dict[str, Any]:
        return {
            'bot': self.bot_name,
            'run_id': self.run_id,
            'mode': self.mode,
            'batch_size': self.batch_size,
            'processed': self.processed,
            'created': self.created,
            'updated': self.updated,
            'skipped': self.skipped,
            'failed': self.failed,
            'cursor_index': self.cursor_index,
            **self.extra,
        }


def _as_outcome(value: Union[ItemOutcome, bool, None]) -> ItemOutcome:
    if isinstance(value, ItemOutcome):
        return value
    if value:
        return ItemOutcome(updated=1)
    return ItemOutcome.failure("process_item returned False")


async def discover_batch(
    behavior: BotBehavior,
    store: Store,
    state: BotRunState,
    options: RunnerOptions,
) -> Batch:
    """Queue first, then prioritized candidates, then a sequential scan."""
    limit = options.batch_size

    if options.use_work_queue and behavior.item_type:
        work_items = await store.queue.claim_batch(
            behavior.item_type, limit, assigned_to=behavior.name
        )
        if work_items:
            entries = []
            for work_item in work_items:
                item = await store.content.get(work_item.item_id)
                entries.append(BatchEntry(item=item, work_item=work_item))
            logger.info(f"📋 Using work queue: {len(entries)} items")
            return Batch(mode=MODE_QUEUE, entries=entries)

    find_candidates = getattr(behavior, 'find_candidates', None)
    if find_candidates is not None:
        candidates = await find_candidates(limit)
        if candidates:
            logger.info(f"🎯 Using prioritized scan: {len(candidates)} items")
            return Batch(
                mode=MODE_PRIORITIZED,
                entries=[BatchEntry(item=item) for item in candidates],
            )

    corpus = await store.content.list_all()
    total = len(corpus)
    if total == 0:
        logger.info("📭 Corpus is empty")
        return Batch(mode=MODE_SEQUENTIAL)

    start = state.cursor_index % total
    size = min(limit, total)
    entries = [BatchEntry(item=corpus[(start + j) % total]) for j in range(size)]
    logger.info(f"🔁 Sequential scan: items {start}..{(start + size - 1) % total} of {total}")
    return Batch(mode=MODE_SEQUENTIAL, entries=entries, start_cursor=start, corpus_size=total)


async def _resolve(store: Store, work_item: Optional[WorkItem], outcome: ItemOutcome) -> None:
    """Resolve the claimed work item. Best effort: a store error is logged only."""
    if work_item is None:
        return
    try:
        if outcome.success:
            await store.queue.complete(work_item.id, outcome.result or {'status': 'completed'})
        else:
            await store.queue.fail(work_item.id, outcome.error or 'failed')
    except Exception as e:
        logger.warning(f"⚠️ Could not resolve work item #{work_item.id}: {e}")


async def _save_state(store: Store, state: BotRunState) -> bool:
    """Persist state. A store error is logged and the run goes on."""
    try:
        await store.states.save(state)
        return True
    except Exception as e:
        logger.error(f"❌ Could not save state for {state.bot_name}: {e}", exc_info=True)
        return False


def _oracle_metrics(behavior: BotBehavior) -> Dict[str, int]:
    stats = getattr(getattr(behavior, 'oracle', None), 'stats', None)
    if stats is None or not hasattr(stats, 'to_dict'):
        return {}
    return {f"oracle_{key}": value for key, value in stats.to_dict().items()}


def _summary_extra(
    run_counters: Dict[str, int],
    state: BotRunState,
    behavior: BotBehavior,
) -> Dict[str, Any]:
    extra: Dict[str, Any] = dict(run_counters)
    for key, value in state.extra.items():
        extra[f"total_{key}"] = value
    extra.update(_oracle_metrics(behavior))
    return extra


async def run_bot(
    behavior: BotBehavior,
    store: Store,
    options: Optional[RunnerOptions] = None,
    output: Optional[RunOutput] = None,
) -> RunSummary:
    """
    Run one batch for a behavior.

    Raises:
        SchemaBootstrapError: shared tables could not be created
    """
    options = options or RunnerOptions()
    output = output or RunOutput()

    await store.ensure_schema()
    setup = getattr(behavior, 'setup', None)
    if setup is not None:
        await setup()

    state = await store.states.load(behavior.name, behavior.default_state())
    run_id = await store.runs.start_run(behavior.name)
    summary = RunSummary(bot_name=behavior.name, run_id=run_id, cursor_index=state.cursor_index)
    run_counters: Dict[str, int] = {
        key: 0 for key, value in state.extra.items() if isinstance(value, int)
    }

    try:
        batch = await discover_batch(behavior, store, state, options)
        summary.mode = batch.mode
        summary.batch_size = len(batch.entries)
        total = len(batch.entries)
        called = False

        for position, entry in enumerate(batch.entries, 1):
            logger.info(f"[{position}/{total}] {entry.item_id}")

            if entry.item is None:
                outcome = ItemOutcome.failure("content item not found")
            else:
                try:
                    check = await behavior.needs_processing(entry.item)
                    if not check.needs:
                        outcome = None
                        summary.skipped += 1
                        logger.info(f"⏭️ Skipped: {check.reason}")
                        await _resolve(store, entry.work_item, ItemOutcome(
                            result={'status': 'skipped', 'reason': check.reason},
                        ))
                    else:
                        if called:
                            await options.sleep(options.rate_limit_seconds)
                        called = True
                        outcome = _as_outcome(await behavior.process_item(entry.item))
                except Exception as e:
                    logger.error(f"❌ {entry.item_id} failed: {e}", exc_info=True)
                    outcome = ItemOutcome.failure(str(e))

            summary.processed += 1
            state.total_processed += 1

            if outcome is not None:
                if outcome.success:
                    summary.created += outcome.created
                    summary.updated += outcome.updated
                    state.total_created += outcome.created
                    state.total_updated += outcome.updated
                    logger.info(f"✅ {entry.item_id} done")
                else:
                    summary.failed += 1
                    state.total_failed += 1
                    logger.warning(f"⚠️ {entry.item_id} failed: {outcome.error}")
                for key, value in outcome.counters.items():
                    state.extra[key] = state.extra.get(key, 0) + value
                    run_counters[key] = run_counters.get(key, 0) + value
                await _resolve(store, entry.work_item, outcome)

            if batch.mode == MODE_SEQUENTIAL:
                state.cursor_index = (batch.start_cursor + position) % batch.corpus_size
            await _save_state(store, state)

        state.last_run_date = datetime.now(timezone.utc)
        await _save_state(store, state)

        summary.cursor_index = state.cursor_index
        summary.extra = _summary_extra(run_counters, state, behavior)
        await store.runs.update_run_stats(
            run_id,
            summary.processed,
            summary.created,
            summary.updated,
            summary.failed,
        )
        await store.runs.complete_run(run_id, summary.to_output())
    except Exception as e:
        await store.runs.fail_run(run_id, str(e))
        raise

    logger.info(
        f"🏁 {behavior.name} finished ({summary.mode}): processed={summary.processed} "
        f"created={summary.created} updated={summary.updated} "
        f"skipped={summary.skipped} failed={summary.failed}"
    )
    output.write(summary.to_output())
    return summary
