"""
Gap scanner - producer bot

Walks the corpus sequentially (resumable cursor) and enqueues work for every
missing field group: scoring, summary and diagram. Enqueue is idempotent, so
rescanning an item whose work is still unresolved adds nothing.
"""
import logging
from typing import List, Tuple, Dict, Any

from ..models.content_item import ContentItem
from ..models.work_item import WorkItemType
from ..repositories.store import Store
from .bot_runner import ProcessingCheck, ItemOutcome
from .summary_bot import TLDR_MIN_LENGTH

logger = logging.getLogger(__name__)


def find_gaps(item: ContentItem) -> List[Tuple[str, str, str]]:
    """(item_type, action, reason) for each missing field group."""
    gaps = []
    if not item.is_scored:
        gaps.append((WorkItemType.SCORING.value, 'score', 'no relevance score'))
    if not item.tldr or len(item.tldr.strip()) < TLDR_MIN_LENGTH:
        gaps.append((WorkItemType.SUMMARY.value, 'generate', 'missing TL;DR'))
    if not item.diagram:
        gaps.append((WorkItemType.DIAGRAM.value, 'generate', 'missing diagram'))
    return gaps


class GapScanner:
    name = 'gap-scanner'
    item_type = None

    def __init__(self, store: Store):
        self.store = store

    def default_state(self) -> Dict[str, Any]:
        return {'work_enqueued': 0}

    async def needs_processing(self, item: ContentItem) -> ProcessingCheck:
        if item.status != 'active':
            return ProcessingCheck(False, f"status is {item.status}")
        if not find_gaps(item):
            return ProcessingCheck(False, "complete")
        return ProcessingCheck(True, "has gaps")

    async def process_item(self, item: ContentItem) -> ItemOutcome:
        enqueued = []
        for item_type, action, reason in find_gaps(item):
            result = await self.store.queue.enqueue(
                item_id=item.id,
                item_type=item_type,
                action=action,
                reason=reason,
                created_by=self.name,
            )
            if result.is_new:
                enqueued.append(item_type)

        if enqueued:
            logger.info(f"➕ {item.id}: enqueued {', '.join(enqueued)}")

        return ItemOutcome(
            created=len(enqueued),
            counters={'work_enqueued': len(enqueued)},
            result={'enqueued': enqueued},
        )
