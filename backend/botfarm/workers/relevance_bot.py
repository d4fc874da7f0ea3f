"""
Relevance bot - scores content items once and records review status

Consumes 'scoring' work items (falls back to unscored items). Each score
rewrites the quality-metadata group as a whole. Items that land in
needs_improvement with concrete guidance get an 'improvement' work item so
a follow-up bot can act on the guidance instead of regenerating blindly.

Items are scored at most once; ContentRepository.clear_quality_metadata()
is the operator reset.
"""
import json
import logging
from typing import Optional, List, Dict, Any

from ..models.content_item import ContentItem
from ..models.work_item import WorkItemType
from ..repositories.store import Store
from ..services.quality_scoring import QualityScorer
from .bot_runner import ProcessingCheck, ItemOutcome

logger = logging.getLogger(__name__)


class RelevanceBot:
    name = 'relevance-bot'
    item_type = WorkItemType.SCORING.value

    def __init__(self, store: Store, scorer: QualityScorer):
        self.store = store
        self.scorer = scorer
        self.oracle = scorer.oracle

    def default_state(self) -> Dict[str, Any]:
        return {
            'approved': 0,
            'needs_improvement': 0,
            'retire': 0,
            'improvements_enqueued': 0,
        }

    async def needs_processing(self, item: ContentItem) -> ProcessingCheck:
        if item.status != 'active':
            return ProcessingCheck(False, f"status is {item.status}")
        if item.is_scored:
            return ProcessingCheck(False, f"already scored ({item.relevance_score})")
        return ProcessingCheck(True, "unscored")

    async def find_candidates(self, limit: int) -> List[ContentItem]:
        return await self.store.content.find_unscored(limit)

    async def process_item(self, item: ContentItem) -> ItemOutcome:
        assessment = await self.scorer.score(item)
        if assessment is None:
            return ItemOutcome.failure("oracle returned no usable judgment")

        before = item.snapshot('quality')
        metadata = assessment.to_metadata()

        saved = await self.store.content.save_quality_metadata(item.id, metadata, self.name)
        if not saved:
            return ItemOutcome.failure("content item no longer exists")

        await self.store.ledger.log_action(
            bot_name=self.name,
            action='score',
            item_type='content',
            item_id=item.id,
            before_state=before,
            after_state=metadata,
            reason=f"{assessment.score}/100 {assessment.band}",
        )

        counters = {assessment.review_status: 1}
        enqueued: Optional[int] = None

        if assessment.needs_improvement and not assessment.guidance.is_empty:
            result = await self.store.queue.enqueue(
                item_id=item.id,
                item_type=WorkItemType.IMPROVEMENT.value,
                action='improve',
                reason=json.dumps(assessment.guidance.model_dump()),
                created_by=self.name,
            )
            if result.is_new:
                counters['improvements_enqueued'] = 1
                enqueued = result.id
                logger.info(f"📝 Enqueued improvement #{result.id} for {item.id}")

        return ItemOutcome(
            updated=1,
            counters=counters,
            result={
                'score': assessment.score,
                'band': assessment.band,
                'review_status': assessment.review_status,
                'improvement_work_item': enqueued,
            },
        )
