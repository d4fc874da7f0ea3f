"""
Summary bot - one-line TL;DR for each content item

Consumes 'summary' work items (falls back to items whose TL;DR is missing or
shorter than TLDR_MIN_LENGTH). Generated text longer than TLDR_MAX_LENGTH is
cut; text that merely restates the question is rejected.
"""
import logging
from typing import List, Dict, Any

from pydantic import BaseModel

from ..models.content_item import ContentItem
from ..models.work_item import WorkItemType
from ..repositories.store import Store
from ..services.oracle_client import OracleClient, OracleTask, OracleValidationError
from ..services.similarity import is_duplicate, INGESTION_DUPLICATE_THRESHOLD
from .bot_runner import ProcessingCheck, ItemOutcome

logger = logging.getLogger(__name__)

TLDR_MIN_LENGTH = 20
TLDR_MAX_LENGTH = 150


class SummaryPayload(BaseModel):
    tldr: str


def _check_length(data: Dict[str, Any]) -> None:
    if len(data['tldr'].strip()) < TLDR_MIN_LENGTH:
        raise OracleValidationError(f"TL;DR shorter than {TLDR_MIN_LENGTH} characters")


SUMMARY_TASK = OracleTask(
    name='tldr',
    instructions=(
        "Write a one-line TL;DR (under 150 characters) that captures the key "
        "point of the answer to this interview question. Do not repeat the "
        "question. Return JSON: {\"tldr\": \"...\"}"
    ),
    response_model=SummaryPayload,
    check=_check_length,
)


def clamp_tldr(text: str) -> str:
    text = ' '.join(text.split())
    if len(text) > TLDR_MAX_LENGTH:
        text = text[:TLDR_MAX_LENGTH - 3] + '...'
    return text


class SummaryBot:
    name = 'summary-bot'
    item_type = WorkItemType.SUMMARY.value

    def __init__(self, store: Store, oracle: OracleClient):
        self.store = store
        self.oracle = oracle

    def default_state(self) -> Dict[str, Any]:
        return {'tldr_added': 0, 'tldr_rejected': 0}

    async def needs_processing(self, item: ContentItem) -> ProcessingCheck:
        if item.status != 'active':
            return ProcessingCheck(False, f"status is {item.status}")
        if not item.tldr or len(item.tldr.strip()) < TLDR_MIN_LENGTH:
            return ProcessingCheck(True, "missing")
        return ProcessingCheck(False, "already has TL;DR")

    async def find_candidates(self, limit: int) -> List[ContentItem]:
        return await self.store.content.find_missing_tldr(limit, TLDR_MIN_LENGTH)

    async def process_item(self, item: ContentItem) -> ItemOutcome:
        data = await self.oracle.invoke(SUMMARY_TASK, {
            'question': item.question,
            'answer': (item.answer or '')[:1500],
        })
        if data is None:
            return ItemOutcome.failure("oracle returned no TL;DR")

        tldr = clamp_tldr(data['tldr'])

        if is_duplicate(tldr, [item.question], INGESTION_DUPLICATE_THRESHOLD):
            logger.warning(f"⚠️ TL;DR for {item.id} restates the question, rejected")
            return ItemOutcome(
                success=False,
                error="TL;DR restates the question",
                counters={'tldr_rejected': 1},
            )

        before = item.snapshot('summary')
        await self.store.content.save_tldr(item.id, tldr, self.name)
        await self.store.ledger.log_action(
            bot_name=self.name,
            action='tldr',
            item_type='content',
            item_id=item.id,
            before_state=before,
            after_state={'tldr': tldr},
        )
        logger.info(f"✅ TL;DR ({len(tldr)} chars): {tldr}")

        return ItemOutcome(
            updated=1,
            counters={'tldr_added': 1},
            result={'tldr': tldr},
        )
