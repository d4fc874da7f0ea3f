"""
Duplicate bot - flags near-duplicate content items

The active items of a channel are grouped once per run with
find_duplicate_groups, through the vector index when one is configured and
lexically otherwise. Every channel peer is indexed before the index is
searched, so early items are not compared against an empty index. When an
item is not the survivor of its group it is flagged status='duplicate',
duplicate_of=<keeper>. Nothing is deleted.
"""
import logging
from typing import Optional, List, Dict, Any, Set

from ..models.content_item import ContentItem
from ..models.work_item import WorkItemType
from ..repositories.store import Store
from ..services.similarity import find_duplicate_groups, pick_survivor, REDUNDANCY_THRESHOLD
from ..services.vector_index import SimilarityIndex
from .bot_runner import ProcessingCheck, ItemOutcome

logger = logging.getLogger(__name__)


class DuplicateBot:
    name = 'duplicate-bot'
    item_type = WorkItemType.DEDUP.value

    def __init__(
        self,
        store: Store,
        index: Optional[SimilarityIndex] = None,
        threshold: float = REDUNDANCY_THRESHOLD,
    ):
        self.store = store
        self.index = index
        self.threshold = threshold
        self._indexed: Set[str] = set()
        self._channel_groups: Dict[str, List[List[ContentItem]]] = {}
        self._channel_members: Dict[str, Set[str]] = {}

    def default_state(self) -> Dict[str, Any]:
        return {'duplicates_flagged': 0}

    async def setup(self) -> None:
        """Create the embedding table when a vector index is configured."""
        if self.index is None:
            return
        try:
            await self.index.ensure_table()
            logger.info("🧭 Vector index table ready")
        except Exception as e:
            logger.warning(f"⚠️ Vector index bootstrap failed, using lexical comparison: {e}")
            self.index = None

    async def needs_processing(self, item: ContentItem) -> ProcessingCheck:
        if item.status != 'active':
            return ProcessingCheck(False, f"status is {item.status}")
        return ProcessingCheck(True, "active")

    async def _index_peers(self, peers: List[ContentItem]) -> Optional[SimilarityIndex]:
        """Index peers not yet indexed this run. None when the index is unusable."""
        if self.index is None:
            return None
        try:
            for peer in peers:
                if peer.id not in self._indexed:
                    await self.index.index(peer)
                    self._indexed.add(peer.id)
        except Exception as e:
            logger.warning(f"⚠️ Vector index unavailable, using lexical comparison: {e}")
            return None
        return self.index

    async def _groups_for(self, item: ContentItem) -> List[List[ContentItem]]:
        channel = item.channel
        if item.id in self._channel_members.get(channel, ()):
            return self._channel_groups[channel]

        peers = await self.store.content.list_by_channel(channel)
        if not any(peer.id == item.id for peer in peers):
            peers = [item] + peers

        index = await self._index_peers(peers)
        groups = await find_duplicate_groups(peers, self.threshold, index=index)
        logger.info(f"🔎 Channel {channel or '-'}: {len(groups)} duplicate groups in {len(peers)} items")

        self._channel_groups[channel] = groups
        self._channel_members[channel] = {peer.id for peer in peers}
        return groups

    async def process_item(self, item: ContentItem) -> ItemOutcome:
        groups = await self._groups_for(item)
        group = next((g for g in groups if any(member.id == item.id for member in g)), None)
        if group is None:
            return ItemOutcome(result={'status': 'unique'})

        keeper, removals = pick_survivor(group)
        if keeper.id == item.id:
            logger.info(f"✓ {item.id} is the keeper of {len(group)} similar items")
            return ItemOutcome(result={
                'status': 'keeper',
                'duplicates': [other.id for other in removals],
            })

        before = item.snapshot('curation')
        await self.store.content.mark_duplicate(item.id, keeper.id, self.name)
        await self.store.ledger.log_action(
            bot_name=self.name,
            action='flag_duplicate',
            item_type='content',
            item_id=item.id,
            before_state=before,
            after_state={'status': 'duplicate', 'duplicate_of': keeper.id},
            reason=f"near-duplicate of {keeper.id}",
        )
        logger.info(f"🔁 {item.id} flagged as duplicate of {keeper.id}")

        return ItemOutcome(
            updated=1,
            counters={'duplicates_flagged': 1},
            result={'status': 'duplicate', 'duplicate_of': keeper.id},
        )
