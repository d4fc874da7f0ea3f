"""
Content item domain model - the entity being curated

Storage: PostgreSQL (content_items table)

Mutable field groups each have exactly one owning bot. Repositories refuse
writes to a field group from any other bot, so no two bots write the same
column and no row-level locking is needed.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List, Dict, Any


# Field group -> columns
FIELD_GROUPS: Dict[str, tuple] = {
    'quality': (
        'relevance_score',
        'relevance_details',
        'review_status',
        'improvement_suggestions',
        'reviewed_at',
    ),
    'summary': ('tldr',),
    'curation': ('status', 'duplicate_of'),
}

# Field group -> owning bot
FIELD_OWNERS: Dict[str, str] = {
    'quality': 'relevance-bot',
    'summary': 'summary-bot',
    'curation': 'duplicate-bot',
}


class FieldOwnershipError(PermissionError):
    """A bot tried to write a field group it does not own."""

    def __init__(self, group: str, bot_name: str):
        owner = FIELD_OWNERS.get(group)
        super().__init__(
            f"Field group '{group}' is owned by {owner!r}, not {bot_name!r}"
        )
        self.group = group
        self.bot_name = bot_name


def check_owner(group: str, bot_name: str) -> None:
    """Raise FieldOwnershipError unless bot_name owns the field group."""
    if group not in FIELD_OWNERS:
        raise KeyError(f"Unknown field group: {group}")
    if FIELD_OWNERS[group] != bot_name:
        raise FieldOwnershipError(group, bot_name)


@dataclass
class ContentItem:
    """
    A curated interview question and its enrichment.

    Quality metadata (relevance_score .. reviewed_at) is always rewritten as
    a whole from the latest assessment, never patched field by field.
    """
    id: str
    question: str
    answer: str = ""
    explanation: str = ""
    channel: str = ""
    sub_channel: str = ""
    difficulty: str = ""
    tags: List[str] = field(default_factory=list)
    companies: List[str] = field(default_factory=list)

    # Enrichment
    tldr: Optional[str] = None
    diagram: Optional[str] = None

    # Quality metadata (relevance-bot)
    relevance_score: Optional[int] = None
    relevance_details: Optional[Dict[str, Any]] = None
    review_status: Optional[str] = None
    improvement_suggestions: Optional[Dict[str, Any]] = None
    reviewed_at: Optional[datetime] = None

    # Curation (duplicate-bot)
    status: str = "active"
    duplicate_of: Optional[str] = None

    last_updated: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @property
    def is_scored(self) -> bool:
        return self.relevance_score is not None

    def text(self) -> str:
        """Text used for similarity comparisons."""
        return self.question or ""

    def snapshot(self, group: str) -> Dict[str, Any]:
        """Current values of one field group (for ledger before/after)."""
        values = {}
        for column in FIELD_GROUPS[group]:
            value = getattr(self, column)
            if isinstance(value, datetime):
                value = value.isoformat()
            values[column] = value
        return values
