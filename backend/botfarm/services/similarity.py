"""
Similarity / duplicate detection engine

Lexical similarity is the Jaccard index over the sets of unique tokens of the
normalized texts:

    normalize("What is a B-Tree?")  -> "what is a btree"
    similarity(a, b) = |tokens(a) & tokens(b)| / |tokens(a) | tokens(b)|

Thresholds used across the bots:
    TOPIC_SCOPE_THRESHOLD          0.2   loosely on-topic
    REDUNDANCY_THRESHOLD           0.6   near-duplicate within a corpus
    INGESTION_DUPLICATE_THRESHOLD  0.85  reject at ingestion / restated text

When a vector index is supplied, duplicate grouping asks it for neighbours
instead of comparing every pair, and falls back to lexical comparison if the
index is unavailable.
"""
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence, Tuple, Iterable, Dict

from ..models.content_item import ContentItem
from .vector_index import SimilarityIndex

logger = logging.getLogger(__name__)

TOPIC_SCOPE_THRESHOLD = 0.2
REDUNDANCY_THRESHOLD = 0.6
INGESTION_DUPLICATE_THRESHOLD = 0.85

_NON_ALNUM_RE = re.compile(r'[^a-z0-9\s]')
_WHITESPACE_RE = re.compile(r'\s+')


@dataclass
class SimilarityResult:
    id_a: str
    id_b: str
    score: float
    is_duplicate: bool


def normalize(text: Optional[str]) -> str:
    """Lowercase, drop everything but [a-z0-9] and whitespace, collapse runs."""
    if not text:
        return ""
    lowered = _NON_ALNUM_RE.sub('', text.lower())
    return _WHITESPACE_RE.sub(' ', lowered).strip()


def _tokens(text: Optional[str]) -> set:
    normalized = normalize(text)
    return set(normalized.split(' ')) if normalized else set()


def similarity(a: Optional[str], b: Optional[str]) -> float:
    """
    Jaccard similarity of the normalized token sets, in [0, 1].

    Identical normalized texts score 1.0, including two empty texts.
    One empty text against a non-empty one scores 0.0.
    """
    tokens_a = _tokens(a)
    tokens_b = _tokens(b)
    if not tokens_a and not tokens_b:
        return 1.0
    union = tokens_a | tokens_b
    return len(tokens_a & tokens_b) / len(union)


def compare(
    id_a: str,
    text_a: str,
    id_b: str,
    text_b: str,
    threshold: float = REDUNDANCY_THRESHOLD,
) -> SimilarityResult:
    score = similarity(text_a, text_b)
    return SimilarityResult(id_a=id_a, id_b=id_b, score=score, is_duplicate=score >= threshold)


def is_duplicate(text: str, existing_texts: Iterable[str], threshold: float = REDUNDANCY_THRESHOLD) -> bool:
    """Whether text is at least `threshold` similar to any existing text."""
    return any(similarity(text, other) >= threshold for other in existing_texts)


class _UnionFind:

    def __init__(self, size: int):
        self.parent = list(range(size))

    def find(self, i: int) -> int:
        while self.parent[i] != i:
            self.parent[i] = self.parent[self.parent[i]]
            i = self.parent[i]
        return i

    def union(self, i: int, j: int) -> None:
        root_i, root_j = self.find(i), self.find(j)
        if root_i != root_j:
            # Lower position stays root so groups keep corpus order
            if root_i < root_j:
                self.parent[root_j] = root_i
            else:
                self.parent[root_i] = root_j


def _collect_groups(corpus: Sequence[ContentItem], uf: _UnionFind) -> List[List[ContentItem]]:
    members: Dict[int, List[int]] = {}
    for position in range(len(corpus)):
        members.setdefault(uf.find(position), []).append(position)

    groups = [positions for positions in members.values() if len(positions) > 1]
    groups.sort(key=lambda positions: positions[0])
    return [[corpus[p] for p in positions] for positions in groups]


def find_duplicates(
    corpus: Sequence[ContentItem],
    threshold: float = REDUNDANCY_THRESHOLD,
) -> List[List[ContentItem]]:
    """
    Group items whose pairwise similarity meets the threshold.

    Groups are connected components: if A~B and B~C, A, B and C share a
    group even when A and C are below threshold. Members keep corpus order.
    Compares every pair, O(n^2).
    """
    tokens = [_tokens(item.text()) for item in corpus]
    uf = _UnionFind(len(corpus))

    for i in range(len(corpus)):
        for j in range(i + 1, len(corpus)):
            a, b = tokens[i], tokens[j]
            if not a and not b:
                score = 1.0
            else:
                score = len(a & b) / len(a | b)
            if score >= threshold:
                uf.union(i, j)

    return _collect_groups(corpus, uf)


async def find_duplicate_groups(
    corpus: Sequence[ContentItem],
    threshold: float = REDUNDANCY_THRESHOLD,
    index: Optional[SimilarityIndex] = None,
    neighbours: int = 10,
) -> List[List[ContentItem]]:
    """
    Duplicate groups using the vector index when one is available.

    Each item's nearest neighbours at or above threshold are unioned, with
    the same grouping semantics as find_duplicates. Any index failure falls
    back to the lexical comparison.
    """
    if index is None:
        return find_duplicates(corpus, threshold)

    positions = {item.id: i for i, item in enumerate(corpus)}
    uf = _UnionFind(len(corpus))

    try:
        for i, item in enumerate(corpus):
            matches = await index.search(item.text(), limit=neighbours, threshold=threshold)
            for match in matches:
                j = positions.get(match.id)
                if j is not None and j != i:
                    uf.union(i, j)
    except Exception as e:
        logger.warning(f"⚠️ Vector index unavailable, falling back to lexical: {e}")
        return find_duplicates(corpus, threshold)

    return _collect_groups(corpus, uf)


def _age_key(position: int, item: ContentItem):
    # Missing timestamps sort as oldest
    if item.last_updated is None:
        return (0, 0.0, position)
    stamp = item.last_updated
    if isinstance(stamp, datetime):
        return (1, stamp.timestamp(), position)
    return (1, float(stamp), position)


def pick_survivor(group: Sequence[ContentItem]) -> Tuple[ContentItem, List[ContentItem]]:
    """
    Choose which member of a duplicate group to keep.

    The oldest item (smallest last_updated) is kept; missing timestamps count
    as oldest; ties keep the earlier position in the group.

    Returns:
        (keeper, removal_candidates) with candidates in group order
    """
    if not group:
        raise ValueError("Cannot pick a survivor from an empty group")

    keeper_position = min(range(len(group)), key=lambda p: _age_key(p, group[p]))
    keeper = group[keeper_position]
    removals = [item for p, item in enumerate(group) if p != keeper_position]
    return keeper, removals
