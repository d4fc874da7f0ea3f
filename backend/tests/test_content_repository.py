"""
Tests for ContentRepository field-group ownership and row mapping.
"""

import json

import pytest

from botfarm.models import FIELD_OWNERS, FieldOwnershipError, check_owner
from botfarm.repositories import ContentRepository

from conftest import make_item


@pytest.mark.parametrize("group,owner", sorted(FIELD_OWNERS.items()))
def test_each_group_has_one_owner(group, owner):
    check_owner(group, owner)
    for other in set(FIELD_OWNERS.values()) - {owner}:
        with pytest.raises(FieldOwnershipError):
            check_owner(group, other)


def test_unknown_group():
    with pytest.raises(KeyError):
        check_owner('diagram', 'relevance-bot')


@pytest.mark.asyncio
async def test_non_owner_write_refused_before_query(pool, conn):
    repo = ContentRepository(pool)

    with pytest.raises(FieldOwnershipError):
        await repo.save_tldr('q1', 'A short summary of things.', 'duplicate-bot')
    with pytest.raises(FieldOwnershipError):
        await repo.mark_duplicate('q1', 'q0', 'summary-bot')
    with pytest.raises(FieldOwnershipError):
        await repo.save_quality_metadata('q1', {}, 'gap-scanner')

    conn.execute.assert_not_called()


@pytest.mark.asyncio
async def test_save_quality_metadata_serializes_json(pool, conn):
    repo = ContentRepository(pool)

    saved = await repo.save_quality_metadata('q1', {
        'relevance_score': 91,
        'relevance_details': {'band': 'excellent'},
        'review_status': 'approved',
        'improvement_suggestions': None,
    }, 'relevance-bot')

    assert saved is True
    _, item_id, score, details, status, suggestions = conn.execute.call_args.args
    assert (item_id, score, status, suggestions) == ('q1', 91, 'approved', None)
    assert json.loads(details) == {'band': 'excellent'}


@pytest.mark.asyncio
async def test_mark_duplicate_missing_row(pool, conn):
    conn.execute.return_value = "UPDATE 0"
    repo = ContentRepository(pool)
    assert await repo.mark_duplicate('gone', 'q0', 'duplicate-bot') is False


@pytest.mark.asyncio
async def test_row_mapping_decodes_json_columns(pool, conn):
    conn.fetchrow.return_value = {
        'id': 'q1',
        'question': 'What is a mutex?',
        'answer': None,
        'tags': '["os", "concurrency"]',
        'companies': None,
        'relevance_details': '{"band": "good"}',
        'status': None,
    }
    repo = ContentRepository(pool)

    item = await repo.get('q1')

    assert item.tags == ['os', 'concurrency']
    assert item.companies == []
    assert item.answer == ''
    assert item.relevance_details == {'band': 'good'}
    assert item.status == 'active'
    assert not item.is_scored


def test_snapshot_serializes_timestamps():
    from datetime import datetime, timezone

    item = make_item('q1', reviewed_at=datetime(2024, 1, 1, tzinfo=timezone.utc), relevance_score=50)
    snap = item.snapshot('quality')

    assert snap['relevance_score'] == 50
    assert snap['reviewed_at'] == '2024-01-01T00:00:00+00:00'
