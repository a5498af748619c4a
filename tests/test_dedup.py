"""Tests for duplicate detection."""

import pytest
from conftest import FakeAI, json_reply

from newsdesk.core.completion import DuplicateGroupsResult
from newsdesk.core.dedup import DuplicateDetector
from newsdesk.core.errors import AITimeoutError


def groups_reply(*groups):
    return json_reply(
        groups=[
            {
                "topic_signature": f"topic {primary}",
                "primary_article_index": primary,
                "duplicate_indices": list(dupes),
                "similarity_explanation": "same event",
            }
            for primary, dupes in groups
        ],
        unique_articles=[],
    )


@pytest.fixture
def items(add_item):
    return [add_item(n) for n in range(1, 6)]


@pytest.mark.asyncio
async def test_detect_maps_indices_to_items(store, cycle, items):
    ai = FakeAI(lambda prompt: groups_reply((1, [3]), (0, [4])))

    result = await DuplicateDetector(ai, store).detect(cycle.id, items)

    assert [(g.primary_item_id, g.member_item_ids) for g in result.groups] == [
        (items[1].id, [items[3].id]),
        (items[0].id, [items[4].id]),
    ]
    assert result.excluded_ids == {items[3].id, items[4].id}
    assert result.report.succeeded == 1
    assert "[0] Story 1" in ai.prompts[0]

    stored = store.get_duplicate_groups(cycle.id)
    assert [g.member_item_ids for g in stored] == [[items[3].id], [items[4].id]]


@pytest.mark.asyncio
async def test_existing_groups_are_reused(store, cycle, items):
    ai = FakeAI(lambda prompt: groups_reply((1, [3])))
    detector = DuplicateDetector(ai, store)

    await detector.detect(cycle.id, items)
    again = await detector.detect(cycle.id, items)

    assert len(ai.prompts) == 1
    assert again.excluded_ids == {items[3].id}
    assert again.report.skipped == 1


@pytest.mark.asyncio
async def test_failure_leaves_every_item_unique(store, cycle, items):
    ai = FakeAI(lambda prompt: AITimeoutError("slow"))

    result = await DuplicateDetector(ai, store).detect(cycle.id, items)

    assert result.groups == []
    assert result.excluded_ids == set()
    assert result.report.skipped == 1
    assert store.get_duplicate_groups(cycle.id) == []


@pytest.mark.asyncio
async def test_malformed_reply_is_skipped(store, cycle, items):
    ai = FakeAI(lambda prompt: "These all look different to me.")

    result = await DuplicateDetector(ai, store).detect(cycle.id, items)

    assert result.excluded_ids == set()
    assert result.report.skipped == 1


@pytest.mark.asyncio
async def test_single_item_needs_no_call(store, cycle, items):
    ai = FakeAI(lambda prompt: groups_reply())

    result = await DuplicateDetector(ai, store).detect(cycle.id, items[:1])

    assert ai.prompts == []
    assert result.report.skipped == 1


def test_resolve_groups_ignores_bad_indices(items):
    payload = DuplicateGroupsResult.model_validate(
        {
            "groups": [
                {"primary_article_index": 9, "duplicate_indices": [1]},
                {"primary_article_index": 0, "duplicate_indices": [0, 2, 2, 42, -1]},
                {"primary_article_index": 2, "duplicate_indices": [3]},
                {"primary_article_index": 1, "duplicate_indices": [0, 2]},
                {"primary_index": 3, "duplicate_indices": [4]},
            ]
        }
    )

    groups = DuplicateDetector.resolve_groups(1, items, payload)

    # Index 2 is already a member of item 0, so it cannot anchor a group, and
    # members of earlier groups are never reassigned.
    assert [(g.primary_item_id, g.member_item_ids) for g in groups] == [
        (items[0].id, [items[2].id]),
        (items[3].id, [items[4].id]),
    ]
