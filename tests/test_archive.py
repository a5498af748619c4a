"""Tests for cycle archival."""

import sqlite3
from datetime import date

import pytest

from newsdesk.core.archive import ArchiveService
from newsdesk.core.errors import ArchiveError
from newsdesk.models.content import Article


@pytest.fixture
def populated(store, cycle, add_item, add_rating):
    """Three items, three ratings and two ranked articles with editor positions."""
    items = [add_item(n) for n in range(1, 4)]
    for item, total in zip(items, (20, 18, 12)):
        add_rating(item, total)
    articles = [
        store.insert_article(
            Article(item_id=item.id, cycle_id=cycle.id, headline=f"H{n}", body="B")
        )
        for n, item in enumerate(items[:2], 1)
    ]
    store.apply_selection(cycle.id, {articles[0].id: 1, articles[1].id: 2})
    store.set_article_positions(articles[0].id, review_position=3, final_position=1)
    return items, articles


def drop_table(store, table):
    with sqlite3.connect(store.db_path) as conn:
        conn.execute(f"DROP TABLE {table}")


def test_archive_round_trip_counts(store, cycle, populated):
    result = ArchiveService(store).archive_cycle(cycle.id)

    assert (result.articles, result.items, result.ratings) == (2, 3, 3)
    assert not result.ratings_skipped
    assert store.count_archived(cycle.id) == {"articles": 2, "items": 3, "ratings": 3}

    # Archiving copies; it does not clear.
    assert store.count_items(cycle.id) == 3
    assert store.count_articles(cycle.id) == 2


def test_archive_preserves_rank_and_positions(store, cycle, populated):
    _, articles = populated
    service = ArchiveService(store)
    service.archive_cycle(cycle.id, reason="manual")

    archived = {a.original_article_id: a for a in service.get_archived_articles(cycle.id)}
    top = archived[articles[0].id]
    assert top.rank == 1
    assert top.active is True
    assert top.review_position == 3
    assert top.final_position == 1
    assert top.archive_reason == "manual"
    assert top.cycle_date == cycle.date
    assert top.cycle_status == "processing"
    assert archived[articles[1].id].rank == 2


def test_missing_rating_archive_table_skips_ratings(store, cycle, populated):
    drop_table(store, "archived_ratings")

    result = ArchiveService(store).archive_cycle(cycle.id)

    assert result.ratings_skipped
    assert result.ratings == 0
    assert (result.articles, result.items) == (2, 3)


def test_missing_item_archive_table_fails(store, cycle, populated):
    drop_table(store, "archived_ratings")
    drop_table(store, "archived_source_items")

    with pytest.raises(ArchiveError):
        ArchiveService(store).archive_cycle(cycle.id)


def test_failed_item_archive_rolls_back_articles(store, cycle, populated):
    drop_table(store, "archived_source_items")

    with pytest.raises(ArchiveError):
        ArchiveService(store).archive_cycle(cycle.id)
    assert store.count_archived(cycle.id) == {"articles": 0, "items": 0, "ratings": 0}

    store.init_schema()
    result = ArchiveService(store).archive_cycle(cycle.id)

    assert (result.articles, result.items, result.ratings) == (2, 3, 3)
    assert store.count_archived(cycle.id) == {
        "articles": store.count_articles(cycle.id),
        "items": store.count_items(cycle.id),
        "ratings": len(store.get_ratings(cycle.id)),
    }


def test_unknown_cycle_fails(store):
    with pytest.raises(ArchiveError):
        ArchiveService(store).archive_cycle(999)


def test_archive_then_clear_leaves_no_live_rows(store, cycle, populated):
    ArchiveService(store).archive_cycle(cycle.id)
    store.clear_cycle(cycle.id)

    assert store.count_items(cycle.id) == 0
    assert store.count_articles(cycle.id) == 0
    assert store.get_ratings(cycle.id) == {}
    assert store.count_archived(cycle.id)["items"] == 3


def test_repeated_archives_accumulate(store, cycle, populated):
    service = ArchiveService(store)
    service.archive_cycle(cycle.id, reason="cycle_reprocess")
    service.archive_cycle(cycle.id, reason="manual")

    stats = service.get_archive_stats()
    assert stats["total_articles"] == 4
    assert stats["total_items"] == 6
    assert stats["cycles"] == 1
    assert stats["by_reason"] == {"cycle_reprocess": 2, "manual": 2}


def test_archived_articles_by_date_range(store, cycle, populated):
    service = ArchiveService(store)
    service.archive_cycle(cycle.id)

    assert len(service.get_archived_articles_by_date_range(date(2026, 10, 1), date(2026, 10, 31))) == 2
    # Reversed bounds are swapped.
    assert len(service.get_archived_articles_by_date_range(date(2026, 10, 31), date(2026, 10, 1))) == 2
    assert service.get_archived_articles_by_date_range(date(2025, 1, 1), date(2025, 12, 31)) == []
