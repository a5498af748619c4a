"""Tests for data models."""

import itertools
from datetime import date

import pytest
from pydantic import ValidationError

from newsdesk.models.content import (
    Criterion,
    CriterionScore,
    Cycle,
    CycleConfig,
    CycleStatus,
    Rating,
    SourceItem,
)
from newsdesk.models.outcome import Outcome, OutcomeStatus, StageReport


def test_rating_total_is_unnormalized_weighted_sum():
    scores = [
        CriterionScore(number=1, score=8, weight=1.0),
        CriterionScore(number=2, score=6, weight=2.5),
        CriterionScore(number=3, score=3, weight=0.5),
    ]
    rating = Rating.from_scores(1, scores)
    assert rating.total_score == pytest.approx(8 + 15 + 1.5)


def test_rating_total_is_order_independent():
    scores = [
        CriterionScore(number=1, score=7.3, weight=0.1),
        CriterionScore(number=2, score=9.9, weight=3.7),
        CriterionScore(number=3, score=0.7, weight=1.3),
        CriterionScore(number=4, score=5.5, weight=2.2),
    ]
    totals = {
        Rating.weighted_total(list(order)) for order in itertools.permutations(scores)
    }
    assert len(totals) == 1


def test_criterion_score_range_enforced():
    with pytest.raises(ValidationError):
        CriterionScore(number=1, score=11)
    with pytest.raises(ValidationError):
        CriterionScore(number=6, score=5)


def test_cycle_config_orders_and_filters_criteria():
    config = CycleConfig(
        criteria=[
            Criterion(number=3, name="c"),
            Criterion(number=1, name="a"),
            Criterion(number=2, name="b", enabled=False),
        ]
    )
    assert [c.number for c in config.criteria] == [1, 2, 3]
    assert [c.number for c in config.enabled_criteria] == [1, 3]


def test_cycle_config_rejects_duplicate_slots():
    with pytest.raises(ValidationError):
        CycleConfig(criteria=[Criterion(number=1, name="a"), Criterion(number=1, name="b")])


def test_image_block_is_case_insensitive():
    config = CycleConfig(image_block_authors=["Jane Doe"])
    assert config.is_image_blocked(" jane doe ")
    assert not config.is_image_blocked("John Roe")
    assert not config.is_image_blocked(None)


def test_source_item_body_prefers_full_text():
    item = SourceItem(
        feed_id=1, cycle_id=1, external_id="x", title="t", description="d", content="c"
    )
    assert item.body == "c"
    assert item.model_copy(update={"full_text": "f"}).body == "f"
    assert item.model_copy(update={"content": ""}).body == "d"


def test_stage_report_counts():
    report = StageReport(stage="scoring")
    report.add(Outcome.success("item 1"))
    report.add(Outcome.skipped("item 2", "no rating"))
    report.add(Outcome.failed("item 3", ValueError("bad score")))

    assert (report.succeeded, report.skipped, report.failed) == (1, 1, 1)
    assert report.failures[0].reason == "bad score"
    assert report.failures[0].status == OutcomeStatus.FAILED
    assert report.summary() == "scoring: 1 ok, 1 skipped, 1 failed"


def test_cycle_parses_date_field():
    cycle = Cycle(id=1, date="2026-10-17")
    assert cycle.date == date(2026, 10, 17)
    assert cycle.status == CycleStatus.PROCESSING
    assert cycle.subject_line is None
