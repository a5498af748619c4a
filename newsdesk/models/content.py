"""Content models for the curation pipeline."""

import datetime as dt
import math
from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class CycleStatus(str, Enum):
    """Lifecycle of one dated pipeline run."""

    PROCESSING = "processing"
    DRAFT = "draft"
    SENT = "sent"


class Cycle(BaseModel):
    """One ingestion run, identified by its date."""

    id: int = Field(..., description="Cycle identifier")
    date: dt.date = Field(..., description="Logical date of the run")
    status: CycleStatus = Field(CycleStatus.PROCESSING, description="Run status")
    subject_line: Optional[str] = Field(None, description="Generated subject line")
    created_at: Optional[datetime] = Field(None, description="Creation time")
    updated_at: Optional[datetime] = Field(None, description="Last update time")


class Feed(BaseModel):
    """A configured content feed."""

    id: int = Field(..., description="Feed identifier")
    name: str = Field(..., description="Display name")
    url: str = Field(..., description="Feed URL")
    active: bool = Field(True, description="Whether the feed is ingested")
    last_processed: Optional[datetime] = Field(None, description="Last good pass")
    processing_errors: int = Field(0, ge=0, description="Consecutive failures")
    last_error: Optional[str] = Field(None, description="Most recent failure")


class SourceItem(BaseModel):
    """One normalized feed entry for a cycle."""

    id: Optional[int] = Field(None, description="Row identifier once stored")
    feed_id: int = Field(..., description="Owning feed")
    cycle_id: int = Field(..., description="Cycle the item was ingested for")
    external_id: str = Field(..., description="Feed-scoped dedup key")
    title: str = Field(..., description="Entry title")
    description: str = Field("", description="Entry summary")
    content: str = Field("", description="Entry body as published in the feed")
    full_text: Optional[str] = Field(None, description="Extracted page text")
    author: Optional[str] = Field(None, description="Entry author")
    published_at: Optional[datetime] = Field(None, description="Publish time")
    source_url: Optional[str] = Field(None, description="Link to the original")
    image_url: Optional[str] = Field(None, description="Best-effort image")
    processed_at: Optional[datetime] = Field(None, description="Ingestion time")

    @property
    def body(self) -> str:
        """Richest text available for prompts."""
        return self.full_text or self.content or self.description


class Criterion(BaseModel):
    """One scoring rubric entry."""

    number: int = Field(..., ge=1, le=5, description="Criterion slot 1-5")
    name: str = Field(..., description="Display name")
    weight: float = Field(1.0, description="Multiplier applied to the score")
    prompt: Optional[str] = Field(None, description="Custom prompt template")
    enabled: bool = Field(True, description="Whether the criterion is scored")


class CriterionScore(BaseModel):
    """Score for a single criterion."""

    number: int = Field(..., ge=1, le=5)
    name: str = ""
    score: float = Field(..., ge=0.0, le=10.0)
    reason: str = ""
    weight: float = 1.0


class Rating(BaseModel):
    """Weighted multi-criteria result for a SourceItem."""

    id: Optional[int] = None
    item_id: int
    scores: List[CriterionScore] = Field(default_factory=list)
    total_score: float = 0.0
    created_at: Optional[datetime] = None

    @staticmethod
    def weighted_total(scores: List[CriterionScore]) -> float:
        """Unnormalized weighted sum; fsum keeps it independent of order."""
        return math.fsum(s.score * s.weight for s in scores)

    @classmethod
    def from_scores(cls, item_id: int, scores: List[CriterionScore]) -> "Rating":
        return cls(
            item_id=item_id, scores=scores, total_score=cls.weighted_total(scores)
        )


class Article(BaseModel):
    """Generated, fact-checked candidate copy for a SourceItem."""

    id: Optional[int] = None
    item_id: int
    cycle_id: int
    headline: str
    body: str
    word_count: int = 0
    fact_check_score: float = 0.0
    fact_check_passed: bool = False
    fact_check_details: Optional[str] = None
    rank: Optional[int] = None
    active: bool = False
    review_position: Optional[int] = None
    final_position: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class DuplicateGroup(BaseModel):
    """Items judged to cover the same story as a primary item."""

    id: Optional[int] = None
    cycle_id: int
    primary_item_id: int
    topic_signature: str = ""
    explanation: str = ""
    member_item_ids: List[int] = Field(default_factory=list)


class CycleConfig(BaseModel):
    """Per-cycle configuration, loaded once and passed through the stages."""

    criteria: List[Criterion] = Field(default_factory=list)
    fact_check_threshold: float = 15.0
    max_active_articles: int = Field(3, ge=1)
    image_block_authors: List[str] = Field(default_factory=list)
    blocked_domains: List[str] = Field(default_factory=list)

    @field_validator("criteria")
    @classmethod
    def _unique_slots(cls, criteria: List[Criterion]) -> List[Criterion]:
        numbers = [c.number for c in criteria]
        if len(numbers) != len(set(numbers)):
            raise ValueError("criterion numbers must be unique")
        return sorted(criteria, key=lambda c: c.number)

    @property
    def enabled_criteria(self) -> List[Criterion]:
        return [c for c in self.criteria if c.enabled]

    def is_image_blocked(self, author: Optional[str]) -> bool:
        if not author:
            return False
        blocked = {a.strip().lower() for a in self.image_block_authors}
        return author.strip().lower() in blocked


class ArchiveResult(BaseModel):
    """Counts produced by archiving one cycle."""

    cycle_id: int
    articles: int = 0
    items: int = 0
    ratings: int = 0
    ratings_skipped: bool = False


class ArchivedArticle(BaseModel):
    """Archived copy of an Article with its cycle context."""

    id: int
    original_article_id: int
    item_id: int
    cycle_id: int
    headline: str
    body: str
    word_count: int = 0
    fact_check_score: Optional[float] = None
    fact_check_details: Optional[str] = None
    rank: Optional[int] = None
    active: bool = False
    review_position: Optional[int] = None
    final_position: Optional[int] = None
    archive_reason: str
    cycle_date: Optional[date] = None
    cycle_status: Optional[str] = None
    original_created_at: Optional[datetime] = None
    original_updated_at: Optional[datetime] = None
    archived_at: datetime
