"""Per-unit results aggregated into stage and cycle reports."""

from datetime import date
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from newsdesk.models.content import ArchiveResult, CycleStatus


class OutcomeStatus(str, Enum):
    """Status of one unit of work (a feed, an item, a criterion)."""

    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


class Outcome(BaseModel):
    """Result of one unit of work."""

    unit: str = Field(..., description="What was processed, e.g. 'item 12'")
    status: OutcomeStatus = Field(..., description="Result status")
    reason: Optional[str] = Field(None, description="Skip reason or error text")

    @classmethod
    def success(cls, unit: str) -> "Outcome":
        return cls(unit=unit, status=OutcomeStatus.SUCCESS)

    @classmethod
    def skipped(cls, unit: str, reason: str) -> "Outcome":
        return cls(unit=unit, status=OutcomeStatus.SKIPPED, reason=reason)

    @classmethod
    def failed(cls, unit: str, error: object) -> "Outcome":
        return cls(unit=unit, status=OutcomeStatus.FAILED, reason=str(error))


class StageReport(BaseModel):
    """Outcomes collected by one pipeline stage."""

    stage: str
    outcomes: List[Outcome] = Field(default_factory=list)

    def add(self, outcome: Outcome) -> Outcome:
        self.outcomes.append(outcome)
        return outcome

    def _count(self, status: OutcomeStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def succeeded(self) -> int:
        return self._count(OutcomeStatus.SUCCESS)

    @property
    def skipped(self) -> int:
        return self._count(OutcomeStatus.SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(OutcomeStatus.FAILED)

    @property
    def failures(self) -> List[Outcome]:
        return [o for o in self.outcomes if o.status == OutcomeStatus.FAILED]

    def summary(self) -> str:
        return (
            f"{self.stage}: {self.succeeded} ok, "
            f"{self.skipped} skipped, {self.failed} failed"
        )


class CycleReport(BaseModel):
    """Everything the orchestrator knows about one run."""

    cycle_date: date
    cycle_id: Optional[int] = None
    status: CycleStatus = CycleStatus.PROCESSING
    stages: List[StageReport] = Field(default_factory=list)
    completed_steps: List[str] = Field(default_factory=list)
    archive: Optional[ArchiveResult] = None
    archive_error: Optional[str] = None
    items_ingested: int = 0
    ratings_created: int = 0
    articles_generated: int = 0
    active_articles: int = 0
    subject_line: Optional[str] = None
    failed_stage: Optional[str] = None
    error: Optional[str] = None

    def add_stage(self, report: StageReport) -> StageReport:
        self.stages.append(report)
        return report

    def stage(self, name: str) -> Optional[StageReport]:
        return next((s for s in self.stages if s.stage == name), None)

    @property
    def ok(self) -> bool:
        return self.error is None
