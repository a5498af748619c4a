"""Exception hierarchy for the curation pipeline."""

from typing import Optional


class NewsdeskError(Exception):
    """Base class for pipeline errors."""


class AIError(NewsdeskError):
    """Base class for AI completion failures."""


class AIProviderError(AIError):
    """The provider rejected the request or returned an unusable response."""


class AITimeoutError(AIError):
    """The provider did not answer within the configured timeout."""


class ParseError(NewsdeskError):
    """A completion could not be normalized into the expected shape."""

    def __init__(self, message: str, raw: object = None):
        super().__init__(message)
        self.raw = raw


class InvalidScoreError(ParseError):
    """A criterion score was missing, non-numeric or outside 0-10."""


class GenerationError(NewsdeskError):
    """Generated copy was empty or the model refused the task."""


class FeedError(NewsdeskError):
    """A feed could not be fetched or parsed."""


class StoreError(NewsdeskError):
    """The durable store failed."""


class MissingTableError(StoreError):
    """A statement referenced a table that does not exist."""

    def __init__(self, message: str, table: Optional[str] = None):
        super().__init__(message)
        self.table = table


class ArchiveError(NewsdeskError):
    """Archiving a cycle failed; its rows must not be cleared."""


class CycleAlreadyRunningError(NewsdeskError):
    """A run for the same cycle date is already in progress."""
