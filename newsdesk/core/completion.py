"""Normalization of AI completions into typed results.

Providers answer with well-formed JSON, JSON wrapped in prose or code fences,
an already-decoded object, a ``{"raw": "..."}`` envelope, or plain text. Every
call site goes through :func:`parse_completion` with the schema it expects
instead of checking shapes ad hoc.
"""

import json
import logging
import re
from typing import Any, List, Optional, Type, TypeVar, Union

from pydantic import AliasChoices, BaseModel, Field, ValidationError

from newsdesk.core.errors import ParseError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

FENCED_BLOCK = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)
JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)
JSON_ARRAY = re.compile(r"\[.*\]", re.DOTALL)


class CriterionResult(BaseModel):
    """Answer to a single scoring prompt."""

    score: float = Field(..., strict=True)
    reason: str = ""


class ArticleDraft(BaseModel):
    """Rewritten copy for one source item."""

    headline: str = Field(validation_alias=AliasChoices("headline", "title"))
    body: str = Field(validation_alias=AliasChoices("body", "content"))
    word_count: Optional[int] = None


class FactCheckResult(BaseModel):
    """Fact-check of generated copy against its source."""

    score: float
    passed: Optional[bool] = None
    details: Union[str, dict, list] = ""

    def details_text(self) -> str:
        if isinstance(self.details, str):
            return self.details
        return json.dumps(self.details)


class DuplicateGroupPayload(BaseModel):
    topic_signature: str = ""
    primary_article_index: int = Field(
        validation_alias=AliasChoices("primary_article_index", "primary_index")
    )
    duplicate_indices: List[int] = Field(default_factory=list)
    similarity_explanation: str = ""


class DuplicateGroupsResult(BaseModel):
    """Groups of duplicate items, addressed by 0-based prompt index."""

    groups: List[DuplicateGroupPayload] = Field(default_factory=list)
    unique_articles: List[int] = Field(default_factory=list)


def _unwrap(raw: Any) -> Any:
    """Strip a ``{"raw": text}`` envelope."""
    if isinstance(raw, dict) and set(raw) == {"raw"} and isinstance(raw["raw"], str):
        return raw["raw"]
    return raw


def extract_json(raw: Any) -> Any:
    """Decode the JSON value carried by a completion.

    Raises:
        ParseError: if no JSON value can be recovered
    """
    raw = _unwrap(raw)
    if isinstance(raw, (dict, list)):
        return raw
    if not isinstance(raw, str):
        raise ParseError(f"Unsupported completion type: {type(raw).__name__}", raw)

    text = raw.strip()
    if not text:
        raise ParseError("Empty completion", raw)

    candidates = [m.strip() for m in FENCED_BLOCK.findall(text)]
    candidates.append(text)
    for pattern in (JSON_OBJECT, JSON_ARRAY):
        match = pattern.search(text)
        if match:
            candidates.append(match.group(0))

    for candidate in candidates:
        try:
            return json.loads(candidate)
        except (json.JSONDecodeError, ValueError):
            continue

    raise ParseError("No JSON found in completion", raw)


def parse_completion(raw: Any, schema: Type[T]) -> T:
    """Normalize a completion into ``schema``.

    Raises:
        ParseError: if the completion holds no JSON or it does not fit the schema
    """
    data = extract_json(raw)
    try:
        return schema.model_validate(data)
    except ValidationError as e:
        logger.debug(f"Completion did not match {schema.__name__}: {data!r}")
        raise ParseError(f"Invalid {schema.__name__}: {e}", raw) from e


def parse_subject_line(raw: Any) -> str:
    """Pull a subject line out of JSON, a raw envelope or plain text."""
    raw = _unwrap(raw)
    subject = None

    if isinstance(raw, dict):
        subject = raw.get("subject_line") or raw.get("subject")
    elif isinstance(raw, str):
        try:
            data = extract_json(raw)
        except ParseError:
            data = None
        if isinstance(data, dict):
            subject = data.get("subject_line") or data.get("subject")
        elif isinstance(data, str):
            subject = data
        else:
            lines = [line.strip() for line in raw.strip().splitlines() if line.strip()]
            subject = lines[0] if lines else None

    if isinstance(subject, str):
        subject = re.sub(r"^(subject( line)?:)\s*", "", subject.strip(), flags=re.I)
        subject = subject.strip("\"'* ").strip()
    if not subject:
        raise ParseError("No subject line in completion", raw)
    return subject
