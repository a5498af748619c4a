"""Prompt templates for scoring, dedup, generation and fact-checking.

Templates use ``{name}`` placeholders filled by :func:`render`, which only
substitutes known keys so JSON examples inside a template stay intact.
"""

import re
from typing import List

from newsdesk.core.utils import truncate
from newsdesk.models.content import Article, Criterion, SourceItem

CRITERION_PROMPT = """You are rating a news item for a curated daily newsletter.

Criterion: {criterion}

Title: {title}
Description: {description}
Content: {content}

Rate the item on this criterion only, from 0 (not at all) to 10 (exceptional).
Respond with JSON only: {"score": <number 0-10>, "reason": "<one sentence>"}"""

DEDUP_PROMPT = """The following news items were collected today. Identify items that
report the same story or event. For each group choose the most complete item
as the primary.

{items}

Respond with JSON only, using the 0-based indices shown above:
{"groups": [{"topic_signature": "<short topic>", "primary_article_index": 0,
"duplicate_indices": [3], "similarity_explanation": "<why>"}],
"unique_articles": [1, 2]}
Return {"groups": [], "unique_articles": [...]} when nothing is duplicated."""

ARTICLE_PROMPT = """Rewrite this news item as a short newsletter article.

Title: {title}
Description: {description}
Source content: {content}

REQUIREMENTS:
- Write in third person, factual tone
- Start with the main fact or development
- Explain what happened and why it matters
- Use only facts present in the source content
- 120 to 250 words, complete paragraphs, no questions or engagement tactics

Respond with JSON only:
{"headline": "<headline under 90 characters>", "body": "<article>", "word_count": <number>}"""

FACT_CHECK_PROMPT = """Fact-check a newsletter article against its source.

SOURCE
Title: {title}
Content: {source}

ARTICLE
Headline: {headline}
Body: {body}

Score each dimension from 0 to 10:
- accuracy: every claim is supported by the source
- attribution: no invented names, numbers or quotes
- timeliness: the article does not present old facts as new

Respond with JSON only:
{"score": <sum of the three scores>, "passed": <true if no claim is contradicted or invented>,
"details": {"accuracy": <n>, "attribution": <n>, "timeliness": <n>, "issues": ["..."]}}"""

SUBJECT_LINE_PROMPT = """Write an email subject line for today's newsletter. It leads
with this story:

Headline: {headline}
Summary: {body}

Keep it under 70 characters, no emoji, no clickbait.
Respond with JSON only: {"subject_line": "<subject>"}"""


PLACEHOLDER = re.compile(r"\{(\w+)\}")


def render(template: str, **values: object) -> str:
    def _substitute(match: "re.Match[str]") -> str:
        key = match.group(1)
        if key not in values:
            return match.group(0)
        value = values[key]
        return "" if value is None else str(value)

    return PLACEHOLDER.sub(_substitute, template)


def criterion_prompt(criterion: Criterion, item: SourceItem) -> str:
    template = criterion.prompt or CRITERION_PROMPT
    return render(
        template,
        criterion=criterion.name,
        title=item.title,
        description=truncate(item.description, 1000),
        content=truncate(item.body, 4000),
    )


def dedup_prompt(items: List[SourceItem]) -> str:
    lines = [
        f"[{index}] {item.title}\n    {truncate(item.description, 300)}"
        for index, item in enumerate(items)
    ]
    return render(DEDUP_PROMPT, items="\n".join(lines))


def article_prompt(item: SourceItem) -> str:
    return render(
        ARTICLE_PROMPT,
        title=item.title,
        description=truncate(item.description, 1000),
        content=truncate(item.body, 6000),
    )


def fact_check_prompt(item: SourceItem, headline: str, body: str) -> str:
    return render(
        FACT_CHECK_PROMPT,
        title=item.title,
        source=truncate(item.body, 6000),
        headline=headline,
        body=body,
    )


def subject_line_prompt(article: Article) -> str:
    return render(
        SUBJECT_LINE_PROMPT,
        headline=article.headline,
        body=truncate(article.body, 600),
    )
