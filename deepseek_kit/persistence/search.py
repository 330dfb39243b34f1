"""Message search across saved conversations.

Queries mix ``key:value`` filters with free words::

    role:user content:weather after:2024-01-01 tomorrow rain

``role`` and ``content`` filter messages, ``after`` and ``before`` bound the
message timestamp (ISO dates, UTC when no offset is given), and
``tag`` restricts to conversations carrying that tag. Every free word must
appear in the content (case-insensitive).
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field

from deepseek_kit.schemas.chat import MessageRole
from deepseek_kit.schemas.conversation import Conversation, StoredMessage


class SearchQuery(BaseModel):
    """A parsed search query."""

    role: MessageRole | None = None
    content: str | None = None
    after: datetime | None = None
    before: datetime | None = None
    tags: list[str] = Field(default_factory=list)
    terms: list[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (
            self.role or self.content or self.after or self.before
            or self.tags or self.terms
        )


class SearchResult(BaseModel):
    """A message matching a query, with its neighbours for context."""

    conversation_id: str
    conversation_title: str
    message: StoredMessage
    score: float = Field(ge=0.0, le=1.0)
    previous_message: StoredMessage | None = None
    next_message: StoredMessage | None = None


def _parse_date(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def parse_query(query: str) -> SearchQuery:
    """Parse the ``key:value`` plus free-word syntax.

    Unknown keys and unparseable values are treated as free words.
    """
    parsed = SearchQuery()
    for token in query.split():
        key, sep, value = token.partition(":")
        key = key.lower()
        if not sep or not value:
            parsed.terms.append(token)
            continue
        try:
            if key == "role":
                parsed.role = MessageRole(value.lower())
            elif key == "content":
                parsed.content = value
            elif key == "after":
                parsed.after = _parse_date(value)
            elif key == "before":
                parsed.before = _parse_date(value)
            elif key == "tag":
                parsed.tags.append(value)
            else:
                parsed.terms.append(token)
        except ValueError:
            parsed.terms.append(token)
    return parsed


def _matches(message: StoredMessage, query: SearchQuery) -> bool:
    if query.role is not None and message.role != query.role:
        return False
    content = message.content.lower()
    if query.content is not None and query.content.lower() not in content:
        return False
    if query.after is not None and message.timestamp <= query.after:
        return False
    if query.before is not None and message.timestamp >= query.before:
        return False
    return all(term.lower() in content for term in query.terms)


def _relevance(query: SearchQuery, content: str, position: float) -> float:
    if not query.terms:
        return 1.0
    lowered = content.lower()
    score = 0.0
    for term in query.terms:
        term = term.lower()
        score += lowered.count(term) * 0.3
        if f" {term} " in f" {lowered} ":
            score += 0.5
    # Earlier in a conversation ranks higher
    score += (1.0 - position) * 0.2
    return min(score, 1.0)


def search_messages(
    conversations: list[Conversation], query: SearchQuery | str
) -> list[SearchResult]:
    """Return matching messages, most relevant first."""
    if isinstance(query, str):
        query = parse_query(query)

    results: list[SearchResult] = []
    for conversation in conversations:
        if query.tags and not set(query.tags) & set(conversation.tags):
            continue
        messages = conversation.messages
        last = max(len(messages) - 1, 1)
        for index, message in enumerate(messages):
            if not _matches(message, query):
                continue
            results.append(
                SearchResult(
                    conversation_id=conversation.id,
                    conversation_title=conversation.title,
                    message=message,
                    score=_relevance(query, message.content, index / last),
                    previous_message=messages[index - 1] if index > 0 else None,
                    next_message=messages[index + 1] if index + 1 < len(messages) else None,
                )
            )

    results.sort(key=lambda r: r.score, reverse=True)
    return results
