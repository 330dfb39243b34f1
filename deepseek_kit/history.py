"""Conversation history with a token budget.

``ConversationManager`` keeps the running message list for a multi-turn
chat and decides what is sent with the next request. Two limits apply
after every added message:

- a sliding window of at most ``window_size`` messages;
- a token budget of ``max_tokens - reserve_tokens``, estimated at one
  token per four characters plus four per message for the role.

Both keep every system message and the first user message. Dropped
messages are counted, and ``messages_for_request()`` inserts a short note
after the system prompt so the model knows earlier context is missing.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from deepseek_kit.schemas.chat import ChatCompletionRequest, ChatMessage, MessageRole
from deepseek_kit.schemas.conversation import Conversation

if TYPE_CHECKING:
    from deepseek_kit.client import DeepSeekClient

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4
MESSAGE_OVERHEAD_TOKENS = 4
DEFAULT_MAX_TOKENS = 32_000
DEFAULT_RESERVE_TOKENS = 4_000
DEFAULT_SUMMARY_BATCH = 10

SUMMARY_PREFIX = "[Summary of previous conversation]"

_SUMMARY_PROMPT = """\
Summarize the following conversation segment. Include:
1. Main topics discussed
2. Key decisions or conclusions
3. Important information to remember
4. Any unresolved questions

Format your response as:
SUMMARY: [Your summary here]
TOPICS: [Comma-separated list of main topics]

Conversation:
{conversation}"""

_SUMMARY_RE = re.compile(r"SUMMARY:\s*(.*?)(?:\n\s*TOPICS:|\Z)", re.DOTALL | re.IGNORECASE)
_TOPICS_RE = re.compile(r"TOPICS:\s*(.*)", re.IGNORECASE)


def estimate_tokens(text: str) -> int:
    """Rough token count for ``text`` (one token per four characters)."""
    return len(text) // CHARS_PER_TOKEN


def message_tokens(message: ChatMessage) -> int:
    return estimate_tokens(message.content) + MESSAGE_OVERHEAD_TOKENS


def parse_summary(text: str) -> tuple[str, list[str]]:
    """Split a ``SUMMARY: ... TOPICS: ...`` reply into summary and topics.

    Text without the markers is taken whole as the summary.
    """
    match = _SUMMARY_RE.search(text)
    summary = match.group(1).strip() if match else text.strip()
    topics_match = _TOPICS_RE.search(text)
    topics = []
    if topics_match:
        topics = [t.strip() for t in topics_match.group(1).split(",") if t.strip()]
    return summary, topics


class ConversationManager:
    """Running message history for a multi-turn chat.

    Args:
        system_prompt: Optional system message placed first.
        max_tokens: Context size the history must fit in.
        reserve_tokens: Tokens left free for the reply.
        window_size: Maximum number of kept messages. None disables the window.
    """

    def __init__(
        self,
        system_prompt: str | None = None,
        *,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        reserve_tokens: int = DEFAULT_RESERVE_TOKENS,
        window_size: int | None = None,
    ) -> None:
        if reserve_tokens < 0 or max_tokens <= reserve_tokens:
            raise ValueError("max_tokens must exceed reserve_tokens")
        if window_size is not None and window_size < 2:
            raise ValueError("window_size must be at least 2")
        self.max_tokens = max_tokens
        self.reserve_tokens = reserve_tokens
        self.window_size = window_size
        self._messages: list[ChatMessage] = []
        self.dropped_count = 0
        if system_prompt:
            self.add_system(system_prompt)

    # ── Views ─────────────────────────────────────────────────

    @property
    def messages(self) -> list[ChatMessage]:
        return list(self._messages)

    @property
    def token_budget(self) -> int:
        return self.max_tokens - self.reserve_tokens

    @property
    def estimated_tokens(self) -> int:
        return sum(message_tokens(m) for m in self._messages)

    def usage_description(self) -> str:
        used = self.estimated_tokens
        percentage = used * 100 // self.max_tokens
        return f"{used:,} / {self.max_tokens:,} tokens ({percentage}%)"

    def __len__(self) -> int:
        return len(self._messages)

    # ── Adding ────────────────────────────────────────────────

    def add(self, message: ChatMessage) -> ChatMessage:
        """Append a message, then apply the window and the token budget."""
        self._messages.append(message)
        self._apply_window()
        self._prune_to_budget()
        return message

    def add_system(self, content: str) -> ChatMessage:
        return self.add(ChatMessage.system(content))

    def add_user(self, content: str) -> ChatMessage:
        return self.add(ChatMessage.user(content))

    def add_assistant(self, content: str) -> ChatMessage:
        return self.add(ChatMessage.assistant(content))

    def clear(self, keep_system: bool = True) -> None:
        self._messages = [
            m for m in self._messages if keep_system and m.role == MessageRole.SYSTEM
        ]
        self.dropped_count = 0

    # ── Request building ──────────────────────────────────────

    def messages_for_request(self) -> list[ChatMessage]:
        """Messages to send, with a note about dropped context when needed."""
        messages = list(self._messages)
        if not self.dropped_count:
            return messages
        note = ChatMessage.system(
            f"[{self.dropped_count} earlier messages were omitted to fit the context window]"
        )
        index = 0
        while index < len(messages) and messages[index].role == MessageRole.SYSTEM:
            index += 1
        messages.insert(index, note)
        return messages

    def build_request(self, **params) -> ChatCompletionRequest:
        return ChatCompletionRequest(messages=self.messages_for_request(), **params)

    # ── Branching ─────────────────────────────────────────────

    def branch(self, upto: int | None = None) -> ConversationManager:
        """Return an independent copy holding messages ``[0, upto]``.

        The branch shares no state with this manager, so the two
        conversations can continue in different directions.
        """
        if upto is not None and not 0 <= upto < len(self._messages):
            raise IndexError(f"No message at index {upto}")
        branch = ConversationManager(
            max_tokens=self.max_tokens,
            reserve_tokens=self.reserve_tokens,
            window_size=self.window_size,
        )
        end = len(self._messages) if upto is None else upto + 1
        branch._messages = [m.model_copy() for m in self._messages[:end]]
        branch.dropped_count = self.dropped_count
        return branch

    # ── Conversion ────────────────────────────────────────────

    def to_conversation(self, title: str = "Untitled conversation") -> Conversation:
        conversation = Conversation(title=title)
        for message in self._messages:
            if message.role in (MessageRole.SYSTEM, MessageRole.USER, MessageRole.ASSISTANT):
                conversation.add(message.role, message.content)
        return conversation

    @classmethod
    def from_conversation(cls, conversation: Conversation, **kwargs) -> ConversationManager:
        manager = cls(**kwargs)
        for message in conversation.to_chat_messages():
            manager.add(message)
        return manager

    # ── Summarization ─────────────────────────────────────────

    async def summarize(
        self,
        client: DeepSeekClient,
        count: int = DEFAULT_SUMMARY_BATCH,
        model: str = "deepseek-chat",
    ) -> str | None:
        """Replace the oldest ``count`` non-system messages with a model summary.

        Returns the summary text, or None when there is nothing to summarize.
        """
        indices = [
            i for i, m in enumerate(self._messages) if m.role != MessageRole.SYSTEM
        ][:count]
        if len(indices) < 2:
            return None

        segment = [self._messages[i] for i in indices]
        conversation = "\n".join(f"{m.role}: {m.content}" for m in segment)
        request = ChatCompletionRequest(
            model=model,
            messages=[
                ChatMessage.system(
                    "You are a conversation summarizer. "
                    "Create concise, informative summaries."
                ),
                ChatMessage.user(_SUMMARY_PROMPT.format(conversation=conversation)),
            ],
            temperature=0.3,
        )
        response = await client.complete(request)
        summary, topics = parse_summary(response.content)
        if not summary:
            return None

        content = f"{SUMMARY_PREFIX} {summary}"
        if topics:
            content += f"\nTopics: {', '.join(topics)}"
        dropped = set(indices)
        kept = [m for i, m in enumerate(self._messages) if i not in dropped]
        position = indices[0]
        kept.insert(position, ChatMessage.system(content))
        self._messages = kept
        logger.debug("Summarized %d messages into %d chars", len(segment), len(summary))
        return summary

    # ── Trimming ──────────────────────────────────────────────

    def _preserved(self) -> set[int]:
        keep = {i for i, m in enumerate(self._messages) if m.role == MessageRole.SYSTEM}
        for i, message in enumerate(self._messages):
            if message.role == MessageRole.USER:
                keep.add(i)
                break
        return keep

    def _apply_window(self) -> None:
        if self.window_size is None or len(self._messages) <= self.window_size:
            return
        preserved = self._preserved()
        sliding = [i for i in range(len(self._messages)) if i not in preserved]
        # The newest message survives even when preserved ones fill the window
        slots = max(self.window_size - len(preserved), 1)
        kept = preserved | set(sliding[-slots:])
        self._drop_all_but(kept)

    def _prune_to_budget(self) -> None:
        if self.estimated_tokens <= self.token_budget:
            return
        preserved = self._preserved()
        newest = len(self._messages) - 1
        kept = preserved | {newest}
        used = sum(message_tokens(self._messages[i]) for i in kept)
        for i in range(newest - 1, -1, -1):
            if i in kept:
                continue
            cost = message_tokens(self._messages[i])
            if used + cost > self.token_budget:
                break
            kept.add(i)
            used += cost
        if used > self.token_budget:
            logger.warning(
                "History still exceeds the token budget (%d > %d)", used, self.token_budget
            )
        self._drop_all_but(kept)

    def _drop_all_but(self, kept: set[int]) -> None:
        dropped = len(self._messages) - len(kept)
        if not dropped:
            return
        self._messages = [m for i, m in enumerate(self._messages) if i in kept]
        self.dropped_count += dropped
        logger.debug("Dropped %d message(s) from history", dropped)
