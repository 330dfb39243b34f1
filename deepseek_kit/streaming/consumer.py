"""Interruptible stream consumer.

Reads ``StreamFragment`` values from an async source, appends their text to
a ``StreamSession`` and honours pause, resume and boundary-aware
cancellation requests made while the stream is running.

State machine::

    streaming -> (paused <-> streaming) -> complete | cancelled | failed

The consumer is the only writer of its session. Callers observe it through
``snapshot()`` or through the events published on a ``StreamEventEmitter``.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import AsyncIterable
from datetime import UTC, datetime

from deepseek_kit.errors import SessionFinalizedError, SourceError
from deepseek_kit.schemas.session import (
    CancelBoundary,
    CancellationRequest,
    SessionSnapshot,
    StreamState,
)
from deepseek_kit.schemas.streaming import StreamFragment
from deepseek_kit.streaming.boundaries import allowed_portion, evaluate_boundary
from deepseek_kit.streaming.events import StreamEventEmitter, StreamEventType

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.1
TASK_CANCELLED_REASON = "task cancelled"


class StreamSession:
    """Mutable record of one request/response exchange.

    The buffer is append-only while the session is live. Once finalized the
    session is immutable: every mutator raises ``SessionFinalizedError``.
    """

    def __init__(self, session_id: str | None = None) -> None:
        self.session_id = session_id or uuid.uuid4().hex
        self.started_at = datetime.now(UTC)
        self.finished_at: datetime | None = None
        self._state = StreamState.STREAMING
        self._buffer = ""
        self._reasoning = ""
        self._chunk_count = 0
        self._cancel_reason: str | None = None
        self._error: SourceError | None = None
        self._finish_reason: str | None = None

    # ── Read-only views ───────────────────────────────────────

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def buffer(self) -> str:
        return self._buffer

    @property
    def buffer_size(self) -> int:
        return len(self._buffer)

    @property
    def reasoning(self) -> str:
        return self._reasoning

    @property
    def chunk_count(self) -> int:
        return self._chunk_count

    @property
    def cancel_reason(self) -> str | None:
        return self._cancel_reason

    @property
    def error(self) -> SourceError | None:
        return self._error

    @property
    def finish_reason(self) -> str | None:
        return self._finish_reason

    @property
    def is_terminal(self) -> bool:
        return self._state.is_terminal

    # ── Mutators (consumer only) ──────────────────────────────

    def _check_live(self) -> None:
        if self._state.is_terminal:
            raise SessionFinalizedError(
                f"Session {self.session_id} is already {self._state}"
            )

    def append(self, text: str) -> None:
        """Append a fragment's text and count it."""
        self._check_live()
        self._buffer += text
        self._chunk_count += 1

    def append_reasoning(self, text: str) -> None:
        self._check_live()
        self._reasoning += text

    def set_state(self, state: StreamState) -> None:
        """Move between the live states (streaming and paused)."""
        self._check_live()
        if state.is_terminal:
            raise ValueError(f"Use finalize() to enter terminal state {state}")
        self._state = state

    def finalize(
        self,
        state: StreamState,
        *,
        cancel_reason: str | None = None,
        error: SourceError | None = None,
        finish_reason: str | None = None,
    ) -> None:
        """Enter a terminal state. Allowed exactly once."""
        self._check_live()
        if not state.is_terminal:
            raise ValueError(f"{state} is not a terminal state")
        self._state = state
        self._cancel_reason = cancel_reason
        self._error = error
        if finish_reason is not None:
            self._finish_reason = finish_reason
        self.finished_at = datetime.now(UTC)

    def snapshot(self) -> SessionSnapshot:
        """Return an immutable copy of the current session state."""
        return SessionSnapshot(
            session_id=self.session_id,
            state=self._state,
            buffer=self._buffer,
            reasoning=self._reasoning,
            chunk_count=self._chunk_count,
            cancel_reason=self._cancel_reason,
            error=str(self._error) if self._error else None,
            finish_reason=self._finish_reason,
            started_at=self.started_at,
            finished_at=self.finished_at,
        )


class StreamConsumer:
    """Drives a ``StreamSession`` from an async fragment source.

    ``run()`` consumes the source until it is exhausted, a fragment carries a
    finish marker, a cancellation boundary is reached, or the source raises.
    ``pause()``, ``resume()`` and ``request_cancel()`` may be called from any
    other task (or from an event listener) while ``run()`` is in progress.

    Args:
        source: Async iterable of fragments, consumed in arrival order.
        emitter: Optional event emitter notified on every transition.
        session: Session record to fill. A fresh one is created by default.
        poll_interval: Seconds between resume checks while paused.
    """

    def __init__(
        self,
        source: AsyncIterable[StreamFragment],
        *,
        emitter: StreamEventEmitter | None = None,
        session: StreamSession | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        if poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        self._source = source
        self._emitter = emitter
        self._session = session or StreamSession()
        self._poll_interval = poll_interval
        self._pause_requested = False
        self._cancel: CancellationRequest | None = None
        self._started = False
        self._exhausted = False

    @property
    def session(self) -> StreamSession:
        return self._session

    @property
    def state(self) -> StreamState:
        return self._session.state

    @property
    def pending_cancel(self) -> CancellationRequest | None:
        return self._cancel

    @property
    def pause_requested(self) -> bool:
        return self._pause_requested

    def snapshot(self) -> SessionSnapshot:
        return self._session.snapshot()

    # ── Control ───────────────────────────────────────────────

    def pause(self) -> None:
        """Request that consumption stop before the next fragment is processed."""
        self._session._check_live()
        self._pause_requested = True

    def resume(self) -> None:
        """Clear a pause request. The paused wait ends on its next poll."""
        self._session._check_live()
        self._pause_requested = False

    def request_cancel(
        self,
        boundary: CancelBoundary | str = CancelBoundary.IMMEDIATE,
        reason: str | None = None,
    ) -> CancellationRequest:
        """Request cancellation at the next fragment satisfying ``boundary``.

        A later request replaces an earlier one that has not taken effect.
        """
        self._session._check_live()
        boundary = CancelBoundary(boundary)
        request = CancellationRequest(
            boundary=boundary,
            reason=reason or f"cancelled by user ({boundary})",
        )
        self._cancel = request
        logger.debug(
            "Cancellation requested for session %s at %s",
            self._session.session_id, boundary,
        )
        return request

    # ── Consumption ───────────────────────────────────────────

    async def run(self) -> SessionSnapshot:
        """Consume the source and return the final session snapshot.

        Source errors finalize the session as failed and are not raised.
        If the task running this coroutine is cancelled, the session is
        finalized as cancelled and ``CancelledError`` propagates.

        Raises:
            RuntimeError: If the consumer was already started.
        """
        if self._started:
            raise RuntimeError("StreamConsumer.run() may only be called once")
        self._started = True

        iterator = aiter(self._source)
        await self._emit(StreamEventType.SESSION_STARTED)

        try:
            await self._consume(iterator)
        except asyncio.CancelledError:
            if not self._session.is_terminal:
                self._session.finalize(
                    StreamState.CANCELLED, cancel_reason=TASK_CANCELLED_REASON
                )
                await self._emit(StreamEventType.CANCELLED)
            raise
        finally:
            if not self._exhausted:
                await self._close_source(iterator)

        return self._session.snapshot()

    async def _consume(self, iterator) -> None:
        while True:
            if self._immediate_pending():
                await self._finish_cancelled()
                return

            try:
                fragment = await anext(iterator)
            except StopAsyncIteration:
                self._exhausted = True
                await self._finish(StreamState.COMPLETE)
                return
            except Exception as exc:
                self._exhausted = True
                await self._fail(exc)
                return

            if self._pause_requested:
                await self._wait_while_paused()
                if self._immediate_pending():
                    await self._finish_cancelled()
                    return

            if await self._apply(fragment):
                return

    async def _apply(self, fragment: StreamFragment) -> bool:
        """Apply one fragment. Returns True when the session reached a terminal state."""
        if fragment.reasoning_content:
            self._session.append_reasoning(fragment.reasoning_content)
            await self._emit(
                StreamEventType.REASONING_APPENDED, delta=fragment.reasoning_content
            )

        text = fragment.content or ""
        if text:
            cancel = self._cancel
            if cancel is not None and evaluate_boundary(
                cancel.boundary, self._session.buffer, text
            ):
                portion = allowed_portion(cancel.boundary, text)
                if portion:
                    self._session.append(portion)
                    await self._emit(StreamEventType.CHUNK_APPENDED, delta=portion)
                await self._finish_cancelled(cancel)
                return True

            self._session.append(text)
            await self._emit(StreamEventType.CHUNK_APPENDED, delta=text)

        if fragment.finish_reason:
            await self._finish(StreamState.COMPLETE, finish_reason=fragment.finish_reason)
            return True

        return False

    async def _wait_while_paused(self) -> None:
        self._session.set_state(StreamState.PAUSED)
        await self._emit(StreamEventType.PAUSED)

        while self._pause_requested and not self._immediate_pending():
            await asyncio.sleep(self._poll_interval)

        if self._immediate_pending():
            return
        self._session.set_state(StreamState.STREAMING)
        await self._emit(StreamEventType.RESUMED)

    def _immediate_pending(self) -> bool:
        return (
            self._cancel is not None
            and self._cancel.boundary == CancelBoundary.IMMEDIATE
        )

    async def _finish_cancelled(self, cancel: CancellationRequest | None = None) -> None:
        cancel = cancel or self._cancel
        reason = cancel.reason if cancel else TASK_CANCELLED_REASON
        self._session.finalize(StreamState.CANCELLED, cancel_reason=reason)
        self._cancel = None
        await self._emit(StreamEventType.CANCELLED)

    async def _finish(self, state: StreamState, finish_reason: str | None = None) -> None:
        self._session.finalize(state, finish_reason=finish_reason)
        await self._emit(StreamEventType.COMPLETED)

    async def _fail(self, exc: Exception) -> None:
        error = SourceError(str(exc) or type(exc).__name__, cause=exc)
        error.__cause__ = exc
        logger.warning(
            "Stream source failed for session %s after %d chunks: %s",
            self._session.session_id, self._session.chunk_count, error,
        )
        self._session.finalize(StreamState.FAILED, error=error)
        await self._emit(StreamEventType.FAILED, error=str(error))

    async def _close_source(self, iterator) -> None:
        aclose = getattr(iterator, "aclose", None)
        if aclose is None:
            return
        try:
            await aclose()
        except Exception:
            logger.exception("Error closing stream source")

    async def _emit(self, event_type: StreamEventType, **data) -> None:
        if self._emitter is not None:
            await self._emitter.emit(event_type, self._session.snapshot(), **data)
