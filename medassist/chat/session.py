from __future__ import annotations

import logging
import time
from typing import AsyncIterator, Callable, Iterable, Optional, Sequence

from medassist.agents.chat_agent import validate_message
from medassist.config import Settings, settings as default_settings
from medassist.errors import (
    BackendCapacityError,
    BackendConfigError,
    SessionBusyError,
    StreamCancelled,
    ValidationError,
)
from medassist.memory.history import ConversationHistory
from medassist.models import ChatTurn, ResponseMetadata, StreamedMessage
from medassist.streaming.cancellation import CancellationToken, next_chunk
from medassist.streaming.parser import IncrementalParser, ParsedResponse, UpdateThrottle

logger = logging.getLogger(__name__)

ERROR_MESSAGE = "Sorry, something went wrong. Please try again."
_VISIBLE_ERRORS = (ValidationError, BackendConfigError, BackendCapacityError)

ChatTransport = Callable[[str, Optional[str], Sequence[ChatTurn]], AsyncIterator[str]]
UpdateCallback = Callable[[StreamedMessage], None]


def _metadata_for(parsed: ParsedResponse) -> ResponseMetadata:
    raw = parsed.metadata or {}
    timestamp = raw.get("timestamp")
    category = raw.get("category")
    return ResponseMetadata(
        suggestions=parsed.suggestions,
        done=bool(raw.get("done", False)),
        timestamp=str(timestamp) if timestamp is not None else None,
        category=str(category) if category is not None else None,
    )


class ChatSession:
    """
    One conversation: its messages, its history window and at most one
    in-flight assistant reply.

    `transport(message, category, history)` must return an async iterator of
    relayed text segments (see HttpChatTransport and ChatAgent.stream_reply).
    """

    def __init__(
        self,
        transport: ChatTransport,
        settings: Settings | None = None,
        history: Iterable[ChatTurn] = (),
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.transport = transport
        self.settings = settings or default_settings
        self.history = ConversationHistory(window=self.settings.history_window, initial=history)
        self.messages: list[StreamedMessage] = []
        self.suggestions: list[str] = []
        self.processing = False
        self.failed_message: str | None = None
        self._clock = clock

    async def submit(
        self,
        message: str,
        category: str | None = "general",
        cancel_token: CancellationToken | None = None,
        on_update: UpdateCallback | None = None,
    ) -> StreamedMessage | None:
        """
        Send a user message and stream the assistant reply.

        Returns the finalized assistant message, the error message appended
        on failure, or None when the turn was cancelled.
        """
        self._ensure_idle()
        text = validate_message(message, max_length=self.settings.max_message_length).strip()

        self.processing = True
        try:
            self.messages.append(StreamedMessage(sender="user", content=text))
            self.history.add_message("user", text)
            return await self._respond(text, category, cancel_token, on_update)
        finally:
            self.processing = False

    async def retry(
        self,
        category: str | None = "general",
        cancel_token: CancellationToken | None = None,
        on_update: UpdateCallback | None = None,
    ) -> StreamedMessage | None:
        """Re-request the reply to the last failed message; its user turn is already recorded."""
        self._ensure_idle()
        if self.failed_message is None:
            raise ValidationError("There is no failed message to retry")

        self.processing = True
        try:
            return await self._respond(self.failed_message, category, cancel_token, on_update)
        finally:
            self.processing = False

    def _ensure_idle(self) -> None:
        if self.processing:
            raise SessionBusyError("A response is already in progress")

    async def _respond(
        self,
        text: str,
        category: str | None,
        cancel_token: CancellationToken | None,
        on_update: UpdateCallback | None,
    ) -> StreamedMessage | None:
        self.suggestions = []
        self.failed_message = None

        reply = StreamedMessage(sender="assistant", streaming=True)
        self.messages.append(reply)

        parser = IncrementalParser()
        throttle = UpdateThrottle(self.settings.update_interval, clock=self._clock)

        def publish() -> None:
            if on_update is not None:
                on_update(reply)

        chunks = self.transport(text, category, self.history.get_history())
        try:
            while True:
                try:
                    segment = await next_chunk(chunks, cancel_token)
                except StopAsyncIteration:
                    break

                was_final = parser.marker_seen
                update = parser.feed(segment)
                if update.final:
                    if not was_final:
                        reply.content = update.text
                        reply.streaming = False
                        publish()
                elif throttle.ready():
                    reply.content = update.text
                    publish()
        except StreamCancelled:
            logger.info("chat turn cancelled")
            self.messages.remove(reply)
            await _close(chunks)
            return None
        except Exception as e:
            logger.exception("chat turn failed")
            self.messages.remove(reply)
            await _close(chunks)
            self.failed_message = text
            content = e.user_message if isinstance(e, _VISIBLE_ERRORS) else ERROR_MESSAGE
            error = StreamedMessage(sender="assistant", content=content, status="error")
            self.messages.append(error)
            return error

        parsed = parser.finish()
        reply.content = parsed.text
        reply.streaming = False
        reply.metadata = _metadata_for(parsed)
        self.suggestions = list(parsed.suggestions)
        self.history.add_message("assistant", parsed.text)
        publish()
        return reply


async def _close(chunks: AsyncIterator[str]) -> None:
    aclose = getattr(chunks, "aclose", None)
    if aclose is not None:
        try:
            await aclose()
        except Exception:
            logger.debug("transport close failed", exc_info=True)
