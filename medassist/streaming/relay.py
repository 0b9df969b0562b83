from __future__ import annotations

import json
import logging
import time
from typing import AsyncIterator

from medassist.errors import StreamCancelled
from medassist.models import ResponseMetadata, utc_now_iso
from medassist.streaming.cancellation import CancellationToken, next_chunk
from medassist.tools.extraction import extract_suggestions

logger = logging.getLogger(__name__)

METADATA_MARKER = "___METADATA___"
METADATA_SENTINEL = f"\n{METADATA_MARKER}\n"
DEFAULT_METADATA_CATEGORY = "general"

_NOT_PRIMED = object()
_EXHAUSTED = object()


def build_metadata(
    full_text: str,
    category: str | None,
    min_length: int = 11,
    max_length: int = 149,
) -> ResponseMetadata:
    return ResponseMetadata(
        suggestions=extract_suggestions(full_text, min_length=min_length, max_length=max_length),
        done=True,
        timestamp=utc_now_iso(),
        category=category or DEFAULT_METADATA_CATEGORY,
    )


def encode_metadata(metadata: ResponseMetadata) -> str:
    return METADATA_SENTINEL + json.dumps(metadata.model_dump(), separators=(",", ":"))


class StreamRelay:
    """
    Forwards upstream text chunks to a single consumer, then appends one
    metadata segment (sentinel + JSON) and closes.

    Iterate it exactly once. Call `prime()` first when upstream errors must
    surface before anything is sent downstream (e.g. to pick an HTTP status).
    """

    def __init__(
        self,
        upstream: AsyncIterator[str],
        category: str | None = None,
        cancel_token: CancellationToken | None = None,
        suggestion_min_length: int = 11,
        suggestion_max_length: int = 149,
    ) -> None:
        self._upstream = upstream
        self._category = category
        self._token = cancel_token
        self._min_length = suggestion_min_length
        self._max_length = suggestion_max_length
        self._pending: object = _NOT_PRIMED
        self._started = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def prime(self) -> "StreamRelay":
        if self._pending is _NOT_PRIMED:
            try:
                self._pending = await next_chunk(self._upstream, self._token)
            except StopAsyncIteration:
                self._pending = _EXHAUSTED
        return self

    def __aiter__(self) -> AsyncIterator[str]:
        if self._started:
            raise RuntimeError("StreamRelay can only be iterated once")
        self._started = True
        return self._run()

    async def _next(self) -> str:
        if self._pending is _EXHAUSTED:
            raise StopAsyncIteration
        if self._pending is not _NOT_PRIMED:
            chunk, self._pending = self._pending, _NOT_PRIMED
            return chunk  # type: ignore[return-value]
        try:
            return await next_chunk(self._upstream, self._token)
        except StopAsyncIteration:
            self._pending = _EXHAUSTED
            raise

    async def _run(self) -> AsyncIterator[str]:
        parts: list[str] = []
        started_at = time.monotonic()
        try:
            while True:
                if self._token is not None:
                    self._token.raise_if_cancelled()
                try:
                    chunk = await self._next()
                except StopAsyncIteration:
                    break
                parts.append(chunk)
                logger.debug(
                    "chunk %d at %dms: %r",
                    len(parts),
                    (time.monotonic() - started_at) * 1000,
                    chunk[:50],
                )
                yield chunk
        except StreamCancelled:
            logger.info("stream cancelled after %d chunks", len(parts))
            self._closed = True
            await self._close_upstream()
            raise
        except Exception:
            logger.exception("upstream stream failed after %d chunks", len(parts))
            self._closed = True
            await self._close_upstream()
            raise

        metadata = build_metadata(
            "".join(parts),
            self._category,
            min_length=self._min_length,
            max_length=self._max_length,
        )
        logger.info(
            "stream finished: %d chunks, %d suggestions, %dms",
            len(parts),
            len(metadata.suggestions),
            (time.monotonic() - started_at) * 1000,
        )
        yield encode_metadata(metadata)
        self._closed = True

    async def _close_upstream(self) -> None:
        aclose = getattr(self._upstream, "aclose", None)
        if aclose is None:
            return
        try:
            await aclose()
        except Exception:
            logger.debug("upstream close failed", exc_info=True)
