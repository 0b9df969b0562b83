from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from medassist.errors import MetadataParseError
from medassist.streaming.relay import METADATA_MARKER

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParseUpdate:
    text: str
    final: bool = False


@dataclass
class ParsedResponse:
    text: str
    metadata: dict[str, Any] | None = None
    suggestions: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def degraded(self) -> bool:
        return self.metadata is None


class UpdateThrottle:
    """Allows at most one visible update per `interval` seconds."""

    def __init__(self, interval: float = 0.05, clock: Callable[[], float] = time.monotonic) -> None:
        self.interval = interval
        self._clock = clock
        self._last: float | None = None

    def ready(self) -> bool:
        now = self._clock()
        if self._last is None or now - self._last >= self.interval:
            self._last = now
            return True
        return False

    def reset(self) -> None:
        self._last = None


class IncrementalParser:
    """
    Rebuilds display text and trailing metadata from a relayed chat stream.

    Everything before the first metadata marker is display text. The JSON
    after it may arrive over several segments, so it is only decoded in
    `finish()`. Later marker blocks are ignored.
    """

    def __init__(self, marker: str = METADATA_MARKER) -> None:
        self.marker = marker
        self._buffer = ""
        self._split_at: int | None = None
        self._text: str | None = None

    @property
    def buffer(self) -> str:
        return self._buffer

    @property
    def marker_seen(self) -> bool:
        return self._split_at is not None

    def feed(self, segment: str) -> ParseUpdate:
        self._buffer += segment

        if self._split_at is None:
            idx = self._buffer.find(self.marker)
            if idx == -1:
                return ParseUpdate(text=self._buffer)
            self._split_at = idx
            text = self._buffer[:idx]
            # the sentinel opens with its own newline
            self._text = text[:-1] if text.endswith("\n") else text

        return ParseUpdate(text=self._text or "", final=True)

    def finish(self) -> ParsedResponse:
        if self._split_at is None:
            logger.info("stream ended without metadata; finalizing %d chars", len(self._buffer))
            return ParsedResponse(text=self._buffer)

        # only the block up to a later marker belongs to the first metadata
        tail = self._buffer[self._split_at + len(self.marker):].split(self.marker, 1)[0]
        try:
            metadata = _decode_metadata(tail)
        except MetadataParseError as e:
            logger.error("Failed to parse metadata: %s", e)
            return ParsedResponse(text=self._text or "", error=str(e))

        return ParsedResponse(
            text=self._text or "",
            metadata=metadata,
            suggestions=_suggestions_from(metadata),
        )


def _decode_metadata(raw: str) -> dict[str, Any]:
    try:
        obj = json.loads(raw)
    except json.JSONDecodeError as e:
        raise MetadataParseError(f"invalid metadata JSON: {e}") from e
    if not isinstance(obj, dict):
        raise MetadataParseError(f"metadata must be an object, got {type(obj).__name__}")
    return obj


def _suggestions_from(metadata: dict[str, Any]) -> list[str]:
    raw = metadata.get("suggestions")
    if not isinstance(raw, list):
        return []
    return [s for s in raw if isinstance(s, str)]
