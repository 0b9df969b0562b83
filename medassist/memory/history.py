from __future__ import annotations

from collections import deque
from typing import Iterable, Iterator

from medassist.models import ChatTurn


class ConversationHistory:
    """Sliding window over the most recent turns; the oldest drop first."""

    def __init__(self, window: int = 10, initial: Iterable[ChatTurn] = ()) -> None:
        if window < 1:
            raise ValueError("window must be at least 1")
        # a restored history longer than the window is truncated on load
        self._turns: deque[ChatTurn] = deque(initial, maxlen=window)

    @property
    def window(self) -> int:
        return self._turns.maxlen or 0

    def add_message(self, role: str, content: str) -> ChatTurn:
        turn = ChatTurn(role=role, content=content)
        self._turns.append(turn)
        return turn

    def get_history(self) -> list[ChatTurn]:
        return list(self._turns)

    def last(self) -> ChatTurn | None:
        return self._turns[-1] if self._turns else None

    def clear(self) -> None:
        self._turns.clear()

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[ChatTurn]:
        return iter(list(self._turns))
