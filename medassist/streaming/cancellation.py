from __future__ import annotations

import asyncio
from typing import AsyncIterator, Awaitable, TypeVar

from medassist.errors import StreamCancelled

T = TypeVar("T")


class CancellationToken:
    """
    Cooperative cancellation signal passed explicitly through the chat pipeline.

    The relay and the consumer check the token between chunks and race it
    against every upstream wait, so a stalled backend can still be abandoned.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str | None = None) -> None:
        if not self._event.is_set():
            self.reason = reason or "cancelled"
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise StreamCancelled(self.reason)

    async def guard(self, aw: Awaitable[T]) -> T:
        self.raise_if_cancelled()

        task = asyncio.ensure_future(aw)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            waiter.cancel()
            raise

        if task.done():
            waiter.cancel()
            return task.result()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise StreamCancelled(self.reason)


async def _anext(iterator: AsyncIterator[T]) -> T:
    return await iterator.__anext__()


async def next_chunk(iterator: AsyncIterator[T], token: CancellationToken | None) -> T:
    """Await the next item, raising StreamCancelled if the token trips first."""
    if token is None:
        return await iterator.__anext__()
    return await token.guard(_anext(iterator))
