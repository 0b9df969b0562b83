from __future__ import annotations

from typing import AsyncIterator, Sequence

import httpx

from medassist.errors import BackendCapacityError, BackendConfigError, MedAssistError, ValidationError
from medassist.models import ChatTurn


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        return str(body.get("detail") or body.get("error") or body)
    return str(body)


def error_for_status(response: httpx.Response) -> MedAssistError:
    detail = _error_detail(response)
    if response.status_code == 400:
        return ValidationError(detail)
    if response.status_code == 500:
        return BackendConfigError(detail)
    if response.status_code == 503:
        return BackendCapacityError(detail)
    return MedAssistError(f"HTTP {response.status_code}: {detail}")


class HttpChatTransport:
    """Streams a chat reply from a running `/chat-stream` endpoint."""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        client: httpx.AsyncClient | None = None,
        timeout: float = 60.0,
    ) -> None:
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __call__(
        self,
        message: str,
        category: str | None,
        history: Sequence[ChatTurn],
    ) -> AsyncIterator[str]:
        payload = {
            "message": message,
            "category": category,
            "conversationHistory": [t.model_dump() for t in history],
        }
        async with self._client.stream("POST", "/chat-stream", json=payload) as response:
            if response.status_code != 200:
                await response.aread()
                raise error_for_status(response)
            async for text in response.aiter_text():
                if text:
                    yield text
