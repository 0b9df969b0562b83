from __future__ import annotations

import asyncio
from typing import AsyncIterator, Sequence

import pytest
from fastapi.testclient import TestClient

from medassist.main import app, get_diagnosis_store, get_generator
from medassist.memory.diagnosis_store import DiagnosisStore


class FakeGenerator:
    """Stands in for Gemini: replays fixed chunks, optionally failing."""

    def __init__(
        self,
        chunks: Sequence[str] = (),
        error: BaseException | None = None,
        fail_after: int = 0,
        delay: float = 0.0,
    ) -> None:
        self.chunks = list(chunks)
        self.error = error
        self.fail_after = fail_after
        self.delay = delay
        self.prompts: list[str] = []

    async def stream(self, prompt: str) -> AsyncIterator[str]:
        self.prompts.append(prompt)
        for i, chunk in enumerate(self.chunks):
            if self.error is not None and i == self.fail_after:
                raise self.error
            if self.delay:
                await asyncio.sleep(self.delay)
            yield chunk
        if self.error is not None and self.fail_after >= len(self.chunks):
            raise self.error


@pytest.fixture
def fake_generator() -> FakeGenerator:
    return FakeGenerator(
        chunks=[
            "## Flu\n",
            "**Fever** and aches are common.\n\n",
            "**Follow-up Questions:**\n- How long does the flu usually last?\n- When should I see a doctor?\n",
        ]
    )


@pytest.fixture
def store() -> DiagnosisStore:
    return DiagnosisStore()


@pytest.fixture
def client(fake_generator: FakeGenerator, store: DiagnosisStore):
    app.dependency_overrides[get_generator] = lambda: fake_generator
    app.dependency_overrides[get_diagnosis_store] = lambda: store
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
