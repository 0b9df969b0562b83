from __future__ import annotations

import logging
from typing import AsyncIterator, Protocol

from google.api_core import exceptions as google_exceptions

from medassist.config import Settings, settings as default_settings
from medassist.errors import BackendCapacityError, BackendConfigError

logger = logging.getLogger(__name__)


class TextGenerator(Protocol):
    def stream(self, prompt: str) -> AsyncIterator[str]:
        """
        Returns an async sequence of text chunks for the prompt, ending with
        normal completion or an error. Conversation history travels inside
        the prompt.
        """
        ...


_CONFIG_ERRORS = (
    google_exceptions.PermissionDenied,
    google_exceptions.Unauthenticated,
)
_CAPACITY_ERRORS = (
    google_exceptions.ResourceExhausted,
    google_exceptions.TooManyRequests,
    google_exceptions.ServiceUnavailable,
)


def classify_backend_error(exc: BaseException) -> BaseException:
    if isinstance(exc, (BackendConfigError, BackendCapacityError)):
        return exc

    text = str(exc).lower()
    if isinstance(exc, _CONFIG_ERRORS) or "api key" in text or "credentials" in text:
        return BackendConfigError(str(exc))
    if isinstance(exc, _CAPACITY_ERRORS) or "quota" in text:
        return BackendCapacityError(str(exc))
    return exc


async def collect_text(chunks: AsyncIterator[str]) -> str:
    parts: list[str] = []
    async for chunk in chunks:
        parts.append(chunk)
    return "".join(parts)


class GeminiGenerator:
    """Streams text from a Vertex AI Gemini model."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or default_settings
        self._model = None

    def _init_model(self):
        if self._model is not None:
            return self._model

        project = self.settings.google_cloud_project
        if not project:
            raise BackendConfigError(
                "GOOGLE_CLOUD_PROJECT is not set.\n"
                "Example:\n"
                '  export GOOGLE_CLOUD_PROJECT="your-project-id"\n'
                '  export GOOGLE_CLOUD_LOCATION="us-central1"'
            )

        import vertexai
        from vertexai.generative_models import (
            GenerationConfig,
            GenerativeModel,
            HarmBlockThreshold,
            HarmCategory,
        )

        vertexai.init(project=project, location=self.settings.google_cloud_location)

        threshold = HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE
        self._model = GenerativeModel(
            self.settings.model_name,
            generation_config=GenerationConfig(
                temperature=self.settings.temperature,
                top_p=self.settings.top_p,
                top_k=self.settings.top_k,
                max_output_tokens=self.settings.max_output_tokens,
            ),
            safety_settings={
                HarmCategory.HARM_CATEGORY_HARASSMENT: threshold,
                HarmCategory.HARM_CATEGORY_HATE_SPEECH: threshold,
                HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT: threshold,
                HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT: threshold,
            },
        )
        logger.info("Gemini model %s ready (%s)", self.settings.model_name, self.settings.google_cloud_location)
        return self._model

    async def stream(self, prompt: str) -> AsyncIterator[str]:
        try:
            model = self._init_model()
            responses = await model.generate_content_async(prompt, stream=True)
            async for response in responses:
                try:
                    text = response.text
                except ValueError:
                    # no text part, usually a safety block
                    logger.warning("Gemini chunk without text: %s", getattr(response, "candidates", None))
                    continue
                if text:
                    yield text
        except Exception as e:
            mapped = classify_backend_error(e)
            if mapped is e:
                raise
            raise mapped from e
