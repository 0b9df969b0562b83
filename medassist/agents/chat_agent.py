from __future__ import annotations

from typing import Any, AsyncIterator, Sequence

from medassist.agents.gemini import TextGenerator
from medassist.config import Settings, settings as default_settings
from medassist.errors import ValidationError
from medassist.models import ChatTurn
from medassist.streaming.cancellation import CancellationToken
from medassist.streaming.relay import StreamRelay


DEFAULT_CATEGORY = "General Health"
ROLE_LABELS = {"user": "Patient", "assistant": "MedAssist"}


# ----------------------------
# Prompt
# ----------------------------

def validate_message(message: Any, max_length: int = 5000) -> str:
    if not isinstance(message, str) or not message.strip():
        raise ValidationError("Valid message is required")
    if len(message) > max_length:
        raise ValidationError(f"Message is too long (max {max_length} characters)")
    return message


def render_history(history: Sequence[ChatTurn], max_turns: int) -> str:
    if max_turns <= 0:
        return ""
    return "\n".join(
        f"{ROLE_LABELS.get(turn.role, 'MedAssist')}: {turn.content}"
        for turn in list(history)[-max_turns:]
    )


def compose_prompt(
    message: Any,
    category: str | None,
    history: Sequence[ChatTurn] = (),
    max_history: int = 6,
    max_length: int = 5000,
) -> str:
    """
    Build the single MedAssist prompt sent to the generation backend.

    The prompt always closes with the follow-up questions format block;
    the relay scrapes that section back out as suggestions.
    """
    message = validate_message(message, max_length=max_length)
    category = (category or "").strip() or DEFAULT_CATEGORY

    transcript = render_history(history, max_history)
    conversation_context = (
        f"\n\nPrevious conversation context:\n{transcript}" if transcript else ""
    )

    return f"""
You are MedAssist, a compassionate and knowledgeable AI medical assistant integrated into a healthcare platform. Your purpose is to provide helpful, evidence-based health information while maintaining appropriate boundaries.

Key Principles:
- Provide clear, accurate, and empathetic responses
- Use medical knowledge responsibly and cite general medical consensus when applicable
- Always acknowledge uncertainty and recommend professional consultation when appropriate
- Be conversational yet professional
- Never diagnose or prescribe medication
- Prioritize patient safety and well-being
- You're here to educate and guide, not to replace healthcare professionals

Current Context:
- Health Category: {category}
- Patient Query: {message}{conversation_context}

Response Guidelines:
1. Address the query directly and comprehensively
2. Format for readability with markdown: headings, bullet or numbered lists, and **bold** for important information
3. Include relevant context or explanations
4. Add a disclaimer such as "This is general information, not medical advice"
5. If emergency symptoms are mentioned, emphasize seeking immediate medical attention
6. End with 3-4 relevant follow-up questions the patient might ask

Format your follow-up questions section as:

**Follow-up Questions:**
- Question 1
- Question 2
- Question 3
- Question 4
""".strip()


# ----------------------------
# Agent
# ----------------------------

class ChatAgent:
    def __init__(self, generator: TextGenerator, settings: Settings | None = None) -> None:
        self.generator = generator
        self.settings = settings or default_settings

    def compose(self, message: Any, category: str | None, history: Sequence[ChatTurn] = ()) -> str:
        return compose_prompt(
            message,
            category,
            history,
            max_history=self.settings.prompt_history_turns,
            max_length=self.settings.max_message_length,
        )

    async def open_stream(
        self,
        message: Any,
        category: str | None,
        history: Sequence[ChatTurn] = (),
        cancel_token: CancellationToken | None = None,
    ) -> StreamRelay:
        """
        Validate, compose and start the backend stream.

        The relay is primed, so configuration and capacity errors raise here
        rather than halfway through a response.
        """
        prompt = self.compose(message, category, history)
        relay = StreamRelay(
            self.generator.stream(prompt),
            category=category,
            cancel_token=cancel_token,
            suggestion_min_length=self.settings.suggestion_min_length,
            suggestion_max_length=self.settings.suggestion_max_length,
        )
        return await relay.prime()

    async def stream_reply(
        self,
        message: Any,
        category: str | None,
        history: Sequence[ChatTurn] = (),
        cancel_token: CancellationToken | None = None,
    ) -> AsyncIterator[str]:
        relay = await self.open_stream(message, category, history, cancel_token)
        async for segment in relay:
            yield segment
