"""Google Gemini client.

Gemini is called with one flattened prompt instead of a message list: the
goal is restated, every prior turn is written out as ``Speaker: content`` and
an instruction trailer asks for the next reply.
"""

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from needlebench.clients.base import (
    LENGTH_GUIDANCE,
    GenerationConfig,
    ProviderClient,
    goal_framing,
    looks_like_unsupported_parameter,
    resolve_goal,
)
from needlebench.errors import (
    EmptyResponseError,
    NoValidInputError,
    ParameterUnsupportedError,
    ProviderTransportError,
)
from needlebench.models.llm import USER_SENDER, Message, ModelSpec
from needlebench.utils.logging import get_logger

logger = get_logger(__name__)

INSTRUCTION_TRAILER = "Now respond naturally to what was just said, keeping the original topic in mind:"


def flatten_history(history: list[Message], goal: str | None = None) -> str:
    """Render the history as a single prompt block.

    Raises:
        NoValidInputError: If no message has any content
    """
    valid = [message for message in history if message.content and message.content.strip()]
    if not valid:
        raise NoValidInputError("No valid messages to process")

    lines = [goal_framing(resolve_goal(valid, goal)), LENGTH_GUIDANCE, "Conversation so far:"]
    for message in valid:
        speaker = "Human" if message.sender_id == USER_SENDER else f"AI ({message.sender_id})"
        lines.append(f"{speaker}: {message.content}")
    lines.append(INSTRUCTION_TRAILER)
    return "\n\n".join(lines)


class GeminiClient(ProviderClient):
    """Calls Gemini models through the google-genai SDK."""

    provider = "google"

    def __init__(self, api_key: str, client: genai.Client | None = None):
        self.client = client or genai.Client(api_key=api_key)

    async def generate(
        self,
        spec: ModelSpec,
        history: list[Message],
        config: GenerationConfig,
        goal: str | None = None,
    ) -> str:
        """Generate a reply from a Gemini model."""
        try:
            prompt = flatten_history(history, goal)
        except NoValidInputError as e:
            e.model_id = spec.model_id
            raise

        logger.debug(f"Calling Gemini model {spec.native_model} with {len(prompt)} character prompt")

        try:
            response = await self.client.aio.models.generate_content(
                model=spec.native_model,
                contents=prompt,
                config=types.GenerateContentConfig(
                    temperature=config.temperature,
                    max_output_tokens=config.max_tokens,
                ),
            )
        except genai_errors.ClientError as e:
            if looks_like_unsupported_parameter(e.message):
                raise ParameterUnsupportedError(e.message or str(e), spec.model_id) from e
            raise ProviderTransportError(e.message or str(e), spec.model_id, e.code, e.details) from e
        except genai_errors.APIError as e:
            raise ProviderTransportError(e.message or str(e), spec.model_id, e.code, e.details) from e
        except httpx.HTTPError as e:
            raise ProviderTransportError(str(e), spec.model_id) from e

        text = response.text
        if not text or not text.strip():
            raise EmptyResponseError(f"Empty response from {spec.model_id}", spec.model_id)

        logger.debug(f"Gemini model {spec.native_model} returned {len(text)} characters")
        return text

    async def close(self) -> None:
        await self.client.aio.aclose()
