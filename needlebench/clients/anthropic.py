"""Anthropic API client with role alternation and error handling."""

from typing import Literal

import anthropic
from anthropic import AsyncAnthropic
from pydantic import BaseModel

from needlebench.clients.base import (
    LENGTH_GUIDANCE,
    GenerationConfig,
    ProviderClient,
    extract_text,
    goal_framing,
    looks_like_unsupported_parameter,
    resolve_goal,
)
from needlebench.errors import ParameterUnsupportedError, ProviderTransportError
from needlebench.models.llm import Message, ModelSpec
from needlebench.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_OPENING = "Hello"
CONTINUE_PROMPT = "Please continue the conversation."
MAX_TEMPERATURE = 1.0


class AnthropicMessage(BaseModel):
    """Message format for Anthropic API."""

    role: Literal["user", "assistant"]
    content: str


def shape_messages(history: list[Message], goal: str | None = None) -> list[AnthropicMessage]:
    """Turn a transcript into a strictly alternating user/assistant list.

    Placeholder turns are dropped, consecutive messages with the same role
    are merged with a blank line between them, and the list always starts and
    ends with a user message.
    """
    shaped: list[AnthropicMessage] = []
    for message in history:
        if message.is_placeholder or not message.content.strip():
            continue
        role = message.provider_role
        if shaped and shaped[-1].role == role:
            shaped[-1] = AnthropicMessage(role=role, content=f"{shaped[-1].content}\n\n{message.content}")
        else:
            shaped.append(AnthropicMessage(role=role, content=message.content))

    opening = resolve_goal(history, goal) or DEFAULT_OPENING
    if not shaped:
        return [AnthropicMessage(role="user", content=opening)]

    if shaped[0].role == "assistant":
        shaped.insert(0, AnthropicMessage(role="user", content=opening))
    if shaped[-1].role == "assistant":
        shaped.append(AnthropicMessage(role="user", content=CONTINUE_PROMPT))

    return shaped


def system_prompt(goal: str | None) -> str:
    """System framing sent alongside the messages."""
    return (
        f"{goal_framing(goal)}\n\n{LENGTH_GUIDANCE} Always stay conversational and respond directly "
        "to what was just said while keeping the original topic in mind."
    )


class AnthropicClient(ProviderClient):
    """Calls Claude models through the Messages API."""

    provider = "anthropic"

    def __init__(self, api_key: str, client: AsyncAnthropic | None = None):
        """Initialize Anthropic client.

        Args:
            api_key: Anthropic API key
            client: Preconfigured SDK client (mainly for tests)
        """
        self.client = client or AsyncAnthropic(api_key=api_key)

    async def generate(
        self,
        spec: ModelSpec,
        history: list[Message],
        config: GenerationConfig,
        goal: str | None = None,
    ) -> str:
        """Generate a reply from a Claude model."""
        goal = resolve_goal(history, goal)
        messages = shape_messages(history, goal)

        request_params = {
            "model": spec.native_model,
            "max_tokens": config.max_tokens,
            "system": system_prompt(goal),
            "messages": [message.model_dump() for message in messages],
        }
        if config.temperature is not None:
            request_params["temperature"] = min(config.temperature, MAX_TEMPERATURE)

        logger.debug(
            f"Making Anthropic API call with model: {spec.native_model}, "
            f"{len(messages)} messages (from {len(history)} transcript entries)"
        )

        try:
            response = await self.client.messages.create(**request_params)
        except anthropic.BadRequestError as e:
            if looks_like_unsupported_parameter(e.message):
                raise ParameterUnsupportedError(e.message, spec.model_id) from e
            raise ProviderTransportError(e.message, spec.model_id, e.status_code, e.body) from e
        except anthropic.APIStatusError as e:
            raise ProviderTransportError(e.message, spec.model_id, e.status_code, e.body) from e
        except anthropic.APIError as e:
            raise ProviderTransportError(str(e), spec.model_id) from e

        logger.debug(f"Response received - Stop reason: {getattr(response, 'stop_reason', None)}")

        return extract_text(response, spec.model_id)

    async def close(self) -> None:
        await self.client.close()
