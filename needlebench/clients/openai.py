"""OpenAI client covering the chat completions and responses APIs."""

from typing import Any

import openai
from openai import AsyncOpenAI

from needlebench.clients.base import (
    LENGTH_GUIDANCE,
    GenerationConfig,
    ProviderClient,
    extract_text,
    looks_like_unsupported_parameter,
)
from needlebench.errors import ParameterUnsupportedError, ProviderTransportError
from needlebench.models.llm import Message, ModelSpec
from needlebench.utils.logging import get_logger

logger = get_logger(__name__)

SYSTEM_PREAMBLE = (
    "You are participating in a multi-AI conversation. "
    f"{LENGTH_GUIDANCE} "
    "Always stay conversational and respond directly to what was just said."
)

# Models that accept a reasoning effort, and models that reject temperature.
# The sets overlap but differ, so each is checked on its own.
REASONING_MODELS = frozenset({"o1", "o3", "o3-mini", "o4-mini"})
NO_TEMPERATURE_MODELS = frozenset({"o1", "o1-mini", "o3", "o3-mini", "o4-mini"})
REASONING_EFFORT = "medium"


def _role_messages(history: list[Message]) -> list[dict[str, str]]:
    return [{"role": message.provider_role, "content": message.content} for message in history]


class OpenAIClient(ProviderClient):
    """Calls OpenAI models in either the chat style or the responses style."""

    provider = "openai"

    def __init__(self, api_key: str, client: AsyncOpenAI | None = None):
        """Initialize OpenAI client.

        Args:
            api_key: OpenAI API key
            client: Preconfigured SDK client (mainly for tests)
        """
        self.client = client or AsyncOpenAI(api_key=api_key)

    def build_chat_params(self, spec: ModelSpec, history: list[Message], config: GenerationConfig) -> dict[str, Any]:
        """Request parameters for the chat completions API."""
        return {
            "model": spec.native_model,
            "messages": [{"role": "system", "content": SYSTEM_PREAMBLE}, *_role_messages(history)],
            "max_tokens": config.max_tokens,
            "temperature": config.temperature,
        }

    def build_responses_params(
        self, spec: ModelSpec, history: list[Message], config: GenerationConfig
    ) -> dict[str, Any]:
        """Request parameters for the responses API."""
        params: dict[str, Any] = {
            "model": spec.native_model,
            "input": _role_messages(history),
            "max_output_tokens": config.max_tokens,
        }
        if spec.native_model not in NO_TEMPERATURE_MODELS:
            params["temperature"] = config.temperature
        if spec.native_model in REASONING_MODELS:
            params["reasoning"] = {"effort": REASONING_EFFORT}
        return params

    async def generate(
        self,
        spec: ModelSpec,
        history: list[Message],
        config: GenerationConfig,
        goal: str | None = None,
    ) -> str:
        """Generate a reply from an OpenAI model."""
        if spec.request_shape == "responses":
            params = self.build_responses_params(spec, history, config)
            create = self.client.responses.create
        else:
            params = self.build_chat_params(spec, history, config)
            create = self.client.chat.completions.create

        logger.debug(
            f"Calling OpenAI {spec.request_shape} API with model {spec.native_model}, "
            f"{len(history)} messages, params: {sorted(k for k in params if k not in ('messages', 'input'))}"
        )

        try:
            response = await create(**params)
        except openai.BadRequestError as e:
            if looks_like_unsupported_parameter(e.message, e.code):
                raise ParameterUnsupportedError(e.message, spec.model_id) from e
            raise ProviderTransportError(e.message, spec.model_id, e.status_code, e.body) from e
        except openai.APIStatusError as e:
            raise ProviderTransportError(e.message, spec.model_id, e.status_code, e.body) from e
        except openai.APIError as e:
            raise ProviderTransportError(str(e), spec.model_id) from e

        return extract_text(response, spec.model_id)

    async def close(self) -> None:
        await self.client.close()
