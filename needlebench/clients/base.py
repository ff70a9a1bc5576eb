"""Provider client interface and helpers shared by every provider."""

import re
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace
from typing import Any

from needlebench.errors import EmptyResponseError, UnexpectedResponseShapeError
from needlebench.models.llm import USER_SENDER, Message, ModelSpec, ProviderName

DEFAULT_GOAL = "General discussion"

LENGTH_GUIDANCE = (
    "Respond naturally with appropriate length - short (1-2 sentences) for simple responses, "
    "medium (2-4 sentences) for explanations, or longer (4-6 sentences) if the topic requires depth."
)

_UNSUPPORTED_CODES = {"unsupported_parameter", "unsupported_value"}
_UNSUPPORTED_PATTERN = re.compile(
    r"unsupported (parameter|value)|not supported (with|by|for) this model|does not support",
    re.IGNORECASE,
)


@dataclass
class GenerationConfig:
    """Sampling parameters for a single call. ``None`` means use the default."""

    temperature: float | None = None
    max_tokens: int | None = None

    def with_defaults(self, defaults: "GenerationConfig") -> "GenerationConfig":
        """Fill unset fields from ``defaults``."""
        return replace(
            self,
            temperature=self.temperature if self.temperature is not None else defaults.temperature,
            max_tokens=self.max_tokens if self.max_tokens is not None else defaults.max_tokens,
        )


class ProviderClient(ABC):
    """Capability interface implemented once per LLM provider."""

    provider: ProviderName

    @abstractmethod
    async def generate(
        self,
        spec: ModelSpec,
        history: list[Message],
        config: GenerationConfig,
        goal: str | None = None,
    ) -> str:
        """Send the history to the provider and return the generated text.

        Args:
            spec: Registry entry of the model to call
            history: Ordered transcript, oldest first
            config: Generation parameters with defaults already applied
            goal: Original conversation goal, if known

        Returns:
            Plain response text

        Raises:
            ProviderError: On any provider-specific failure
        """

    async def close(self) -> None:
        """Release the underlying SDK client."""


def resolve_goal(history: Sequence[Message], goal: str | None = None) -> str | None:
    """Return the conversation goal, falling back to the first user message."""
    if goal and goal.strip():
        return goal
    return next((m.content for m in history if m.sender_id == USER_SENDER and m.content.strip()), None)


def goal_framing(goal: str | None) -> str:
    """Opening line that restates what the conversation is about."""
    return f'You are participating in a multi-AI conversation about: "{goal or DEFAULT_GOAL}"'


def looks_like_unsupported_parameter(message: str | None, code: str | None = None) -> bool:
    """Whether a provider rejection names a parameter the model does not accept."""
    if code and code in _UNSUPPORTED_CODES:
        return True
    return bool(message and _UNSUPPORTED_PATTERN.search(message))


def _field(obj: Any, name: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, Mapping):
        return obj.get(name)
    return getattr(obj, name, None)


def _is_list(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, str)


def _join_text_parts(parts: Any) -> str | None:
    if not _is_list(parts):
        return None
    texts = [text for part in parts if isinstance(text := _field(part, "text"), str)]
    return "".join(texts) if texts else None


def extract_text(response: Any, model_id: str | None = None) -> str:
    """Pull plain text out of a provider response.

    Known shapes are tried in priority order: a direct text field
    (``output_text``, then ``text``), nested content arrays
    (``output[].content[].text``, then ``content[].text``), and finally the
    legacy ``choices[0].message.content``.

    A known shape that is present but holds no text, such as an empty
    content array or a chat message whose content is null, is an empty reply.

    Raises:
        EmptyResponseError: If a known shape is present without any text
        UnexpectedResponseShapeError: If none of the shapes are present
    """
    for name in ("output_text", "text"):
        direct = _field(response, name)
        if isinstance(direct, str):
            return direct

    empty_shape = False

    output = _field(response, "output")
    if _is_list(output):
        texts = [text for item in output if (text := _join_text_parts(_field(item, "content"))) is not None]
        if texts:
            return "".join(texts)
        empty_shape = True

    content_parts = _field(response, "content")
    content = _join_text_parts(content_parts)
    if content is not None:
        return content
    if _is_list(content_parts):
        empty_shape = True

    choices = _field(response, "choices")
    if _is_list(choices) and choices:
        message = _field(choices[0], "message")
        legacy = _field(message, "content")
        if isinstance(legacy, str):
            return legacy
        if message is not None and legacy is None:
            empty_shape = True

    if empty_shape:
        raise EmptyResponseError(f"{type(response).__name__} response contained no text", model_id)

    raise UnexpectedResponseShapeError(
        f"Could not find text in response of type {type(response).__name__}",
        model_id,
    )
